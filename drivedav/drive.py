"""
Adapter between the WebDAV handlers and a key-value drive backend.

Backends are duck-typed. The adapter needs ``get``, ``delete``, ``list``,
``open_read_stream`` and a ``writable`` flag, optionally ``stat``, and at least
one write primitive out of ``put``, ``write_file``, ``set`` or
``create_write_stream``. Handlers never talk to a backend directly: they open a
``DriveSession`` per request and work with canonical keys only.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Dict, List, Optional, Tuple

from .errors import DriveWriteError
from .models import EntryStat
from .paths import normalize_key

logger = logging.getLogger(__name__)


class WriteStrategy:
    """Ordered write fallback for one backend type."""

    PREFERENCE = ("put", "write_file", "set", "create_write_stream")

    _cache: Dict[type, "WriteStrategy"] = {}

    def __init__(self, primitives: Tuple[str, ...]):
        self.primitives = primitives

    @classmethod
    def for_backend(cls, backend) -> "WriteStrategy":
        """Return the strategy for the backend's type, probing it only once"""
        backend_type = type(backend)
        strategy = cls._cache.get(backend_type)
        if strategy is None:
            primitives = tuple(
                name for name in cls.PREFERENCE
                if callable(getattr(backend, name, None))
            )
            strategy = cls(primitives)
            cls._cache[backend_type] = strategy
            logger.debug(f"Write primitives for {backend_type.__name__}: {primitives or 'none'}")
        return strategy

    async def write(self, backend, key: str, data: bytes) -> str:
        """
        Write data under key with the first primitive that succeeds

        Returns:
            Name of the primitive that stored the data

        Raises:
            DriveWriteError: If every primitive failed
        """
        attempts: Dict[str, BaseException] = {}

        for name in self.primitives:
            try:
                if name == "create_write_stream":
                    stream = await _maybe_await(backend.create_write_stream(key))
                    try:
                        await _maybe_await(stream.write(data))
                    except Exception:
                        discard = getattr(stream, "abort", None) or stream.close
                        await _maybe_await(discard())
                        raise
                    await _maybe_await(stream.close())
                else:
                    await _maybe_await(getattr(backend, name)(key, data))
                return name
            except Exception as e:
                logger.warning(f"Write via {name} failed for {key!r}: {e}")
                attempts[name] = e

        raise DriveWriteError(key, attempts)


async def _maybe_await(value):
    if hasattr(value, "__await__"):
        return await value
    return value


class DriveAdapter:
    """Wraps a backend once at startup; hands out per-request sessions."""

    def __init__(self, backend, legacy_keys: bool = False):
        self.backend = backend
        self.legacy_keys = legacy_keys
        self.write_strategy = WriteStrategy.for_backend(backend)

    @property
    def writable(self) -> bool:
        return bool(getattr(self.backend, "writable", False))

    @property
    def has_stat(self) -> bool:
        return callable(getattr(self.backend, "stat", None))

    def session(self) -> "DriveSession":
        return DriveSession(self)

    def variants(self, key: str) -> List[str]:
        """Backend spellings of a canonical key, preferred first"""
        key = normalize_key(key)
        if not self.legacy_keys:
            return [key]
        return ["/" + key, key]


class DriveSession:
    """
    Canonical-key view of a drive for the duration of one request.

    In legacy mode every key may live under two spellings. The first spelling
    that answers a lookup is remembered and used for every later operation on
    that key within the same session.
    """

    def __init__(self, adapter: DriveAdapter):
        self.adapter = adapter
        self.backend = adapter.backend
        self._resolved: Dict[str, str] = {}

    def _candidates(self, key: str) -> List[str]:
        key = normalize_key(key)
        resolved = self._resolved.get(key)
        if resolved is not None:
            return [resolved]
        return self.adapter.variants(key)

    def _remember(self, key: str, variant: str) -> None:
        self._resolved[normalize_key(key)] = variant

    async def get(self, key: str) -> Optional[bytes]:
        """Full content of key, or None when absent"""
        for variant in self._candidates(key):
            try:
                data = await _maybe_await(self.backend.get(variant))
            except Exception as e:
                logger.debug(f"get({variant!r}) failed: {e}")
                continue
            if data is not None:
                self._remember(key, variant)
                return bytes(data)
        return None

    async def stat(self, key: str) -> Optional[EntryStat]:
        """
        Metadata for key, or None when absent

        The root is always a collection. A key that the backend cannot stat
        but that has children is reported as a virtual collection.
        """
        key = normalize_key(key)
        if key == "":
            return EntryStat(is_collection=True)

        if self.adapter.has_stat:
            for variant in self._candidates(key):
                try:
                    stat = await _maybe_await(self.backend.stat(variant))
                except Exception as e:
                    logger.debug(f"stat({variant!r}) failed: {e}")
                    continue
                if stat is not None:
                    self._remember(key, variant)
                    return _coerce_stat(stat)

        if await self._has_children(key):
            return EntryStat(is_collection=True)

        if not self.adapter.has_stat and await self.exists(key):
            return EntryStat(is_collection=False)

        return None

    async def exists(self, key: str) -> bool:
        """Minimal probe read: one chunk from the start of the content"""
        for variant in self._candidates(key):
            stream = None
            try:
                stream = self.backend.open_read_stream(variant, start=0, end=0)
                async for _ in stream:
                    break
            except Exception as e:
                logger.debug(f"probe({variant!r}) failed: {e}")
                continue
            finally:
                await _aclose(stream)
            self._remember(key, variant)
            return True
        return False

    async def _has_children(self, key: str) -> bool:
        async for _ in self.list(key):
            return True
        return False

    async def list(self, key: str) -> AsyncIterator[str]:
        """
        Yield canonical keys of the immediate children of key

        Both spellings of the prefix are listed in legacy mode, so the same
        child may be yielded twice. Listing errors end that listing quietly.
        """
        key = normalize_key(key)
        prefixes = self.adapter.variants(key)
        if key == "" and self.adapter.legacy_keys:
            prefixes = ["/", ""]

        for prefix in prefixes:
            try:
                async for child in self.backend.list(prefix):
                    child_key = normalize_key(_entry_key(child))
                    if child_key and child_key != key:
                        yield child_key
            except Exception as e:
                logger.debug(f"list({prefix!r}) failed: {e}")
                continue

    def open_read_stream(self, key: str, start: Optional[int] = None, end: Optional[int] = None) -> AsyncIterator[bytes]:
        """Byte stream of key from start to end inclusive"""
        variant = self._candidates(key)[0]
        return self.backend.open_read_stream(variant, start=start, end=end)

    async def write(self, key: str, data: bytes) -> str:
        """
        Store data under key

        An existing spelling of the key is overwritten in place. Otherwise
        each spelling is tried in order and the first one stored becomes the
        key's spelling for the rest of the session.

        Raises:
            DriveWriteError: If the backend rejected every spelling
        """
        key = normalize_key(key)
        if key not in self._resolved and self.adapter.legacy_keys:
            await self.stat(key)

        attempts: Dict[str, BaseException] = {}
        for variant in self._candidates(key):
            try:
                primitive = await self.adapter.write_strategy.write(self.backend, variant, data)
            except DriveWriteError as e:
                for name, exc in e.attempts.items():
                    attempts[f"{name}({variant!r})"] = exc
                continue
            self._remember(key, variant)
            return primitive

        raise DriveWriteError(key, attempts)

    async def delete(self, key: str) -> None:
        """Delete every spelling of key; absent keys are not an error"""
        key = normalize_key(key)
        for variant in self.adapter.variants(key):
            try:
                await _maybe_await(self.backend.delete(variant))
            except Exception as e:
                logger.debug(f"delete({variant!r}) ignored: {e}")
        self._resolved.pop(key, None)


def _entry_key(entry) -> str:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        return entry.get("key", "")
    return getattr(entry, "key", "")


def _coerce_stat(stat) -> EntryStat:
    if isinstance(stat, EntryStat):
        return stat
    if isinstance(stat, dict):
        fields = stat
    else:
        fields = {
            name: getattr(stat, name)
            for name in ("is_collection", "size", "last_modified")
            if hasattr(stat, name)
        }
    size = fields.get("size")
    return EntryStat(
        is_collection=bool(fields.get("is_collection", False)),
        size=int(size) if size is not None else None,
        last_modified=fields.get("last_modified"),
    )


async def _aclose(stream) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


__all__ = ["WriteStrategy", "DriveAdapter", "DriveSession"]
