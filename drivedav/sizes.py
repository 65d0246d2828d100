"""Content length resolution with an in-process cache."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from .drive import DriveSession
from .paths import normalize_key

logger = logging.getLogger(__name__)


class SizeCache:
    """
    Last known content length per canonical key.

    Owned by one server instance and discarded with it. Writes set the entry
    authoritatively and deletes drop it, so a stale entry can only cost an
    extra lookup.
    """

    def __init__(self):
        self._sizes: Dict[str, int] = {}

    def get(self, key: str) -> Optional[int]:
        return self._sizes.get(normalize_key(key))

    def set(self, key: str, size: int) -> None:
        self._sizes[normalize_key(key)] = size

    def invalidate(self, key: str) -> None:
        self._sizes.pop(normalize_key(key), None)

    async def resolve(self, session: DriveSession, key: str) -> Optional[int]:
        """
        Return the byte length of key

        Order: cached value, backend stat, then streaming the content and
        counting. Returns None when the key cannot be read at all.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        stat = await session.stat(key)
        if stat is not None and stat.is_collection:
            return None
        if stat is not None and stat.size is not None:
            self.set(key, stat.size)
            return stat.size

        size = await self._count(session, key)
        if size is not None:
            self.set(key, size)
        return size

    async def _count(self, session: DriveSession, key: str) -> Optional[int]:
        total = 0
        stream = None
        try:
            stream = session.open_read_stream(key)
            async for chunk in stream:
                total += len(chunk)
        except Exception as e:
            logger.debug(f"Could not count bytes of {key!r}: {e}")
            return None
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        logger.debug(f"Counted {total} bytes for {key!r}")
        return total


__all__ = ["SizeCache"]
