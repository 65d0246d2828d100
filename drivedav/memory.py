"""In-memory drive backend."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional

from .models import EntryStat

CHUNK_SIZE = 64 * 1024


@dataclass
class StoredObject:
    data: bytes
    modified: float = field(default_factory=time.time)


class MemoryDrive:
    """
    Dict-backed drive.

    Keys are stored exactly as given, so a legacy client that writes "/a"
    and one that writes "a" produce two distinct entries. Directories are
    virtual: a key is a collection when other keys live underneath it.
    """

    def __init__(self, writable: bool = True, chunk_size: int = CHUNK_SIZE):
        self.writable = writable
        self.chunk_size = chunk_size
        self.objects: Dict[str, StoredObject] = {}

    async def put(self, key: str, data: bytes) -> None:
        self.objects[key] = StoredObject(data=bytes(data))

    async def get(self, key: str) -> Optional[bytes]:
        obj = self.objects.get(key)
        return obj.data if obj is not None else None

    async def delete(self, key: str) -> None:
        self.objects.pop(key, None)

    async def stat(self, key: str) -> Optional[EntryStat]:
        obj = self.objects.get(key)
        if obj is not None:
            return EntryStat(is_collection=False, size=len(obj.data), last_modified=obj.modified)

        prefix = key.rstrip("/") + "/"
        if any(stored.startswith(prefix) for stored in self.objects):
            return EntryStat(is_collection=True, size=0)
        return None

    async def list(self, prefix: str) -> AsyncIterator[str]:
        """Yield immediate children of prefix in stored key form"""
        base = prefix.rstrip("/")
        start = base + "/" if base or prefix.startswith("/") else ""

        seen = set()
        for stored in sorted(self.objects):
            if not stored.startswith(start):
                continue
            if not start and stored.startswith("/"):
                continue
            name = stored[len(start):].split("/", 1)[0]
            if not name:
                continue
            child = start + name
            if child not in seen:
                seen.add(child)
                yield child

    async def open_read_stream(
        self, key: str, start: Optional[int] = None, end: Optional[int] = None
    ) -> AsyncIterator[bytes]:
        obj = self.objects.get(key)
        if obj is None:
            raise KeyError(key)

        data = obj.data
        first = start or 0
        last = len(data) - 1 if end is None else min(end, len(data) - 1)

        position = first
        while position <= last:
            upto = min(position + self.chunk_size, last + 1)
            yield data[position:upto]
            position = upto


__all__ = ["MemoryDrive", "StoredObject"]
