"""
Local directory drive backend for drivedav
"""

import logging
import uuid
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
import aiofiles.os

from .models import EntryStat
from .paths import join_key, normalize_key

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class PathTraversalError(Exception):
    """Raised when path traversal attack is detected"""
    pass


class FileSystemError(Exception):
    """Generic filesystem error"""
    pass


def safe_join(root_path: Path, rel_path: str) -> Path:
    """
    Safely join root path with relative path, preventing directory traversal

    Args:
        root_path: Root directory path (must be resolved)
        rel_path: Relative path to join

    Returns:
        Resolved absolute path within root

    Raises:
        PathTraversalError: If path would escape root directory
    """

    rel_path = rel_path.strip().replace('\\', '/')

    # Special cases that should map to the root itself
    if rel_path in {"", ".", "./"}:
        return root_path.resolve()

    # Remove all leading separators to avoid absolute paths overriding the root
    rel_path = rel_path.lstrip('/')

    parts = []
    for part in rel_path.split('/'):
        if not part or part == '.':
            # Skip empty or current-directory segments caused by // or ./
            continue
        if part == '..':
            raise PathTraversalError(f"Path traversal detected: {rel_path}")
        parts.append(part)

    base_path = root_path.resolve()
    full_path = base_path.joinpath(*parts) if parts else base_path

    # Resolve symlinks without requiring the target to exist
    try:
        resolved_path = full_path.resolve(strict=False)
    except OSError as e:
        raise FileSystemError(f"Failed to resolve path: {e}")

    # Ensure resolved path is within root
    try:
        resolved_path.relative_to(base_path)
    except ValueError:
        raise PathTraversalError(f"Path traversal detected: {rel_path}")

    return resolved_path


class FileWriteStream:
    """Writes into a temporary sibling file and moves it into place on close"""

    def __init__(self, target: Path):
        self.target = target
        self.tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.part")
        self._file = None
        self.bytes_written = 0

    async def open(self) -> "FileWriteStream":
        await aiofiles.os.makedirs(self.target.parent, exist_ok=True)
        self._file = await aiofiles.open(self.tmp_path, 'wb')
        return self

    async def write(self, data: bytes) -> None:
        if self._file is None:
            raise FileSystemError("Write stream is not open")
        await self._file.write(data)
        self.bytes_written += len(data)

    async def close(self) -> None:
        if self._file is None:
            return
        try:
            await self._file.close()
            await aiofiles.os.replace(self.tmp_path, self.target)
            logger.info(f"Wrote file: {self.target} ({self.bytes_written} bytes)")
        except OSError as e:
            if await aiofiles.os.path.exists(self.tmp_path):
                await aiofiles.os.remove(self.tmp_path)
            raise FileSystemError(f"Failed to save file: {e}")
        finally:
            self._file = None

    async def abort(self) -> None:
        """Drop the temporary file without touching the target"""
        if self._file is not None:
            await self._file.close()
            self._file = None
        if await aiofiles.os.path.exists(self.tmp_path):
            await aiofiles.os.remove(self.tmp_path)


class DirectoryDrive:
    """
    Drive backed by a directory tree on local disk.

    Keys map to paths below the root; writes go through
    ``create_write_stream`` so partially written files never become visible.
    """

    def __init__(self, root: str, writable: bool = True):
        self.root = Path(root).resolve()
        self.writable = writable

    def _path(self, key: str) -> Path:
        return safe_join(self.root, key)

    async def get(self, key: str) -> Optional[bytes]:
        file_path = self._path(key)
        if not await aiofiles.os.path.isfile(file_path):
            return None
        async with aiofiles.open(file_path, 'rb') as f:
            return await f.read()

    async def stat(self, key: str) -> Optional[EntryStat]:
        target = self._path(key)
        try:
            stat = await aiofiles.os.stat(target)
        except FileNotFoundError:
            return None

        is_dir = await aiofiles.os.path.isdir(target)
        return EntryStat(
            is_collection=is_dir,
            size=0 if is_dir else stat.st_size,
            last_modified=stat.st_mtime,
        )

    async def list(self, prefix: str) -> AsyncIterator[str]:
        dir_path = self._path(prefix)
        if not await aiofiles.os.path.isdir(dir_path):
            return

        for entry in sorted(await aiofiles.os.listdir(dir_path)):
            # In-flight uploads
            if entry.startswith('.') and entry.endswith('.part'):
                continue
            yield join_key(prefix, entry)

    async def open_read_stream(
        self, key: str, start: Optional[int] = None, end: Optional[int] = None
    ) -> AsyncIterator[bytes]:
        file_path = self._path(key)
        if await aiofiles.os.path.isdir(file_path):
            raise FileSystemError(f"Path is a directory: {key}")

        async with aiofiles.open(file_path, 'rb') as f:
            if start:
                await f.seek(start)
            remaining = None if end is None else end - (start or 0) + 1

            while remaining is None or remaining > 0:
                chunk_size = CHUNK_SIZE if remaining is None else min(CHUNK_SIZE, remaining)
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                if remaining is not None:
                    remaining -= len(chunk)
                yield chunk

    async def create_write_stream(self, key: str) -> FileWriteStream:
        if not normalize_key(key):
            raise FileSystemError("Cannot write to the drive root")
        return await FileWriteStream(self._path(key)).open()

    async def delete(self, key: str) -> None:
        target = self._path(key)
        if target == self.root:
            return
        try:
            if await aiofiles.os.path.isdir(target):
                # Collections are virtual; only empty directories go away
                if await aiofiles.os.listdir(target):
                    logger.debug(f"Kept non-empty directory: {target}")
                    return
                await aiofiles.os.rmdir(target)
            else:
                await aiofiles.os.remove(target)
            logger.info(f"Deleted: {target}")
        except FileNotFoundError:
            pass


__all__ = ["DirectoryDrive", "FileWriteStream", "safe_join", "PathTraversalError", "FileSystemError"]
