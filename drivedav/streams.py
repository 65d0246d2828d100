"""
Response body generators for full, single-range and multi-range reads.

The generators are consumed by Starlette's ``StreamingResponse``, which awaits
the transport for each chunk before pulling the next one, and cancels the
generator when the client disconnects. Backend streams are closed in
``finally`` blocks so an aborted download releases its read.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, List, Optional

from .drive import DriveSession
from .metrics import metrics_manager
from .models import RangeSpec

logger = logging.getLogger(__name__)

CRLF = b"\r\n"


async def iter_content(
    session: DriveSession,
    key: str,
    start: Optional[int] = None,
    end: Optional[int] = None,
) -> AsyncGenerator[bytes, None]:
    """Yield the bytes of key in [start, end], trimming oversized chunks"""
    remaining = None if end is None else end - (start or 0) + 1
    stream = session.open_read_stream(key, start=start, end=end)
    try:
        async for chunk in stream:
            if not chunk:
                continue
            if remaining is not None:
                chunk = chunk[:remaining]
                remaining -= len(chunk)
            metrics_manager.add_download_bytes(len(chunk))
            yield bytes(chunk)
            if remaining is not None and remaining <= 0:
                break
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()


def part_header(boundary: str, content_type: str, spec: RangeSpec, size: int) -> bytes:
    """Delimiter and headers that open one multipart/byteranges part"""
    return (
        f"--{boundary}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Range: {spec.content_range(size)}\r\n"
        f"\r\n"
    ).encode("latin-1")


def closing_boundary(boundary: str) -> bytes:
    return f"--{boundary}--\r\n".encode("latin-1")


async def iter_multipart(
    session: DriveSession,
    key: str,
    specs: List[RangeSpec],
    size: int,
    content_type: str,
    boundary: str,
) -> AsyncGenerator[bytes, None]:
    """
    Yield a multipart/byteranges body

    Each part is read from its own backend stream, one after another.
    """
    for spec in specs:
        yield part_header(boundary, content_type, spec, size)
        body = iter_content(session, key, spec.start, spec.end)
        try:
            async for chunk in body:
                yield chunk
        finally:
            await body.aclose()
        yield CRLF
    yield closing_boundary(boundary)


__all__ = ["iter_content", "iter_multipart", "part_header", "closing_boundary"]
