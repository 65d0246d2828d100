"""
Utility functions for drivedav
"""

import logging
import uuid
from email.utils import formatdate
from pathlib import PurePosixPath
from typing import List, Optional

from .models import MIME_TYPES, DEFAULT_MIME_TYPE, RangeSpec

logger = logging.getLogger(__name__)


def get_mime_type(key: str) -> str:
    """Get MIME type for a key from its extension"""
    suffix = PurePosixPath(key).suffix.lower()
    return MIME_TYPES.get(suffix, DEFAULT_MIME_TYPE)


def format_file_size(size_bytes: int) -> str:
    """Format file size in human readable format"""
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KiB", "MiB", "GiB", "TiB"]
    i = 0
    size = float(size_bytes)

    while size >= 1024.0 and i < len(size_names) - 1:
        size /= 1024.0
        i += 1

    if i == 0:
        return f"{int(size)} {size_names[i]}"
    elif size == int(size):
        return f"{int(size)} {size_names[i]}"
    else:
        return f"{size:.1f} {size_names[i]}"


def http_date(timestamp: float) -> str:
    """RFC 1123 date, e.g. 'Sun, 06 Nov 1994 08:49:37 GMT'"""
    return formatdate(timestamp, usegmt=True)


def parse_range_header(range_header: Optional[str], size: int) -> Optional[List[RangeSpec]]:
    """
    Parse an HTTP Range header against a known content length

    Supports a comma separated list of:
    - bytes=start-end
    - bytes=start-
    - bytes=-suffix

    Ends are clamped to size - 1 and suffix starts to 0. Malformed specs
    and specs with start > end or start < 0 after clamping are dropped.

    Args:
        range_header: Range header value (e.g., "bytes=0-1023, 2048-")
        size: Content length of the resource

    Returns:
        None when there is no byte range to honour (header missing or not
        a bytes range), otherwise the satisfiable specs in request order.
        An empty list means the request is unsatisfiable.
    """
    if not range_header:
        return None

    range_header = range_header.strip()
    if not range_header.startswith("bytes="):
        return None

    specs = []
    for raw in range_header[6:].split(","):
        spec = _parse_range_spec(raw.strip(), size)
        if spec is not None:
            specs.append(spec)

    return specs


def _parse_range_spec(raw: str, size: int) -> Optional[RangeSpec]:
    if "-" not in raw:
        return None

    start_str, end_str = (part.strip() for part in raw.split("-", 1))
    last = size - 1

    try:
        if not start_str:
            # Suffix range: -500
            suffix_length = int(end_str)
            if suffix_length < 0:
                return None
            start = max(0, size - suffix_length)
            end = last
        elif not end_str:
            # Open range: 500-
            start = int(start_str)
            end = last
        else:
            start = int(start_str)
            end = min(int(end_str), last)
    except ValueError:
        return None

    if start < 0 or start > end:
        return None

    return RangeSpec(start=start, end=end)


def create_content_range_header(start: int, end: int, total: int) -> str:
    """Create Content-Range header value"""
    return f"bytes {start}-{end}/{total}"


def generate_boundary() -> str:
    """Boundary token for multipart/byteranges bodies"""
    return uuid.uuid4().hex


def generate_lock_token() -> str:
    """Opaque lock token in the urn form WebDAV clients expect"""
    return f"opaquelocktoken:{uuid.uuid4()}"


def create_response_headers(
    content_length: Optional[int] = None,
    content_type: Optional[str] = None,
    last_modified: Optional[float] = None,
    accept_ranges: bool = True,
) -> dict:
    """Create standard headers for GET/HEAD responses"""
    headers = {}

    if content_type:
        headers["Content-Type"] = content_type

    if content_length is not None:
        headers["Content-Length"] = str(content_length)

    if accept_ranges:
        headers["Accept-Ranges"] = "bytes"

    if last_modified:
        headers["Last-Modified"] = http_date(last_modified)

    return headers
