"""
Translation between URL paths under the mount prefix and drive keys
"""

import re
from typing import Optional
from urllib.parse import quote, unquote, urlparse

_MULTI_SLASH = re.compile(r"/{2,}")


def normalize_key(key: str) -> str:
    """Return the canonical key form: no leading, trailing or doubled slashes"""
    return "/".join(part for part in key.replace("\\", "/").split("/") if part)


def path_to_key(path: str, mount: str) -> Optional[str]:
    """
    Map a decoded request path to a drive key

    Args:
        path: URL path, already percent-decoded (e.g. "/dav/notes.txt")
        mount: Mount prefix (e.g. "/dav")

    Returns:
        Canonical key ("" for the mount root) or None when the path is
        outside the mount
    """
    if not path:
        return None

    path = _MULTI_SLASH.sub("/", path)
    mount = "/" + mount.strip("/")

    if mount == "/":
        return normalize_key(path)

    if path == mount:
        return ""
    if not path.startswith(mount + "/"):
        return None

    return normalize_key(path[len(mount):])


def destination_to_key(destination: Optional[str], mount: str) -> Optional[str]:
    """Resolve a MOVE Destination header (absolute URL or bare path) to a key"""
    if not destination:
        return None

    try:
        parsed = urlparse(destination.strip())
    except ValueError:
        return None

    return path_to_key(unquote(parsed.path), mount)


def key_to_href(base_href: str, key: str, is_collection: bool = False) -> str:
    """Build an href for key under base_href, quoting each segment"""
    segments = [quote(part, safe="") for part in normalize_key(key).split("/") if part]
    href = base_href.rstrip("/") + "/" + "/".join(segments)
    if is_collection and not href.endswith("/"):
        href += "/"
    return _MULTI_SLASH.sub("/", href)


def display_name(key: str, default: str = "") -> str:
    """Last path segment of key"""
    key = normalize_key(key)
    return key.rsplit("/", 1)[-1] if key else default


def join_key(prefix: str, name: str) -> str:
    return normalize_key(f"{prefix}/{name}")


def is_hidden_sidecar(key: str) -> bool:
    """True for AppleDouble "._name" metadata files written by macOS clients"""
    return display_name(key).startswith("._")
