"""
Multistatus XML bodies for PROPFIND, PROPPATCH and LOCK
"""

import logging
import time
import xml.etree.ElementTree as ET
from typing import List, Optional

from .drive import DriveSession
from .models import ResourceInfo
from .paths import display_name, key_to_href, normalize_key
from .sizes import SizeCache
from .utils import http_date

logger = logging.getLogger(__name__)

DAV_NS = "DAV:"
LOCK_TIMEOUT_SECONDS = 3600

ET.register_namespace("d", DAV_NS)


def _dav(tag: str) -> str:
    return f"{{{DAV_NS}}}{tag}"


def parse_depth(depth_header: Optional[str]) -> int:
    """Only a literal "0" limits the listing to the resource itself"""
    return 0 if (depth_header or "").strip() == "0" else 1


async def describe(
    session: DriveSession,
    key: str,
    base_href: str,
    mount_name: str,
    sizes: Optional[SizeCache] = None,
    now: Optional[float] = None,
) -> ResourceInfo:
    """Build the PROPFIND entry for key, filling unknowns with defaults"""
    now = time.time() if now is None else now
    key = normalize_key(key)

    try:
        stat = await session.stat(key)
    except Exception as e:
        logger.debug(f"stat({key!r}) failed during PROPFIND: {e}")
        stat = None

    is_collection = bool(stat and stat.is_collection)
    size = 0
    if not is_collection:
        cached = sizes.get(key) if sizes is not None else None
        if stat is not None and stat.size is not None:
            size = stat.size
        elif cached is not None:
            size = cached

    return ResourceInfo(
        key=key,
        href=key_to_href(base_href, key, is_collection),
        is_collection=is_collection,
        size=size,
        last_modified=(stat.last_modified if stat and stat.last_modified else now),
        display_name=display_name(key, mount_name),
    )


async def collect_resources(
    session: DriveSession,
    key: str,
    depth: int,
    base_href: str,
    mount_name: str,
    sizes: Optional[SizeCache] = None,
) -> List[ResourceInfo]:
    """
    Entries for a PROPFIND response

    The target always comes first. At depth 1 a collection target is followed
    by one entry per immediate child, deduplicated by canonical key.
    """
    now = time.time()
    target = await describe(session, key, base_href, mount_name, sizes, now)
    resources = [target]

    if depth < 1 or not target.is_collection:
        return resources

    seen = {target.key}
    async for child in session.list(key):
        if child in seen:
            continue
        seen.add(child)
        resources.append(await describe(session, child, base_href, mount_name, sizes, now))

    return resources


def _to_bytes(root: ET.Element) -> bytes:
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def render_multistatus(resources: List[ResourceInfo]) -> bytes:
    """Serialize entries into a DAV:multistatus document"""
    multistatus = ET.Element(_dav("multistatus"))

    for resource in resources:
        response = ET.SubElement(multistatus, _dav("response"))
        ET.SubElement(response, _dav("href")).text = resource.href

        propstat = ET.SubElement(response, _dav("propstat"))
        prop = ET.SubElement(propstat, _dav("prop"))

        resourcetype = ET.SubElement(prop, _dav("resourcetype"))
        if resource.is_collection:
            ET.SubElement(resourcetype, _dav("collection"))

        ET.SubElement(prop, _dav("getcontentlength")).text = str(resource.size)
        ET.SubElement(prop, _dav("getlastmodified")).text = http_date(resource.last_modified)
        ET.SubElement(prop, _dav("displayname")).text = resource.display_name

        ET.SubElement(propstat, _dav("status")).text = "HTTP/1.1 200 OK"

    return _to_bytes(multistatus)


def render_empty_multistatus() -> bytes:
    """PROPPATCH answer: nothing was stored, nothing failed"""
    return _to_bytes(ET.Element(_dav("multistatus")))


def render_lock_discovery(token: str, timeout: int = LOCK_TIMEOUT_SECONDS) -> bytes:
    """Lock discovery body for a fabricated exclusive write lock"""
    prop = ET.Element(_dav("prop"))
    discovery = ET.SubElement(prop, _dav("lockdiscovery"))
    active = ET.SubElement(discovery, _dav("activelock"))

    ET.SubElement(ET.SubElement(active, _dav("locktype")), _dav("write"))
    ET.SubElement(ET.SubElement(active, _dav("lockscope")), _dav("exclusive"))
    ET.SubElement(active, _dav("depth")).text = "infinity"
    ET.SubElement(active, _dav("timeout")).text = f"Second-{timeout}"
    locktoken = ET.SubElement(active, _dav("locktoken"))
    ET.SubElement(locktoken, _dav("href")).text = token

    return _to_bytes(prop)


__all__ = [
    "parse_depth",
    "describe",
    "collect_resources",
    "render_multistatus",
    "render_empty_multistatus",
    "render_lock_discovery",
]
