"""
Data models and constants for drivedav
"""

from dataclasses import dataclass, field
from typing import Optional


INLINE_UPLOAD_LIMIT = 16 * 1024 * 1024

DAV_METHODS = (
    "OPTIONS", "PROPFIND", "GET", "HEAD", "PUT", "DELETE",
    "MKCOL", "MOVE", "LOCK", "UNLOCK", "PROPPATCH",
)
ALLOW_HEADER = ",".join(DAV_METHODS)

# Methods gated behind the write guard
MUTATING_METHODS = frozenset({"PUT", "DELETE", "MKCOL", "MOVE", "LOCK", "UNLOCK", "PROPPATCH"})


@dataclass
class EntryStat:
    """Metadata a drive reports for a key"""
    is_collection: bool = False
    size: Optional[int] = None
    last_modified: Optional[float] = None


@dataclass
class ResourceInfo:
    """A single PROPFIND entry"""
    key: str
    href: str
    is_collection: bool
    size: int
    last_modified: float
    display_name: str


@dataclass(frozen=True)
class RangeSpec:
    """Inclusive byte window, 0 <= start <= end < size"""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


@dataclass
class TlsConfig:
    """TLS configuration"""
    enabled: bool = False
    certfile: str = ""
    keyfile: str = ""


@dataclass
class ServerConfig:
    """Server configuration"""
    addr: str = "127.0.0.1"
    port: int = 4918
    keepAliveSeconds: int = 5
    tls: TlsConfig = field(default_factory=TlsConfig)


@dataclass
class DavConfig:
    """WebDAV configuration"""
    mountPath: str = "/dav"
    readOnly: bool = False
    maxInlineBytes: int = INLINE_UPLOAD_LIMIT
    connectionCloseSeconds: float = 3.0

    def __post_init__(self):
        self.mountPath = "/" + self.mountPath.strip("/")


@dataclass
class DriveConfig:
    """Backing drive configuration"""
    backend: str = "memory"
    path: str = "./drivedav-storage"
    legacyKeys: bool = False
    writable: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration"""
    json: bool = False
    file: str = ""
    level: str = "INFO"
    max_size_mb: int = 100
    backup_count: int = 5
    accessLog: bool = True


@dataclass
class HotReloadConfig:
    """Hot reload configuration"""
    enabled: bool = False
    watchConfig: bool = True
    debounceMs: int = 1000


@dataclass
class Config:
    """Main configuration container"""
    server: ServerConfig = field(default_factory=ServerConfig)
    dav: DavConfig = field(default_factory=DavConfig)
    drive: DriveConfig = field(default_factory=DriveConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    hotReload: HotReloadConfig = field(default_factory=HotReloadConfig)


# Extension based content types served on GET/HEAD
MIME_TYPES = {
    '.txt': 'text/plain; charset=utf-8',
    '.md': 'text/markdown; charset=utf-8',
    '.json': 'application/json',
    '.html': 'text/html; charset=utf-8',
    '.csv': 'text/csv; charset=utf-8',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.pdf': 'application/pdf',
    '.mp4': 'video/mp4',
    '.mp3': 'audio/mpeg',
}

# Default MIME type for unknown files
DEFAULT_MIME_TYPE = 'application/octet-stream'
