"""Error taxonomy for the WebDAV layer."""

from __future__ import annotations

from typing import Dict, Optional

from .models import ALLOW_HEADER


class DavError(Exception):
    """Base class for errors that map directly onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str = "", headers: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.headers = headers or {}


class BadRequest(DavError):
    status_code = 400


class Forbidden(DavError):
    status_code = 403


class NotFound(DavError):
    status_code = 404


class MethodNotAllowed(DavError):
    status_code = 405

    def __init__(self, message: str = ""):
        super().__init__(message, {"Allow": ALLOW_HEADER})


class PayloadTooLarge(DavError):
    status_code = 413


class RangeNotSatisfiable(DavError):
    status_code = 416

    def __init__(self, size: int):
        super().__init__("", {"Content-Range": f"bytes */{size}"})
        self.size = size


class BackendFailure(DavError):
    status_code = 500


class DriveWriteError(Exception):
    """Raised when every write primitive of a backend failed."""

    def __init__(self, key: str, attempts: Dict[str, BaseException]):
        tried = ", ".join(f"{name}: {exc!r}" for name, exc in attempts.items()) or "no write primitive"
        super().__init__(f"Failed to write {key!r} ({tried})")
        self.key = key
        self.attempts = attempts


__all__ = [
    "DavError",
    "BadRequest",
    "Forbidden",
    "NotFound",
    "MethodNotAllowed",
    "PayloadTooLarge",
    "RangeNotSatisfiable",
    "BackendFailure",
    "DriveWriteError",
]
