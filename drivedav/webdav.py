"""
WebDAV request handling for drivedav

Serves a key-value drive under a fixed mount prefix. Directories are virtual:
they exist only as key prefixes, so MKCOL is acknowledged without touching
the drive and MOVE is a copy followed by a delete. LOCK, UNLOCK and PROPPATCH
are compatibility stubs for clients that probe for Class 2 before writing;
nothing is locked and no property is stored.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from .drive import DriveAdapter
from .errors import (
    BackendFailure,
    BadRequest,
    DavError,
    DriveWriteError,
    Forbidden,
    MethodNotAllowed,
    NotFound,
    PayloadTooLarge,
    RangeNotSatisfiable,
)
from .metrics import metrics_manager
from .models import ALLOW_HEADER, DavConfig, MUTATING_METHODS
from .paths import destination_to_key, is_hidden_sidecar, path_to_key
from .propfind import (
    collect_resources,
    parse_depth,
    render_empty_multistatus,
    render_lock_discovery,
    render_multistatus,
)
from .sizes import SizeCache
from .streams import iter_content, iter_multipart
from .utils import (
    create_content_range_header,
    create_response_headers,
    format_file_size,
    generate_boundary,
    generate_lock_token,
    get_mime_type,
    parse_range_header,
)

logger = logging.getLogger(__name__)

XML_MEDIA_TYPE = 'application/xml; charset="utf-8"'

Handler = Callable[[Request], Awaitable[Response]]


class DavHandlers:
    """Per-method handlers sharing one drive adapter and one size cache"""

    def __init__(self, adapter: DriveAdapter, config: DavConfig, sizes: Optional[SizeCache] = None):
        self.adapter = adapter
        self.config = config
        self.sizes = sizes if sizes is not None else SizeCache()
        self.session_writable = False
        self.set_read_only(config.readOnly)

    @property
    def mount(self) -> str:
        return self.config.mountPath

    @property
    def mount_name(self) -> str:
        return self.mount.strip("/") or "dav"

    def set_read_only(self, read_only: bool) -> None:
        """Recompute whether this session accepts writes"""
        self.config.readOnly = read_only
        self.session_writable = self.adapter.writable and not read_only
        logger.info(f"WebDAV session writable: {self.session_writable}")

    def require_writable(self, method: str) -> None:
        """Write guard applied by the dispatcher to every mutating method"""
        if not self.session_writable:
            raise Forbidden(f"{method} not allowed: share is read-only")
        # The backend may lose write access after startup
        if method == "PUT" and not self.adapter.writable:
            raise Forbidden("PUT not allowed: drive is not writable")

    def _key(self, request: Request) -> str:
        key = path_to_key(request.scope["path"], self.mount)
        if key is None:
            raise NotFound()
        return key

    async def options(self, request: Request) -> Response:
        return Response(status_code=200, headers={"Allow": ALLOW_HEADER})

    async def propfind(self, request: Request) -> Response:
        key = self._key(request)
        depth = parse_depth(request.headers.get("depth"))

        resources = await collect_resources(
            self.adapter.session(),
            key,
            depth,
            self.mount + "/",
            self.mount_name,
            self.sizes,
        )
        logger.debug(f"PROPFIND {key!r} depth={depth}: {len(resources)} entries")

        return Response(
            content=render_multistatus(resources),
            status_code=207,
            media_type=XML_MEDIA_TYPE,
        )

    async def get(self, request: Request) -> Response:
        return await self._read(request, head=False)

    async def head(self, request: Request) -> Response:
        return await self._read(request, head=True)

    async def _read(self, request: Request, head: bool) -> Response:
        key = self._key(request)
        if not key or is_hidden_sidecar(key):
            raise NotFound()

        session = self.adapter.session()
        stat = await session.stat(key)
        if stat is not None and stat.is_collection:
            raise NotFound()
        if stat is None and not await session.exists(key):
            raise NotFound()

        size = await self.sizes.resolve(session, key)
        content_type = get_mime_type(key)
        last_modified = stat.last_modified if stat is not None else None

        specs = None
        if size is not None:
            specs = parse_range_header(request.headers.get("range"), size)

        if specs is None:
            headers = create_response_headers(size, content_type, last_modified)
            body = None if head else iter_content(session, key)
            return self._body_response(body, 200, headers)

        if not specs:
            raise RangeNotSatisfiable(size)

        if len(specs) == 1:
            spec = specs[0]
            headers = create_response_headers(spec.length, content_type, last_modified)
            headers["Content-Range"] = create_content_range_header(spec.start, spec.end, size)
            body = None if head else iter_content(session, key, spec.start, spec.end)
            return self._body_response(body, 206, headers)

        boundary = generate_boundary()
        headers = create_response_headers(
            content_type=f"multipart/byteranges; boundary={boundary}",
            last_modified=last_modified,
        )
        body = None if head else iter_multipart(session, key, specs, size, content_type, boundary)
        return self._body_response(body, 206, headers)

    @staticmethod
    def _body_response(body, status_code: int, headers: Dict[str, str]) -> Response:
        if body is None:
            response = Response(status_code=status_code, headers=headers)
            # HEAD mirrors GET: no length unless one was computed
            if "Content-Length" not in headers and "content-length" in response.headers:
                del response.headers["content-length"]
            return response
        return StreamingResponse(body, status_code=status_code, headers=headers)

    async def put(self, request: Request) -> Response:
        key = self._key(request)
        if not key:
            raise Forbidden("Cannot PUT to the drive root")

        limit = self.config.maxInlineBytes
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            raise self._too_large(limit)

        # Reading the body is what makes the server answer "Expect: 100-continue"
        body = bytearray()
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > limit:
                raise self._too_large(limit)

        session = self.adapter.session()
        try:
            primitive = await session.write(key, bytes(body))
        except DriveWriteError as e:
            logger.error(f"PUT {key!r} failed: {e}")
            raise BackendFailure(str(e))

        self.sizes.set(key, len(body))
        metrics_manager.add_upload_bytes(len(body))
        logger.info(f"PUT {key!r} ({len(body)} bytes via {primitive})")
        return Response(status_code=201)

    @staticmethod
    def _too_large(limit: int) -> PayloadTooLarge:
        return PayloadTooLarge(
            f"File too large for inline WebDAV upload (max: {format_file_size(limit)}). "
            f"Upload it with the drive's own put command instead.\n"
        )

    async def delete(self, request: Request) -> Response:
        key = self._key(request)

        if key:
            await self.adapter.session().delete(key)
            self.sizes.invalidate(key)
            logger.info(f"DELETE {key!r}")
        return Response(status_code=204)

    async def mkcol(self, request: Request) -> Response:
        self._key(request)
        return Response(status_code=201)

    async def move(self, request: Request) -> Response:
        source = self._key(request)
        destination = destination_to_key(request.headers.get("destination"), self.mount)

        if destination is None or not source or not destination:
            raise BadRequest("Missing or invalid Destination header")
        if source == destination:
            return Response(status_code=201)

        session = self.adapter.session()
        data = await session.get(source)
        if data is None:
            raise NotFound()

        try:
            await session.write(destination, data)
        except DriveWriteError as e:
            logger.error(f"MOVE {source!r} -> {destination!r} failed: {e}")
            raise BackendFailure(str(e))

        await session.delete(source)
        self.sizes.invalidate(source)
        self.sizes.set(destination, len(data))
        logger.info(f"MOVE {source!r} -> {destination!r} ({len(data)} bytes)")
        return Response(status_code=201)

    async def lock(self, request: Request) -> Response:
        self._key(request)

        token = generate_lock_token()
        return Response(
            content=render_lock_discovery(token),
            status_code=200,
            media_type=XML_MEDIA_TYPE,
            headers={"Lock-Token": f"<{token}>"},
        )

    async def unlock(self, request: Request) -> Response:
        self._key(request)
        return Response(status_code=204)

    async def proppatch(self, request: Request) -> Response:
        self._key(request)
        return Response(
            content=render_empty_multistatus(),
            status_code=207,
            media_type=XML_MEDIA_TYPE,
        )


class DavDispatcher:
    """ASGI endpoint routing every request to its handler by method"""

    def __init__(self, handlers: DavHandlers):
        self.handlers = handlers
        self.routes: Dict[str, Handler] = {
            "OPTIONS": handlers.options,
            "PROPFIND": handlers.propfind,
            "GET": handlers.get,
            "HEAD": handlers.head,
            "PUT": handlers.put,
            "DELETE": handlers.delete,
            "MKCOL": handlers.mkcol,
            "MOVE": handlers.move,
            "LOCK": handlers.lock,
            "UNLOCK": handlers.unlock,
            "PROPPATCH": handlers.proppatch,
        }

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        response = await self.dispatch(request)
        await response(scope, receive, send)

    async def dispatch(self, request: Request) -> Response:
        method = request.method.upper()

        if path_to_key(request.scope["path"], self.handlers.mount) is None:
            # Clients probe capabilities on arbitrary paths
            if method == "OPTIONS":
                return await self.handlers.options(request)
            return Response(status_code=404)

        try:
            handler = self.routes.get(method)
            if handler is None:
                raise MethodNotAllowed()
            if method in MUTATING_METHODS:
                self.handlers.require_writable(method)
            return await handler(request)
        except DavError as e:
            return self.error_response(request, e)

    @staticmethod
    def error_response(request: Request, error: DavError) -> Response:
        if error.status_code >= 500:
            logger.error(f"{request.method} {request.scope['path']} -> {error.status_code}: {error.message}")
        else:
            logger.debug(f"{request.method} {request.scope['path']} -> {error.status_code} {error.message}")
        return PlainTextResponse(error.message, status_code=error.status_code, headers=error.headers)


def create_webdav_app(adapter: DriveAdapter, config: DavConfig, sizes: Optional[SizeCache] = None) -> DavDispatcher:
    """Create the WebDAV ASGI endpoint for a drive"""
    handlers = DavHandlers(adapter, config, sizes)
    logger.info(
        f"WebDAV app created at {config.mountPath} "
        f"(writable: {handlers.session_writable}, legacy keys: {adapter.legacy_keys})"
    )
    return DavDispatcher(handlers)


__all__ = ["DavHandlers", "DavDispatcher", "create_webdav_app", "XML_MEDIA_TYPE"]
