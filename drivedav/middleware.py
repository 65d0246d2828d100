"""
Middleware for drivedav
"""

import logging
import time
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .metrics import metrics_manager
from .models import Config

logger = logging.getLogger(__name__)

DAV_HEADERS = {
    "DAV": "1,2",
    "MS-Author-Via": "DAV",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Expose-Headers": "DAV, content-length, Allow",
}


def get_client_ip(request: Request) -> str:
    """Client address, honouring a reverse proxy's X-Forwarded-For"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "-"


class DavHeadersMiddleware(BaseHTTPMiddleware):
    """
    Stamps the WebDAV capability and CORS headers on every response.

    For ``connection_close_seconds`` after startup, responses also carry
    ``Connection: close`` so file managers that kept a socket open against a
    previous server process reconnect instead of reusing it. The window opens
    when the middleware stack is built, which Starlette does on the first
    ASGI event (lifespan startup under uvicorn).
    """

    def __init__(self, app: FastAPI, connection_close_seconds: float = 0.0,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__(app)
        self.connection_close_seconds = connection_close_seconds
        self.clock = clock
        self.started_at = clock()

    @property
    def in_startup_window(self) -> bool:
        return self.clock() - self.started_at < self.connection_close_seconds

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        for name, value in DAV_HEADERS.items():
            if name not in response.headers:
                response.headers[name] = value
        if self.in_startup_window:
            response.headers["Connection"] = "close"

        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Access logging middleware"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        client_ip = get_client_ip(request)

        try:
            response = await call_next(request)

            duration = time.time() - start_time
            self._log_access(request, response, duration, client_ip)
            metrics_manager.record_request(request.method, response.status_code, duration)

            return response

        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"Request failed: {request.method} {request.url.path} - {e}")
            self._log_access(request, None, duration, client_ip, error=str(e))
            metrics_manager.record_request(request.method, 500, duration)
            raise

    def _log_access(
        self,
        request: Request,
        response: Optional[Response],
        duration: float,
        client_ip: str,
        error: Optional[str] = None
    ):
        """Log access information"""

        status_code = response.status_code if response else 500
        content_length = response.headers.get("content-length", "-") if response else "-"

        log_data = {
            "method": request.method,
            "path": request.scope["path"],
            "status": status_code,
            "size": content_length,
            "duration": round(duration * 1000, 2),  # milliseconds
            "ip": client_ip,
            "user_agent": request.headers.get("user-agent", "-"),
        }
        if "range" in request.headers:
            log_data["range"] = request.headers["range"]
        if error:
            log_data["error"] = error

        if status_code >= 500:
            logger.error(f"ACCESS {log_data}")
        elif status_code >= 400:
            logger.warning(f"ACCESS {log_data}")
        else:
            logger.info(f"ACCESS {log_data}")


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Global exception handler middleware"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except Exception as e:
            logger.exception(f"Unhandled exception: {e}")
            metrics_manager.increment_errors()

            return PlainTextResponse("Internal server error\n", status_code=500)


def setup_middleware(app: FastAPI, config: Config):
    """Setup all middleware for the application"""

    # Innermost first: exceptions become 500s before they are logged and stamped
    app.add_middleware(ExceptionHandlerMiddleware)

    if config.logging.accessLog:
        app.add_middleware(AccessLogMiddleware)

    app.add_middleware(
        DavHeadersMiddleware,
        connection_close_seconds=config.dav.connectionCloseSeconds,
    )

    # Browser preflights; plain OPTIONS requests still reach the WebDAV handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["DAV", "content-length", "Allow"],
    )

    logger.info("Middleware setup complete")
