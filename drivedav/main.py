"""
Main application factory for drivedav
"""

import logging
import logging.handlers
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI
from starlette.routing import Route

from . import __version__
from .config import ConfigManager, default_config_path
from .drive import DriveAdapter
from .fs import DirectoryDrive
from .memory import MemoryDrive
from .metrics import metrics_manager
from .middleware import setup_middleware
from .models import Config, DriveConfig
from .utils import format_file_size
from .webdav import create_webdav_app


logger = logging.getLogger(__name__)


def setup_logging(config: Config):
    """Setup logging configuration"""
    log_config = config.logging

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_config.level.upper(), logging.INFO))

    # Clear existing handlers
    root_logger.handlers.clear()

    if log_config.json:
        formatter = logging.Formatter(
            '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","msg":"%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_config.file:
        log_file = Path(log_config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=log_config.max_size_mb * 1024 * 1024,
            backupCount=log_config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def build_drive(drive_config: DriveConfig):
    """Instantiate the configured drive backend"""
    if drive_config.backend == "memory":
        logger.info("Using in-memory drive (contents are lost on exit)")
        return MemoryDrive(writable=drive_config.writable)

    if drive_config.backend == "directory":
        root = Path(drive_config.path)
        root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Using directory drive at {root.resolve()}")
        return DirectoryDrive(str(root), writable=drive_config.writable)

    raise ValueError(f"Unknown drive backend: {drive_config.backend}")


def create_app(config_path: Optional[str] = None, drive=None, config: Optional[Config] = None) -> FastAPI:
    """
    Create FastAPI application

    Args:
        config_path: YAML file to load; defaults to $DRIVEDAV_CONFIG or drivedav.yaml
        drive: Backend to serve; built from the drive section when omitted
        config: Already parsed configuration, used instead of reading the file
    """

    config_manager = ConfigManager(config_path)
    if config is None:
        config = config_manager.load_config()
    else:
        config_manager.config = config

    setup_logging(config)

    if drive is None:
        drive = build_drive(config.drive)

    adapter = DriveAdapter(drive, legacy_keys=config.drive.legacyKeys)
    dispatcher = create_webdav_app(adapter, config.dav)
    handlers = dispatcher.handlers

    def apply_reloaded_config(old_config: Config, new_config: Config):
        if old_config is None or old_config.dav.readOnly != new_config.dav.readOnly:
            handlers.set_read_only(new_config.dav.readOnly)
        if old_config is None or old_config.logging.level != new_config.logging.level:
            logging.getLogger().setLevel(getattr(logging, new_config.logging.level, logging.INFO))
            logger.info(f"Log level set to {new_config.logging.level}")

    config_manager.add_reload_callback(apply_reloaded_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"drivedav {__version__} serving {config.dav.mountPath} on {config.server.addr}:{config.server.port}")
        logger.info(f"Drive: {config.drive.backend} (writable: {handlers.session_writable}, legacy keys: {config.drive.legacyKeys})")
        logger.info(f"Inline upload limit: {format_file_size(config.dav.maxInlineBytes)}")
        logger.info(f"TLS: {'enabled' if config.server.tls.enabled else 'disabled'}")
        config_manager.start_watching()

        yield

        config_manager.stop_watching()
        summary = metrics_manager.get_metrics()
        logger.info(
            f"Served {summary['requests']['total']} requests, "
            f"{format_file_size(summary['transfer']['upload_bytes'])} up, "
            f"{format_file_size(summary['transfer']['download_bytes'])} down, "
            f"{summary['errors']['total']} errors"
        )
        logger.info("drivedav shutdown complete")

    # No OpenAPI routes: every path belongs to the WebDAV dispatcher
    app = FastAPI(
        title="drivedav",
        description="WebDAV gateway for key-addressed drives",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.config_manager = config_manager
    app.state.metrics = metrics_manager
    app.state.drive = adapter
    app.state.dav = handlers

    setup_middleware(app, config)

    # Any method, any path; the dispatcher answers 404/405 itself
    app.router.routes.append(Route("/{path:path}", endpoint=dispatcher))

    return app


def main():
    """Main entry point for running the server"""
    import argparse

    parser = argparse.ArgumentParser(description="drivedav WebDAV server")
    parser.add_argument("--config", "-c", default=None,
                        help="Configuration file path (default: $DRIVEDAV_CONFIG or drivedav.yaml)")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--read-only", action="store_true", help="Refuse all writes")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    config_path = args.config or default_config_path()
    config = ConfigManager(config_path).load_config()

    # Command line wins over the file
    if args.host:
        config.server.addr = args.host
    if args.port:
        config.server.port = args.port
    if args.read_only:
        config.dav.readOnly = True
    if args.debug:
        config.logging.level = "DEBUG"

    app = create_app(config_path, config=config)

    ssl_keyfile = None
    ssl_certfile = None
    if config.server.tls.enabled:
        ssl_keyfile = config.server.tls.keyfile
        ssl_certfile = config.server.tls.certfile

    uvicorn.run(
        app,
        host=config.server.addr,
        port=config.server.port,
        timeout_keep_alive=config.server.keepAliveSeconds,
        ssl_keyfile=ssl_keyfile,
        ssl_certfile=ssl_certfile,
        access_log=False,  # We handle access logging ourselves
        log_config=None,
        server_header=False,
    )


if __name__ == "__main__":
    main()
