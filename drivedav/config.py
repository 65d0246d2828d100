"""
Configuration loading and management for drivedav
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler
import asyncio
import time

from .models import (
    Config, ServerConfig, TlsConfig, DavConfig, DriveConfig,
    LoggingConfig, HotReloadConfig, INLINE_UPLOAD_LIMIT
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "drivedav.yaml"
CONFIG_ENV_VAR = "DRIVEDAV_CONFIG"

DRIVE_BACKENDS = ("memory", "directory")


class ConfigError(ValueError):
    """Raised when a configuration file holds an unusable value"""
    pass


def default_config_path() -> str:
    """Config file named by DRIVEDAV_CONFIG, else drivedav.yaml"""
    return os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH


class ConfigFileHandler(FileSystemEventHandler):
    """File system event handler for config file changes"""

    def __init__(self, config_path: Path, callback, debounce_ms: int = 1000):
        self.config_path = config_path.resolve()
        self.callback = callback
        self.last_modified = 0
        self.debounce_ms = debounce_ms

    def on_modified(self, event):
        if event.is_directory:
            return

        file_path = Path(event.src_path).resolve()
        if file_path != self.config_path:
            return

        # Editors emit several events per save
        now = time.time() * 1000
        if now - self.last_modified < self.debounce_ms:
            return
        self.last_modified = now

        logger.info(f"Configuration file changed: {file_path}")
        try:
            self.callback()
        except Exception as e:
            logger.error(f"Failed to reload configuration: {e}")


class ConfigManager:
    """Configuration manager with hot reload support"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or default_config_path()).resolve()
        self.config: Optional[Config] = None
        self.observer: Optional[Observer] = None
        self.reload_callbacks = []
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    def load_config(self) -> Config:
        """
        Load configuration from YAML file

        A missing file yields the defaults. Unreadable YAML and invalid values
        raise, so a bad file is reported at startup instead of silently
        serving with defaults.
        """
        if not self.config_path.exists():
            logger.warning(f"Configuration file not found: {self.config_path}, using defaults")
            self.config = Config()
            return self.config

        with open(self.config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path}: top level must be a mapping")

        config = self._parse_config(data)
        self.config = config
        logger.info(f"Configuration loaded from {self.config_path}")
        return config

    def _parse_config(self, data: Dict[str, Any]) -> Config:
        """Parse configuration data into Config object"""

        # Server configuration
        server_data = data.get('server') or {}
        tls_data = server_data.get('tls') or {}
        server = ServerConfig(
            addr=server_data.get('addr', '127.0.0.1'),
            port=int(server_data.get('port', 4918)),
            keepAliveSeconds=int(server_data.get('keepAliveSeconds', 5)),
            tls=TlsConfig(
                enabled=tls_data.get('enabled', False),
                certfile=tls_data.get('certfile', ''),
                keyfile=tls_data.get('keyfile', '')
            )
        )

        # WebDAV
        dav_data = data.get('dav') or {}
        dav = DavConfig(
            mountPath=str(dav_data.get('mountPath', '/dav')),
            readOnly=bool(dav_data.get('readOnly', False)),
            maxInlineBytes=int(dav_data.get('maxInlineBytes', INLINE_UPLOAD_LIMIT)),
            connectionCloseSeconds=float(dav_data.get('connectionCloseSeconds', 3))
        )
        if dav.mountPath == "/":
            raise ConfigError("dav.mountPath must not be the site root")
        if dav.maxInlineBytes <= 0:
            raise ConfigError("dav.maxInlineBytes must be positive")

        # Drive
        drive_data = data.get('drive') or {}
        drive = DriveConfig(
            backend=drive_data.get('backend', 'memory'),
            path=drive_data.get('path', './drivedav-storage'),
            legacyKeys=bool(drive_data.get('legacyKeys', False)),
            writable=bool(drive_data.get('writable', True))
        )
        if drive.backend not in DRIVE_BACKENDS:
            raise ConfigError(
                f"drive.backend must be one of {', '.join(DRIVE_BACKENDS)}, got {drive.backend!r}"
            )

        # Logging
        logging_data = data.get('logging') or {}
        logging_config = LoggingConfig(
            json=logging_data.get('json', False),
            file=logging_data.get('file', ''),
            level=str(logging_data.get('level', 'INFO')).upper(),
            max_size_mb=logging_data.get('max_size_mb', 100),
            backup_count=logging_data.get('backup_count', 5),
            accessLog=logging_data.get('accessLog', True)
        )

        # Hot reload
        reload_data = data.get('hotReload') or {}
        hot_reload = HotReloadConfig(
            enabled=reload_data.get('enabled', False),
            watchConfig=reload_data.get('watchConfig', True),
            debounceMs=reload_data.get('debounceMs', 1000)
        )

        return Config(
            server=server,
            dav=dav,
            drive=drive,
            logging=logging_config,
            hotReload=hot_reload
        )

    def start_watching(self):
        """Start watching configuration file for changes"""
        if not self.config or not self.config.hotReload.enabled or not self.config.hotReload.watchConfig:
            return

        if self.observer:
            return  # Already watching

        # Async callbacks are scheduled on the loop that started the watcher
        try:
            self.loop = asyncio.get_running_loop()
        except RuntimeError:
            self.loop = None

        try:
            self.observer = Observer()
            handler = ConfigFileHandler(
                self.config_path,
                self._on_config_changed,
                debounce_ms=self.config.hotReload.debounceMs
            )
            self.observer.schedule(handler, str(self.config_path.parent), recursive=False)
            self.observer.start()

            logger.info(f"Started watching configuration file: {self.config_path}")

        except Exception as e:
            logger.error(f"Failed to start configuration file watcher: {e}")
            self.observer = None

    def stop_watching(self):
        """Stop watching configuration file"""
        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None
            logger.info("Stopped watching configuration file")

    def _on_config_changed(self):
        """Handle configuration file changes"""
        old_config = self.config
        try:
            new_config = self.load_config()
        except Exception as e:
            logger.error(f"Failed to reload configuration, keeping previous: {e}")
            self.config = old_config
            return

        for callback in self.reload_callbacks:
            try:
                if asyncio.iscoroutinefunction(callback):
                    if self.loop is None:
                        logger.warning(f"No event loop for async reload callback {callback!r}")
                        continue
                    asyncio.run_coroutine_threadsafe(callback(old_config, new_config), self.loop)
                else:
                    callback(old_config, new_config)
            except Exception as e:
                logger.error(f"Configuration reload callback failed: {e}")

        logger.info("Configuration reloaded successfully")

    def add_reload_callback(self, callback):
        """Add callback to be called when configuration is reloaded"""
        self.reload_callbacks.append(callback)

    def remove_reload_callback(self, callback):
        """Remove reload callback"""
        if callback in self.reload_callbacks:
            self.reload_callbacks.remove(callback)

    def get_config(self) -> Config:
        """Get current configuration"""
        if self.config is None:
            self.config = self.load_config()
        return self.config


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from file"""
    return ConfigManager(config_path).load_config()
