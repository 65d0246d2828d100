"""Tests for YAML configuration loading and hot reload."""

from __future__ import annotations

import logging
import textwrap

import pytest

from drivedav.config import ConfigError, ConfigManager, default_config_path, load_config
from drivedav.main import build_drive, create_app
from drivedav.fs import DirectoryDrive
from drivedav.memory import MemoryDrive
from drivedav.models import Config, DriveConfig, INLINE_UPLOAD_LIMIT


def write_config(tmp_path, body: str):
    config_file = tmp_path / "drivedav.yaml"
    config_file.write_text(textwrap.dedent(body), encoding="utf-8")
    return config_file


class TestLoading:
    """Parsing the YAML file into dataclasses"""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yaml"))

        assert config == Config()
        assert config.server.port == 4918
        assert config.dav.mountPath == "/dav"
        assert config.dav.maxInlineBytes == INLINE_UPLOAD_LIMIT
        assert config.drive.backend == "memory"

    def test_full_file(self, tmp_path):
        config_file = write_config(tmp_path, f"""
            server:
              addr: "0.0.0.0"
              port: 8080
              keepAliveSeconds: 30
              tls:
                enabled: true
                certfile: cert.pem
                keyfile: key.pem
            dav:
              mountPath: share/
              readOnly: true
              maxInlineBytes: 1024
              connectionCloseSeconds: 0
            drive:
              backend: directory
              path: "{(tmp_path / 'store').as_posix()}"
              legacyKeys: true
              writable: false
            logging:
              json: true
              level: debug
              accessLog: false
            hotReload:
              enabled: true
              debounceMs: 250
            """)

        config = load_config(str(config_file))

        assert config.server.addr == "0.0.0.0"
        assert config.server.port == 8080
        assert config.server.keepAliveSeconds == 30
        assert config.server.tls.enabled is True
        assert config.server.tls.certfile == "cert.pem"

        assert config.dav.mountPath == "/share"
        assert config.dav.readOnly is True
        assert config.dav.maxInlineBytes == 1024
        assert config.dav.connectionCloseSeconds == 0

        assert config.drive.backend == "directory"
        assert config.drive.legacyKeys is True
        assert config.drive.writable is False

        assert config.logging.json is True
        assert config.logging.level == "DEBUG"
        assert config.logging.accessLog is False

        assert config.hotReload.enabled is True
        assert config.hotReload.debounceMs == 250

    def test_empty_sections(self, tmp_path):
        config_file = write_config(tmp_path, """
            server:
            dav:
            """)

        assert load_config(str(config_file)) == Config()

    @pytest.mark.parametrize("body", [
        "drive: {backend: s3}\n",
        "dav: {mountPath: /}\n",
        "dav: {maxInlineBytes: 0}\n",
        "- just\n- a list\n",
    ])
    def test_invalid_values(self, tmp_path, body):
        config_file = write_config(tmp_path, body)

        with pytest.raises(ConfigError):
            load_config(str(config_file))

    def test_env_var_names_default_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DRIVEDAV_CONFIG", str(tmp_path / "custom.yaml"))
        assert default_config_path() == str(tmp_path / "custom.yaml")

        monkeypatch.delenv("DRIVEDAV_CONFIG")
        assert default_config_path() == "drivedav.yaml"


class TestBackends:
    """Drive construction from the drive section"""

    def test_memory(self):
        drive = build_drive(DriveConfig(backend="memory", writable=False))
        assert isinstance(drive, MemoryDrive)
        assert drive.writable is False

    def test_directory_is_created(self, tmp_path):
        root = tmp_path / "nested" / "store"
        drive = build_drive(DriveConfig(backend="directory", path=str(root)))

        assert isinstance(drive, DirectoryDrive)
        assert root.is_dir()

    def test_unknown(self):
        with pytest.raises(ValueError):
            build_drive(DriveConfig(backend="tape"))


class TestHotReload:
    """Reload callbacks applied to a running app"""

    def test_callbacks_receive_old_and_new(self, tmp_path):
        config_file = write_config(tmp_path, "dav: {readOnly: false}\n")
        manager = ConfigManager(str(config_file))
        manager.load_config()

        seen = []
        manager.add_reload_callback(lambda old, new: seen.append((old.dav.readOnly, new.dav.readOnly)))

        config_file.write_text("dav: {readOnly: true}\n", encoding="utf-8")
        manager._on_config_changed()

        assert seen == [(False, True)]
        assert manager.get_config().dav.readOnly is True

    def test_broken_file_keeps_previous_config(self, tmp_path):
        config_file = write_config(tmp_path, "dav: {readOnly: false}\n")
        manager = ConfigManager(str(config_file))
        previous = manager.load_config()

        called = []
        manager.add_reload_callback(lambda old, new: called.append(new))

        config_file.write_text("drive: {backend: nowhere}\n", encoding="utf-8")
        manager._on_config_changed()

        assert called == []
        assert manager.get_config() is previous

    def test_app_applies_read_only_and_level(self, tmp_path):
        config_file = write_config(tmp_path, """
            dav: {readOnly: false, connectionCloseSeconds: 0}
            logging: {level: INFO}
            """)
        app = create_app(str(config_file), drive=MemoryDrive())
        assert app.state.dav.session_writable is True

        config_file.write_text(textwrap.dedent("""
            dav: {readOnly: true, connectionCloseSeconds: 0}
            logging: {level: WARNING}
            """), encoding="utf-8")
        app.state.config_manager._on_config_changed()

        assert app.state.dav.session_writable is False
        assert logging.getLogger().level == logging.WARNING
