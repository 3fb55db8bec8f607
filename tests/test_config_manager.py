"""Tests for the INI configuration manager."""

from pathlib import Path

import pytest

from nepaltools.exceptions import ConfigurationError
from nepaltools.models.config import BackendKind
from nepaltools.storage.config_manager import ConfigManager


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    return tmp_path / "nepaltools" / "config.ini"


class TestConfigManager:
    """Tests for loading, saving and migrating config.ini."""

    def test_missing_file(self, config_file: Path) -> None:
        with pytest.raises(ConfigurationError, match="nepaltools init"):
            ConfigManager(config_file).load_config()

    def test_save_then_load(self, config_file: Path) -> None:
        manager = ConfigManager(config_file)
        manager.save_new_config({"backend": "json", "json_logs": True})

        config = manager.load_config()

        assert config.backend is BackendKind.JSON
        assert config.json_logs is True
        assert config.config_path == str(config_file.parent)
        assert config.resolved_data_dir == str(config_file.parent)

    def test_defaults_written(self, config_file: Path) -> None:
        ConfigManager(config_file).save_new_config({})
        text = config_file.read_text(encoding="utf-8")
        assert "backend = sqlite" in text
        assert "json_logs = false" in text

    def test_cli_override(self, config_file: Path) -> None:
        manager = ConfigManager(config_file)
        manager.save_new_config({"backend": "json"})
        assert manager.load_config({"backend": "memory"}).backend is BackendKind.MEMORY

    def test_migrates_missing_keys(self, config_file: Path) -> None:
        config_file.parent.mkdir(parents=True)
        config_file.write_text("[DEFAULT]\nbackend = json\n", encoding="utf-8")

        config = ConfigManager(config_file).load_config()

        assert config.backend is BackendKind.JSON
        text = config_file.read_text(encoding="utf-8")
        for key in ("data_dir", "json_logs", "log_dir"):
            assert key in text

    def test_invalid_backend(self, config_file: Path) -> None:
        manager = ConfigManager(config_file)
        manager.save_new_config({"backend": "redis"})
        with pytest.raises(ConfigurationError, match="validation failed"):
            manager.load_config()

    def test_invalid_boolean(self, config_file: Path) -> None:
        config_file.parent.mkdir(parents=True)
        config_file.write_text(
            "[DEFAULT]\nbackend = json\njson_logs = maybe\n", encoding="utf-8"
        )
        with pytest.raises(ConfigurationError):
            ConfigManager(config_file).load_config()

    def test_unparseable_file(self, config_file: Path) -> None:
        config_file.parent.mkdir(parents=True)
        config_file.write_text("backend = json\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="parsing"):
            ConfigManager(config_file).load_config()
