"""Unit tests for ConfigManager layered loading."""

import os

import pytest

from bl654.config import ConfigManager, LogLevel


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Run every test with no config file on the search path and no BL654_ variables."""
    for name in list(os.environ):
        if name.startswith("BL654_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    ConfigManager.reset()
    yield
    ConfigManager.reset()


def write_config(path, text):
    path.write_text(text, encoding="utf-8")
    return path


class TestSingleton:
    """Test singleton access."""

    def test_instance_before_initialize(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            ConfigManager.instance()

    def test_constructor_after_initialize(self):
        ConfigManager.initialize()
        with pytest.raises(RuntimeError):
            ConfigManager()

    def test_instance_returns_initialized(self):
        manager = ConfigManager.initialize()
        assert ConfigManager.instance() is manager


class TestDefaults:
    """Test zero-config operation."""

    def test_defaults_without_file(self):
        config = ConfigManager.initialize().get_config()

        assert config.serial.port is None
        assert config.serial.baud_rate == 115200
        assert config.serial.rtscts is True
        assert config.timeouts.connect == 5.0
        assert config.reader.fifo_capacity == 1024
        assert config.logging.level is LogLevel.INFO

    def test_no_config_path(self):
        assert ConfigManager.initialize().config_path is None


class TestFileLoading:
    """Test YAML file layer."""

    def test_explicit_file(self, tmp_path):
        path = write_config(tmp_path / "custom.yaml", (
            "serial:\n"
            "  port: /dev/ttyUSB1\n"
            "  baud_rate: 1000000\n"
            "timeouts:\n"
            "  connect: 10\n"
            "logging:\n"
            "  level: debug\n"
        ))

        manager = ConfigManager.initialize(config_path=path)
        config = manager.get_config()

        assert config.serial.port == "/dev/ttyUSB1"
        assert config.serial.baud_rate == 1000000
        assert config.serial.rtscts is True
        assert config.timeouts.connect == 10
        assert config.logging.level is LogLevel.DEBUG
        assert manager.config_path == path

    def test_string_path_accepted(self, tmp_path):
        path = write_config(tmp_path / "custom.yaml", "serial:\n  port: COM7\n")
        config = ConfigManager.initialize(config_path=str(path)).get_config()
        assert config.serial.port == "COM7"

    def test_file_in_working_directory(self, tmp_path):
        write_config(tmp_path / "bl654.yaml", "reader:\n  fifo_capacity: 64\n")
        assert ConfigManager.initialize().get_config().reader.fifo_capacity == 64

    def test_file_in_home_directory(self, tmp_path):
        home_dir = tmp_path / "home" / ".bl654"
        home_dir.mkdir(parents=True)
        write_config(home_dir / "config.yaml", "reader:\n  join_timeout: 2.0\n")

        assert ConfigManager.initialize().get_config().reader.join_timeout == 2.0

    def test_empty_file(self, tmp_path):
        path = write_config(tmp_path / "empty.yaml", "")
        assert ConfigManager.initialize(config_path=path).get_config().serial.baud_rate == 115200

    def test_invalid_yaml_falls_back_to_defaults(self, tmp_path):
        path = write_config(tmp_path / "broken.yaml", "serial: [unclosed\n")

        manager = ConfigManager.initialize(config_path=path)

        assert manager.get_config().serial.baud_rate == 115200
        assert manager.config_path is None

    def test_non_mapping_file_falls_back_to_defaults(self, tmp_path):
        path = write_config(tmp_path / "list.yaml", "- serial\n- timeouts\n")
        assert ConfigManager.initialize(config_path=path).config_path is None

    def test_missing_explicit_file(self, tmp_path):
        manager = ConfigManager.initialize(config_path=tmp_path / "missing.yaml")
        assert manager.config_path is None


class TestEnvironmentOverrides:
    """Test BL654_SECTION_KEY overrides."""

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = write_config(tmp_path / "custom.yaml", "serial:\n  baud_rate: 9600\n")
        monkeypatch.setenv("BL654_SERIAL_BAUD_RATE", "460800")
        monkeypatch.setenv("BL654_SERIAL_PORT", "/dev/ttyACM0")

        config = ConfigManager.initialize(config_path=path).get_config()

        assert config.serial.baud_rate == 460800
        assert config.serial.port == "/dev/ttyACM0"

    def test_env_value_types(self, monkeypatch):
        monkeypatch.setenv("BL654_LOGGING_TRACE_TRAFFIC", "yes")
        monkeypatch.setenv("BL654_SERIAL_RTSCTS", "off")
        monkeypatch.setenv("BL654_TIMEOUTS_SCAN_GRACE", "2.5")

        config = ConfigManager.initialize().get_config()

        assert config.logging.trace_traffic is True
        assert config.serial.rtscts is False
        assert config.timeouts.scan_grace == 2.5

    @pytest.mark.parametrize("raw,expected", [
        ("true", True),
        ("OFF", False),
        ("1", 1),
        ("0", 0),
        ("-3", -3),
        ("0.25", 0.25),
        ("/dev/ttyUSB0", "/dev/ttyUSB0"),
    ])
    def test_parse_env_value(self, raw, expected):
        value = ConfigManager._parse_env_value(raw)
        assert value == expected
        assert type(value) is type(expected)

    def test_malformed_env_name_ignored(self, monkeypatch):
        monkeypatch.setenv("BL654_SERIAL", "x")
        assert ConfigManager.initialize().get_config().serial.port is None

    def test_invalid_env_value_rejected(self, monkeypatch):
        monkeypatch.setenv("BL654_SERIAL_BAUD_RATE", "12345")
        with pytest.raises(ValueError, match="baud_rate"):
            ConfigManager.initialize()

    def test_lower_case_level_from_env(self, monkeypatch):
        monkeypatch.setenv("BL654_LOGGING_LEVEL", "warning")
        assert ConfigManager.initialize().get_config().logging.level is LogLevel.WARNING


class TestValidation:
    """Test validation during initialization."""

    def test_invalid_value(self, tmp_path):
        path = write_config(tmp_path / "bad.yaml", "timeouts:\n  connect: -1\n")
        with pytest.raises(ValueError, match="Configuration validation failed"):
            ConfigManager.initialize(config_path=path)

    def test_skip_validation(self, tmp_path):
        path = write_config(tmp_path / "bad.yaml", "reader:\n  fifo_capacity: 0\n")
        config = ConfigManager.initialize(config_path=path, skip_validation=True).get_config()
        assert config.reader.fifo_capacity == 0

    def test_unknown_level_skipped_without_validation(self, tmp_path):
        path = write_config(tmp_path / "bad.yaml", "logging:\n  level: verbose\n")
        config = ConfigManager.initialize(config_path=path, skip_validation=True).get_config()
        assert config.logging.level is LogLevel.INFO

    def test_unknown_fields_tolerated_at_load(self, tmp_path):
        path = write_config(tmp_path / "extra.yaml", "serial:\n  parity: none\n")
        assert ConfigManager.initialize(config_path=path).get_config().serial.baud_rate == 115200

    def test_validate_current_config(self):
        assert ConfigManager.initialize().validate() == []


class TestShowConfig:
    """Test value source tracking."""

    def test_sources(self, tmp_path, monkeypatch):
        path = write_config(tmp_path / "custom.yaml", "timeouts:\n  connect: 8\n")
        monkeypatch.setenv("BL654_SERIAL_PORT", "COM4")

        shown = ConfigManager.initialize(config_path=path).show_config()

        assert shown["serial"]["port"] == {"value": "COM4", "source": "env"}
        assert shown["timeouts"]["connect"] == {"value": 8, "source": "file"}
        assert shown["serial"]["baud_rate"]["source"] == "default"
        assert shown["logging"]["level"]["value"] == "INFO"
