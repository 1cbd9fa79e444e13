"""Unit tests for log data models."""

import json
import pytest
from datetime import datetime
from dataclasses import FrozenInstanceError

from bl654.logging.log_models import LogEntry


class TestLogEntry:
    """Test suite for LogEntry dataclass."""

    @pytest.fixture
    def traced(self):
        return LogEntry(
            timestamp=datetime(2025, 1, 12, 10, 30, 15, 234000),
            level="DEBUG",
            source="BL654Interface",
            message="Line sent",
            port="/dev/ttyUSB0",
            direction="TX",
            line="AT+GCTM 1"
        )

    def test_optional_fields_default_to_none(self):
        entry = LogEntry(datetime.now(), "INFO", "SerialHandler", "Port opened")

        assert entry.details is None
        assert entry.direction is None
        assert entry.line is None
        assert entry.error is None

    def test_log_entry_immutable(self, traced):
        """Test that LogEntry is frozen."""
        with pytest.raises(FrozenInstanceError):
            traced.level = "ERROR"

    def test_to_string_traced_line(self, traced):
        assert traced.to_string() == (
            "2025-01-12 10:30:15.234 | DEBUG   | BL654Interface  | Line sent | TX: AT+GCTM 1"
        )

    def test_to_string_empty_line_kept(self):
        entry = LogEntry(datetime(2025, 1, 12), "DEBUG", "ReaderLoop", "Line received",
                         direction="RX", line="")
        assert entry.to_string().endswith("| RX: ")

    def test_to_string_error(self):
        entry = LogEntry(datetime(2025, 1, 12), "ERROR", "ReaderLoop", "Error occurred",
                         error="device disconnected")
        assert entry.to_string().endswith("| ERROR: device disconnected")

    def test_to_json(self, traced):
        data = json.loads(traced.to_json())

        assert data["timestamp"] == "2025-01-12T10:30:15.234000"
        assert data["direction"] == "TX"
        assert data["line"] == "AT+GCTM 1"

    def test_from_dict_parses_timestamp(self, traced):
        restored = LogEntry.from_dict(traced.to_dict())
        assert restored == traced

    def test_from_dict_missing_optional_fields(self):
        entry = LogEntry.from_dict({
            "timestamp": "2025-01-12T10:30:15",
            "level": "INFO",
            "source": "SerialHandler",
            "message": "Port closed"
        })
        assert entry.timestamp == datetime(2025, 1, 12, 10, 30, 15)
        assert entry.port is None
