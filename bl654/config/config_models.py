"""Configuration data models for the BL654 interface.

This module defines immutable configuration dataclasses with defaults that
match the module's factory settings, so the interface runs without a
configuration file.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any


class LogLevel(Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SerialConfig:
    """Serial port configuration."""
    port: Optional[str] = None
    baud_rate: int = 115200
    rtscts: bool = True
    line_terminator: str = "\r"
    write_timeout: float = 1.0


@dataclass(frozen=True)
class TimeoutConfig:
    """Response timeouts in seconds."""
    at_check: float = 0.25
    command: float = 1.0
    connect: float = 5.0
    gatt_line: float = 1.5
    read: float = 0.5
    write: float = 1.0
    end_scan: float = 0.3
    scan_grace: float = 5.0


@dataclass(frozen=True)
class ReaderConfig:
    """Background reader configuration."""
    fifo_capacity: int = 1024
    thread_name: str = "BL654 Read Thread"
    join_timeout: float = 0.5


@dataclass(frozen=True)
class LoggingConfig:
    """Traffic logging configuration."""
    level: LogLevel = LogLevel.INFO
    trace_traffic: bool = False
    log_to_console: bool = True
    log_to_file: bool = False
    log_file_path: Optional[str] = None
    max_file_size_mb: int = 10
    backup_count: int = 5


@dataclass(frozen=True)
class Config:
    """Complete configuration object with all sections."""
    serial: SerialConfig = field(default_factory=SerialConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    reader: ReaderConfig = field(default_factory=ReaderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation with nested sections and enum values
            replaced by their plain values.
        """
        def convert_value(obj: Any) -> Any:
            if isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, dict):
                return {k: convert_value(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert_value(item) for item in obj]
            return obj

        return convert_value(asdict(self))
