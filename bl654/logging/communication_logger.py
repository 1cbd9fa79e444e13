"""Traffic logger for raw module I/O.

CommunicationLogger records every line written to and read from the module,
plus port events, dropped lines and errors. Entries fan out to a rotating
file, the console (stderr) and an in-memory ring buffer, each optional.
"""

from datetime import datetime
from collections import deque
from threading import Lock
from typing import Optional, List, Dict, Any, Union
import sys

from bl654.logging.log_models import LogEntry
from bl654.logging.file_handler import FileHandler
from bl654.config.config_models import LogLevel, LoggingConfig

TX = "TX"
RX = "RX"

_LEVEL_ORDER = [level.value for level in LogLevel]


def _level_name(level: Union[LogLevel, str]) -> str:
    name = level.value if isinstance(level, LogLevel) else str(level).upper()
    if name not in _LEVEL_ORDER:
        raise ValueError(f"Unknown log level: {level!r}")
    return name


class CommunicationLogger:
    """Line-level traffic tracer.

    Traced lines are DEBUG entries, so a logger at INFO keeps only port
    events, drops and errors. Lines are traced exactly as they cross the
    transport: TX before the write, RX before the line is classified.

    Attributes:
        log_level: Minimum level recorded (level name)
        enable_file: Whether file logging is enabled
        enable_console: Whether console logging is enabled
        log_file_path: Path to log file (if file logging enabled)

    Example:
        >>> logger = CommunicationLogger(log_level=LogLevel.DEBUG, enable_console=True)
        >>> logger.log_tx(port="/dev/ttyUSB0", line="AT")
        >>> logger.log_rx(port="/dev/ttyUSB0", line="OK")
        >>> logger.close()
    """

    def __init__(
        self,
        log_level: Union[LogLevel, str] = LogLevel.INFO,
        enable_file: bool = False,
        enable_console: bool = True,
        log_file_path: Optional[str] = None,
        max_file_size_mb: float = 10,
        backup_count: int = 5,
        buffer_size: int = 1000
    ):
        """Initialize CommunicationLogger with output destinations and log level.

        Args:
            log_level: Minimum level recorded (default: INFO)
            enable_file: Enable file logging (default: False)
            enable_console: Enable console logging to stderr (default: True)
            log_file_path: Path to log file (required if enable_file=True)
            max_file_size_mb: File size that triggers rotation (default: 10)
            backup_count: Number of backup files to keep (default: 5)
            buffer_size: Entries kept in the in-memory buffer (default: 1000)

        Raises:
            ValueError: enable_file without log_file_path, or unknown level
        """
        self.log_level = _level_name(log_level)
        self.enable_file = enable_file
        self.enable_console = enable_console
        self.log_file_path = log_file_path

        self._lock = Lock()
        self._buffer: deque = deque(maxlen=buffer_size)
        self._file_handler: Optional[FileHandler] = None

        if enable_file:
            if not log_file_path:
                raise ValueError("log_file_path required when enable_file=True")
            try:
                self._file_handler = FileHandler(log_file_path, max_file_size_mb, backup_count)
            except OSError as e:
                print(f"WARNING: Traffic file logging disabled: {e}", file=sys.stderr)

    @classmethod
    def from_config(cls, config: LoggingConfig) -> 'CommunicationLogger':
        """Build a logger from the ``logging`` configuration section."""
        return cls(
            log_level=config.level,
            enable_file=config.log_to_file,
            enable_console=config.log_to_console,
            log_file_path=config.log_file_path,
            max_file_size_mb=config.max_file_size_mb,
            backup_count=config.backup_count
        )

    def is_enabled_for(self, level: Union[LogLevel, str]) -> bool:
        return _LEVEL_ORDER.index(_level_name(level)) >= _LEVEL_ORDER.index(self.log_level)

    def log(self, entry: LogEntry) -> None:
        """Record ``entry`` in every enabled destination if its level passes."""
        if not self.is_enabled_for(entry.level):
            return

        with self._lock:
            self._buffer.append(entry)
            if self._file_handler:
                self._file_handler.write(entry)
            if self.enable_console:
                try:
                    print(entry.to_string(), file=sys.stderr)
                except (OSError, ValueError):
                    # stderr closed or detached
                    pass

    def trace(self, direction: str, port: str, line: str, source: str) -> None:
        """Record one line crossing the transport in ``direction`` (TX or RX)."""
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="DEBUG",
            source=source,
            message="Line sent" if direction == TX else "Line received",
            port=port,
            direction=direction,
            line=line
        ))

    def log_tx(self, port: str, line: str, source: str = "BL654Interface") -> None:
        self.trace(TX, port, line, source)

    def log_rx(self, port: str, line: str, source: str = "ReaderLoop") -> None:
        self.trace(RX, port, line, source)

    def log_dropped_line(self, port: str, line: str, capacity: int) -> None:
        """Record a received line discarded because the line FIFO was full."""
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="WARNING",
            source="ReaderLoop",
            message="Line dropped, FIFO full",
            port=port,
            direction=RX,
            line=line,
            details={"fifo_capacity": capacity}
        ))

    def log_port_event(
        self,
        event: str,
        port: str,
        details: Optional[Dict[str, Any]] = None,
        level: str = "INFO"
    ) -> None:
        """Record a serial port event such as open or close.

        Example:
            >>> logger.log_port_event(
            ...     event="Port opened",
            ...     port="/dev/ttyUSB0",
            ...     details={"baud_rate": 115200}
            ... )
        """
        self.log(LogEntry(
            timestamp=datetime.now(),
            level=level,
            source="SerialHandler",
            message=event,
            port=port,
            details=details
        ))

    def log_error(self, source: str, error: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.log(LogEntry(
            timestamp=datetime.now(),
            level="ERROR",
            source=source,
            message="Error occurred",
            error=error,
            details=details
        ))

    def set_level(self, level: Union[LogLevel, str]) -> None:
        self.log_level = _level_name(level)

    def get_entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Buffered entries, oldest first, optionally only the last ``limit``."""
        with self._lock:
            entries = list(self._buffer)
        return entries[-limit:] if limit else entries

    def get_traffic(self, port: Optional[str] = None) -> List[LogEntry]:
        """Buffered TX/RX line entries, optionally for one port only."""
        return [entry for entry in self.get_entries()
                if entry.is_traffic and (port is None or entry.port == port)]

    def clear_buffer(self) -> None:
        with self._lock:
            self._buffer.clear()

    def flush(self) -> None:
        if self._file_handler:
            self._file_handler.flush()

    def close(self) -> None:
        """Close the log file. The in-memory buffer stays readable."""
        if self._file_handler:
            self._file_handler.close()
            self._file_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
