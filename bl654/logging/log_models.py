"""Log data models for traffic logging.

This module defines the immutable LogEntry record used for every traced
line, port event and error.
"""

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Dict, Any, Optional
import json


@dataclass(frozen=True)
class LogEntry:
    """Immutable log entry for traffic logging.

    Attributes:
        timestamp: When the event occurred
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        source: Component name (SerialHandler, ReaderLoop, BL654Interface)
        message: Human-readable message describing the event
        details: Additional structured data (arbitrary dict)
        port: Serial port name (optional)
        direction: "TX" or "RX" for traced lines (optional)
        line: Raw line text for traced lines (optional)
        error: Error message if applicable (optional)

    Example:
        >>> entry = LogEntry(
        ...     timestamp=datetime.now(),
        ...     level="DEBUG",
        ...     source="BL654Interface",
        ...     message="Line sent",
        ...     port="/dev/ttyUSB0",
        ...     direction="TX",
        ...     line="AT+LCON 000123456789AB"
        ... )
        >>> entry.to_string()
        '2025-01-12 10:30:15.234 | DEBUG   | BL654Interface  | Line sent | TX: AT+LCON 000123456789AB'
    """

    timestamp: datetime
    level: str
    source: str
    message: str
    details: Optional[Dict[str, Any]] = None

    port: Optional[str] = None
    direction: Optional[str] = None
    line: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_traffic(self) -> bool:
        """True for TX/RX line entries."""
        return self.direction is not None and self.line is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def to_string(self) -> str:
        """Format as ``time | LEVEL | source | message[ | DIR: line][ | ERROR: error]``."""
        parts = [
            self.timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
            f"{self.level:7}",
            f"{self.source:15}",
            self.message,
        ]
        if self.is_traffic:
            parts.append(f"{self.direction}: {self.line}")
        if self.error:
            parts.append(f"ERROR: {self.error}")
        return " | ".join(parts)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LogEntry':
        """Inverse of to_dict; optional keys may be missing and unknown keys are ignored."""
        values = {f.name: data[f.name] for f in fields(cls) if f.name in data}
        if isinstance(values['timestamp'], str):
            values['timestamp'] = datetime.fromisoformat(values['timestamp'])
        return cls(**values)
