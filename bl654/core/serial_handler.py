"""Serial port line transport for the BL654 module.

This module provides a cross-platform pyserial implementation of the
LineSource contract with error translation and port discovery.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TYPE_CHECKING
import threading
import time

import serial
from serial.tools import list_ports

from bl654.core.exceptions import SerialPortError, SerialPortBusyError
from bl654.core.transport import LineSource

# Avoid circular import for type hints
if TYPE_CHECKING:
    from bl654.logging.communication_logger import CommunicationLogger

_PERMISSION_MARKERS = ('permission denied', 'access denied', 'access is denied')
_BUSY_MARKERS = ('busy', 'in use', 'could not exclusively lock')


@dataclass
class PortInfo:
    """Serial port information from discovery.

    ``vid`` and ``pid`` are only known for USB adapters.
    """
    device: str
    description: str
    hwid: str
    vid: Optional[int] = None
    pid: Optional[int] = None
    serial_number: Optional[str] = None

    @property
    def is_usb(self) -> bool:
        return self.vid is not None


def translate_open_error(port: str, error: Exception) -> SerialPortError:
    """Map a pyserial open failure onto the library's port errors."""
    text = str(error).lower()
    if any(marker in text for marker in _PERMISSION_MARKERS):
        return SerialPortError(f"Permission denied accessing port {port}", port, error)
    if any(marker in text for marker in _BUSY_MARKERS):
        return SerialPortBusyError(f"Port {port} is already in use", port, error)
    return SerialPortError(f"Failed to open port {port}: {error}", port, error)


class SerialHandler(LineSource):
    """Manages the serial port lifecycle and line-level I/O.

    Default settings match the module's factory UART configuration:
    115200 baud, 8 data bits, no parity, 1 stop bit, RTS/CTS flow control
    and carriage-return line terminators. Reads and writes use separate
    paths so a reader thread blocked in ``read_line`` never stalls writers.

    Example:
        >>> handler = SerialHandler('/dev/ttyUSB0')
        >>> handler.open()
        >>> handler.write_line('AT')
        >>> handler.read_line()
        'OK'
        >>> handler.close()
    """

    def __init__(self,
                 port: str,
                 baud_rate: int = 115200,
                 timeout: Optional[float] = None,
                 rtscts: bool = True,
                 line_terminator: str = '\r',
                 write_timeout: Optional[float] = 1.0,
                 logger: Optional['CommunicationLogger'] = None,
                 **kwargs):
        """Initialize handler with port configuration.

        Args:
            port: Serial port device path
            baud_rate: Baud rate (default 115200)
            timeout: Read timeout in seconds, None blocks (default None)
            rtscts: Enable hardware flow control (default True)
            line_terminator: Line terminator for reads and writes (default CR)
            write_timeout: Write timeout in seconds (default 1.0)
            logger: Optional CommunicationLogger for port events (default None)
            **kwargs: Additional arguments passed to serial.Serial
        """
        self.port = port
        self.baud_rate = baud_rate
        self.timeout = timeout
        self.rtscts = rtscts
        self.line_terminator = line_terminator
        self.write_timeout = write_timeout
        self.logger = logger
        self.kwargs = kwargs
        self._serial: Optional[serial.Serial] = None
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._open_time: Optional[float] = None

    @property
    def name(self) -> str:
        return self.port

    def open(self) -> None:
        """Open serial port and configure settings.

        Raises:
            SerialPortError: Port doesn't exist or permission denied
            SerialPortBusyError: Port already in use
        """
        with self._lock:
            if self._serial is not None and self._serial.is_open:
                return

            try:
                self._serial = serial.Serial(
                    port=self.port,
                    baudrate=self.baud_rate,
                    timeout=self.timeout,
                    rtscts=self.rtscts,
                    write_timeout=self.write_timeout,
                    **self.kwargs
                )
            except serial.SerialException as e:
                self._log_error(f"Failed to open port: {e}", error_type=type(e).__name__)
                raise translate_open_error(self.port, e)

            self._open_time = time.time()
            self._log_event("Port opened", {"baud_rate": self.baud_rate, "rtscts": self.rtscts, **self.kwargs})

    def close(self) -> None:
        """Close serial port and release resources.

        Safe to call multiple times; does nothing if port is already closed.
        """
        with self._lock:
            if self._serial is None or not self._serial.is_open:
                return

            opened_at, self._open_time = self._open_time, None
            try:
                self._serial.close()
            except serial.SerialException as e:
                self._log_error(f"Error closing port: {e}")
                return

            details = None
            if opened_at:
                details = {"session_duration_seconds": time.time() - opened_at}
            self._log_event("Port closed", details)

    def _log_event(self, event: str, details: Optional[Dict[str, Any]]) -> None:
        if self.logger:
            self.logger.log_port_event(event=event, port=self.port, details=details)

    def _log_error(self, error: str, **details: Any) -> None:
        if self.logger:
            self.logger.log_error(source="SerialHandler", error=error, details={"port": self.port, **details})

    def read_line(self) -> Optional[str]:
        """Read one line, blocking up to the configured read timeout.

        Returns:
            Line without its terminator, or None if the read timed out or
            was cancelled before a terminator arrived

        Raises:
            SerialPortError: Port not open or read failed
        """
        port = self._require_open("read from")
        try:
            raw = port.read_until(self.line_terminator.encode('ascii'))
        except (serial.SerialException, OSError) as e:
            raise SerialPortError(f"Failed to read from port {self.port}: {e}", self.port, e)

        line = raw.decode('utf-8', errors='replace')
        if not line.endswith(self.line_terminator):
            return None
        return line[:-len(self.line_terminator)]

    def write_line(self, line: str) -> None:
        """Write ``line`` followed by the line terminator.

        Raises:
            SerialPortError: Port not open or write failed
        """
        port = self._require_open("write to")
        with self._write_lock:
            try:
                port.write(f"{line}{self.line_terminator}".encode('utf-8'))
                port.flush()
            except (serial.SerialException, OSError) as e:
                raise SerialPortError(
                    f"Failed to write to port {self.port}: {e}",
                    self.port,
                    e
                )

    @property
    def read_timeout(self) -> Optional[float]:
        return self.timeout

    @read_timeout.setter
    def read_timeout(self, value: Optional[float]) -> None:
        self.timeout = value
        if self._serial is not None:
            self._serial.timeout = value

    def set_break(self, active: bool) -> None:
        self._require_open("set BREAK on").break_condition = active

    def set_dtr(self, active: bool) -> None:
        self._require_open("set DTR on").dtr = active

    def cancel_read(self) -> None:
        """Make a pending ``read_line`` on another thread return early."""
        port = self._serial
        if port is not None and port.is_open:
            port.cancel_read()

    def is_connected(self) -> bool:
        """Check if port is currently open.

        Returns:
            True if port is open, False otherwise
        """
        with self._lock:
            return self._serial is not None and self._serial.is_open

    def _require_open(self, action: str) -> serial.Serial:
        port = self._serial
        if port is None or not port.is_open:
            raise SerialPortError(f"Cannot {action} closed port", self.port, None)
        return port

    @staticmethod
    def discover_ports(usb_only: bool = False) -> List[PortInfo]:
        """Enumerate available serial ports.

        Args:
            usb_only: Skip ports without a USB vendor id (default False)
        """
        ports = [
            PortInfo(
                device=found.device,
                description=found.description or "Unknown",
                hwid=found.hwid or "Unknown",
                vid=found.vid,
                pid=found.pid,
                serial_number=found.serial_number
            )
            for found in sorted(list_ports.comports(), key=lambda p: p.device)
        ]
        if usb_only:
            ports = [port for port in ports if port.is_usb]
        return ports

    def __enter__(self):
        """Context manager entry: open port."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit: close port."""
        self.close()
        return False

    def __repr__(self) -> str:
        status = "open" if self.is_connected() else "closed"
        return f"SerialHandler(port='{self.port}', baud={self.baud_rate}, status={status})"
