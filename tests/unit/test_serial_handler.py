"""Unit tests for SerialHandler with mocked pyserial.

Tests the SerialHandler class using mocked serial.Serial to avoid
hardware dependencies.
"""

import pytest
from unittest.mock import Mock, MagicMock, patch
import time
import serial

from bl654.core.serial_handler import SerialHandler, PortInfo, translate_open_error
from bl654.core.exceptions import SerialPortError, SerialPortBusyError


def open_handler(mock_serial_class, **kwargs):
    mock_serial = MagicMock()
    mock_serial.is_open = True
    mock_serial_class.return_value = mock_serial
    handler = SerialHandler("/dev/ttyUSB0", **kwargs)
    handler.open()
    return handler, mock_serial


class TestPortInfo:
    """Test PortInfo dataclass."""

    def test_port_info_equality(self):
        """Test PortInfo equality."""
        info1 = PortInfo("/dev/ttyUSB0", "Port", "HW123")
        info2 = PortInfo("/dev/ttyUSB0", "Port", "HW123")

        assert info1 == info2


class TestSerialHandlerInit:
    """Test SerialHandler initialization."""

    def test_init_defaults(self):
        """Test defaults match the module's factory UART settings."""
        handler = SerialHandler("/dev/ttyUSB0")

        assert handler.port == "/dev/ttyUSB0"
        assert handler.name == "/dev/ttyUSB0"
        assert handler.baud_rate == 115200
        assert handler.rtscts is True
        assert handler.line_terminator == "\r"
        assert handler.timeout is None
        assert handler.logger is None
        assert handler._serial is None

    def test_init_with_kwargs(self):
        """Test initialization with extra serial parameters."""
        handler = SerialHandler("/dev/ttyUSB0", parity=serial.PARITY_NONE)

        assert handler.kwargs["parity"] == serial.PARITY_NONE


class TestSerialHandlerOpen:
    """Test SerialHandler.open() method."""

    @patch('serial.Serial')
    def test_open_success(self, mock_serial_class):
        """Test successful port opening."""
        handler, mock_serial = open_handler(mock_serial_class)

        mock_serial_class.assert_called_once_with(
            port="/dev/ttyUSB0",
            baudrate=115200,
            timeout=None,
            rtscts=True,
            write_timeout=1.0
        )
        assert handler._serial == mock_serial
        assert handler.is_connected()

    @patch('serial.Serial')
    def test_open_already_open(self, mock_serial_class):
        """Test opening already open port (no-op)."""
        handler, _ = open_handler(mock_serial_class)

        mock_serial_class.reset_mock()
        handler.open()

        mock_serial_class.assert_not_called()

    @patch('serial.Serial')
    def test_open_permission_denied(self, mock_serial_class):
        """Test opening port with permission denied error."""
        mock_serial_class.side_effect = serial.SerialException("Permission denied")

        handler = SerialHandler("/dev/ttyUSB0")

        with pytest.raises(SerialPortError) as exc_info:
            handler.open()

        assert "Permission denied" in str(exc_info.value)
        assert exc_info.value.port == "/dev/ttyUSB0"

    @patch('serial.Serial')
    def test_open_port_busy(self, mock_serial_class):
        """Test opening port that's already in use."""
        mock_serial_class.side_effect = serial.SerialException("Port is busy")

        handler = SerialHandler("COM3")

        with pytest.raises(SerialPortBusyError) as exc_info:
            handler.open()

        assert "already in use" in str(exc_info.value)
        assert exc_info.value.port == "COM3"

    @patch('serial.Serial')
    def test_open_generic_error(self, mock_serial_class):
        """Test opening port with generic error."""
        mock_serial_class.side_effect = serial.SerialException("Unknown error")

        handler = SerialHandler("/dev/ttyUSB0")

        with pytest.raises(SerialPortError) as exc_info:
            handler.open()

        assert "Failed to open port" in str(exc_info.value)
        assert exc_info.value.os_error is not None

    @patch('serial.Serial')
    def test_open_with_logger(self, mock_serial_class):
        """Test opening port logs success."""
        mock_logger = Mock()
        open_handler(mock_serial_class, logger=mock_logger)

        mock_logger.log_port_event.assert_called_once()
        call_args = mock_logger.log_port_event.call_args
        assert call_args[1]["event"] == "Port opened"
        assert call_args[1]["port"] == "/dev/ttyUSB0"

    @patch('serial.Serial')
    def test_open_with_logger_error(self, mock_serial_class):
        """Test opening port logs error on failure."""
        mock_serial_class.side_effect = serial.SerialException("Test error")

        mock_logger = Mock()
        handler = SerialHandler("/dev/ttyUSB0", logger=mock_logger)

        with pytest.raises(SerialPortError):
            handler.open()

        mock_logger.log_error.assert_called_once()


class TestSerialHandlerClose:
    """Test SerialHandler.close() method."""

    @patch('serial.Serial')
    def test_close_success(self, mock_serial_class):
        """Test successful port closing."""
        handler, mock_serial = open_handler(mock_serial_class)
        handler.close()

        mock_serial.close.assert_called_once()

    def test_close_not_open(self):
        """Test closing port that's not open (no-op)."""
        handler = SerialHandler("/dev/ttyUSB0")
        handler.close()

    @patch('serial.Serial')
    def test_close_with_error(self, mock_serial_class):
        """Test closing port logs pyserial errors instead of raising."""
        mock_logger = Mock()
        handler, mock_serial = open_handler(mock_serial_class, logger=mock_logger)
        mock_serial.close.side_effect = serial.SerialException("Close error")

        handler.close()

        mock_logger.log_error.assert_called_once()

    @patch('serial.Serial')
    def test_close_with_logger(self, mock_serial_class):
        """Test closing port logs with session duration."""
        mock_logger = Mock()
        handler, _ = open_handler(mock_serial_class, logger=mock_logger)

        time.sleep(0.01)
        handler.close()

        log_calls = [call for call in mock_logger.log_port_event.call_args_list
                     if call[1].get("event") == "Port closed"]
        assert len(log_calls) == 1
        assert "session_duration_seconds" in log_calls[0][1]["details"]


class TestSerialHandlerWriteLine:
    """Test SerialHandler.write_line() method."""

    @patch('serial.Serial')
    def test_write_appends_carriage_return(self, mock_serial_class):
        """Test write_line terminates with CR only."""
        handler, mock_serial = open_handler(mock_serial_class)

        handler.write_line("AT+LSCN 5,,,")

        mock_serial.write.assert_called_once_with(b"AT+LSCN 5,,,\r")
        mock_serial.flush.assert_called_once()

    def test_write_not_open(self):
        """Test writing to closed port raises error."""
        handler = SerialHandler("/dev/ttyUSB0")

        with pytest.raises(SerialPortError) as exc_info:
            handler.write_line("AT")

        assert "closed port" in str(exc_info.value)

    @patch('serial.Serial')
    def test_write_serial_exception(self, mock_serial_class):
        """Test write handles serial exception."""
        handler, mock_serial = open_handler(mock_serial_class)
        mock_serial.write.side_effect = serial.SerialException("Write error")

        with pytest.raises(SerialPortError) as exc_info:
            handler.write_line("AT")

        assert "Failed to write" in str(exc_info.value)


class TestSerialHandlerReadLine:
    """Test SerialHandler.read_line() method."""

    @patch('serial.Serial')
    def test_read_strips_terminator(self, mock_serial_class):
        """Test a complete line is returned without CR."""
        handler, mock_serial = open_handler(mock_serial_class)
        mock_serial.read_until.return_value = b"OK\r"

        assert handler.read_line() == "OK"
        mock_serial.read_until.assert_called_once_with(b"\r")

    @patch('serial.Serial')
    def test_read_timeout_returns_none(self, mock_serial_class):
        """Test a partial line (timeout or cancel) yields None."""
        handler, mock_serial = open_handler(mock_serial_class)
        mock_serial.read_until.return_value = b"conn"

        assert handler.read_line() is None

    @patch('serial.Serial')
    def test_read_undecodable_bytes_replaced(self, mock_serial_class):
        """Test invalid UTF-8 does not raise."""
        handler, mock_serial = open_handler(mock_serial_class)
        mock_serial.read_until.return_value = b"\xffOK\r"

        assert handler.read_line().endswith("OK")

    @patch('serial.Serial')
    def test_read_failure(self, mock_serial_class):
        """Test a pyserial failure surfaces as SerialPortError."""
        handler, mock_serial = open_handler(mock_serial_class)
        mock_serial.read_until.side_effect = serial.SerialException("device reports readiness")

        with pytest.raises(SerialPortError):
            handler.read_line()

    def test_read_not_open(self):
        """Test reading from closed port raises error."""
        handler = SerialHandler("/dev/ttyUSB0")

        with pytest.raises(SerialPortError) as exc_info:
            handler.read_line()

        assert "closed port" in str(exc_info.value)


class TestSerialHandlerControlLines:
    """Test timeout, BREAK, DTR and cancellation."""

    @patch('serial.Serial')
    def test_read_timeout_applied_to_open_port(self, mock_serial_class):
        """Test changing read_timeout updates pyserial."""
        handler, mock_serial = open_handler(mock_serial_class)

        handler.read_timeout = 0.5

        assert handler.read_timeout == 0.5
        assert mock_serial.timeout == 0.5

    @patch('serial.Serial')
    def test_set_break_and_dtr(self, mock_serial_class):
        """Test BREAK and DTR are forwarded to pyserial."""
        handler, mock_serial = open_handler(mock_serial_class)

        handler.set_break(True)
        handler.set_dtr(False)

        assert mock_serial.break_condition is True
        assert mock_serial.dtr is False

    def test_set_break_not_open(self):
        """Test control lines require an open port."""
        with pytest.raises(SerialPortError):
            SerialHandler("/dev/ttyUSB0").set_break(True)

    @patch('serial.Serial')
    def test_cancel_read(self, mock_serial_class):
        """Test cancel_read interrupts pyserial's blocking read."""
        handler, mock_serial = open_handler(mock_serial_class)

        handler.cancel_read()

        mock_serial.cancel_read.assert_called_once()

    def test_cancel_read_not_open(self):
        """Test cancel_read on a closed port is a no-op."""
        SerialHandler("/dev/ttyUSB0").cancel_read()


class TestSerialHandlerDiscovery:
    """Test port discovery."""

    @patch('bl654.core.serial_handler.list_ports.comports')
    def test_discover_ports(self, mock_comports):
        """Test discovery maps pyserial port info, sorted by device."""
        mock_comports.return_value = [
            Mock(device="/dev/ttyUSB0", description="BL654 USB dongle", hwid="USB VID:PID=0403:6015",
                 vid=0x0403, pid=0x6015, serial_number="DN05XYZ"),
            Mock(device="/dev/ttyS0", description=None, hwid=None, vid=None, pid=None, serial_number=None)
        ]

        ports = SerialHandler.discover_ports()

        assert ports[0].device == "/dev/ttyS0"
        assert ports[0].description == "Unknown"
        assert ports[0].hwid == "Unknown"
        assert not ports[0].is_usb
        assert ports[1] == PortInfo("/dev/ttyUSB0", "BL654 USB dongle", "USB VID:PID=0403:6015",
                                    vid=0x0403, pid=0x6015, serial_number="DN05XYZ")

    @patch('bl654.core.serial_handler.list_ports.comports')
    def test_discover_usb_only(self, mock_comports):
        mock_comports.return_value = [
            Mock(device="COM1", description="Communications Port", hwid="ACPI\\PNP0501",
                 vid=None, pid=None, serial_number=None),
            Mock(device="COM7", description="USB Serial Port", hwid="FTDIBUS\\VID_0403+PID_6015",
                 vid=0x0403, pid=0x6015, serial_number=None)
        ]

        assert [p.device for p in SerialHandler.discover_ports(usb_only=True)] == ["COM7"]

    def test_translate_open_error_windows_access_denied(self):
        error = translate_open_error("COM3", serial.SerialException("could not open port 'COM3': Access is denied."))

        assert type(error) is SerialPortError
        assert "Permission denied" in str(error)


class TestSerialHandlerContextManager:
    """Test context manager protocol."""

    @patch('serial.Serial')
    def test_context_manager(self, mock_serial_class):
        """Test port is opened on entry and closed on exit."""
        mock_serial = MagicMock()
        mock_serial.is_open = True
        mock_serial_class.return_value = mock_serial

        with SerialHandler("/dev/ttyUSB0") as handler:
            assert handler.is_connected()

        mock_serial.close.assert_called_once()

    def test_repr(self):
        """Test repr shows port and status."""
        assert "closed" in repr(SerialHandler("/dev/ttyUSB0"))
