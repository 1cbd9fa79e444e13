"""AT command layer for the BL654 module.

This module provides BL654Interface, which turns the module's interleaved
text stream into typed operations: scanning, connecting, GATT discovery,
characteristic access, notification setup and S-register access.
"""

from threading import RLock
from typing import Callable, List, Optional
import logging
import re
import time

from bl654.config.config_models import Config, TimeoutConfig
from bl654.core import events
from bl654.core.error_codes import DisconnectReason, ErrorCode
from bl654.core.events import EventHub
from bl654.core.exceptions import (
    DeviceProtocolError,
    DisconnectedDuringOperation,
    FormatError,
    NoResponseError,
    UsageError
)
from bl654.core.grammar import expect_fields, parse_error_line, parse_int
from bl654.core.hex_codec import decode, encode
from bl654.core.models import (
    ALL_CONNECTIONS,
    Advertisement,
    ConnectionSession,
    DisconnectEvent,
    ScanType
)
from bl654.core.reader_loop import ReaderLoop
from bl654.core.response_scanner import ResponseScanner
from bl654.core.serial_handler import SerialHandler
from bl654.core.s_registers import (
    DLE_SIZE_RANGE,
    MAX_CONNECTIONS_LIMIT,
    SRegister,
    StartupFlags
)
from bl654.core.session_registry import SessionRegistry
from bl654.core.transport import LineSource
from bl654.gatt.managed_characteristic import ManagedCharacteristic
from bl654.gatt.models import GattService
from bl654.gatt.table_parser import GattTableParser
from bl654.logging.communication_logger import CommunicationLogger

logger = logging.getLogger(__name__)

CCCD_NOTIFY_BIT = 0x01
CCCD_INDICATE_BIT = 0x02

_REGISTER_VALUE = re.compile(r"^-?\d+$")


class BL654Interface:
    """Client for a BL654 module running the AT command firmware.

    One command is in flight at a time: every command holds a re-entrant
    lock for its whole request/response exchange, so concurrent callers are
    serialised rather than interleaved. Unsolicited reports are delivered
    to subscribers on the reader thread. Callbacks must return quickly and
    must not issue commands on this interface: the reader cannot deliver
    the response while it is running the callback, so such a command can
    only time out. Hand work off to another thread instead.

    Example:
        >>> with BL654Interface.from_config(config) as iface:
        ...     iface.on_advertisement(lambda adv: print(adv))
        ...     iface.perform_scan(5)
        ...     session = iface.connect(0x01D8A0A1B2C3D4)
        ...     services = iface.discover_services(session.handle)
    """

    def __init__(self,
                 source: LineSource,
                 timeouts: Optional[TimeoutConfig] = None,
                 fifo_capacity: int = 1024,
                 comm_logger: Optional[CommunicationLogger] = None,
                 thread_name: str = "BL654 Read Thread",
                 join_timeout: float = 0.5,
                 owns_source: bool = False):
        """Initialize the interface around an already open line source.

        Args:
            source: Transport to the module
            timeouts: Response timeouts (default TimeoutConfig())
            fifo_capacity: Maximum number of buffered received lines
            comm_logger: Optional CommunicationLogger tracing TX/RX lines
            thread_name: Name of the reader thread
            join_timeout: Seconds to wait for the reader thread on close
            owns_source: Close ``source`` (and ``comm_logger``) on close()
        """
        self.source = source
        self.timeouts = timeouts or TimeoutConfig()
        self.events = EventHub()
        self.comm_logger = comm_logger
        self._owns_source = owns_source
        self._sessions = SessionRegistry()
        self._reader = ReaderLoop(
            source,
            self._sessions,
            self.events,
            fifo_capacity=fifo_capacity,
            comm_logger=comm_logger,
            thread_name=thread_name,
            join_timeout=join_timeout
        )
        self._scanner = ResponseScanner(self._reader.lines)
        self._lock = RLock()
        self._started = False
        self._closed = False

    @classmethod
    def from_config(cls, config: Config, port: Optional[str] = None) -> 'BL654Interface':
        """Open the configured serial port and start an interface on it.

        Args:
            config: Configuration (e.g. ``ConfigManager.instance().get_config()``)
            port: Override for ``config.serial.port``

        Raises:
            UsageError: No port configured
            SerialPortError: Port could not be opened
        """
        port = port or config.serial.port
        if not port:
            raise UsageError("No serial port configured (set serial.port or BL654_SERIAL_PORT)")

        comm_logger = None
        if config.logging.trace_traffic:
            comm_logger = CommunicationLogger.from_config(config.logging)

        handler = SerialHandler(
            port,
            baud_rate=config.serial.baud_rate,
            rtscts=config.serial.rtscts,
            line_terminator=config.serial.line_terminator,
            write_timeout=config.serial.write_timeout,
            logger=comm_logger
        )
        handler.open()

        interface = cls(
            handler,
            timeouts=config.timeouts,
            fifo_capacity=config.reader.fifo_capacity,
            comm_logger=comm_logger,
            thread_name=config.reader.thread_name,
            join_timeout=config.reader.join_timeout,
            owns_source=True
        )
        interface.start()
        return interface

    def start(self) -> None:
        """Start the background reader. Safe to call more than once."""
        if self._closed:
            raise UsageError("Interface is closed")
        if not self._started:
            self._reader.start()
            self._started = True

    def close(self) -> None:
        """Stop the reader and release owned resources. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._reader.stop()
        if self._owns_source:
            close = getattr(self.source, "close", None)
            if close is not None:
                close()
            if self.comm_logger:
                self.comm_logger.close()

    @property
    def is_running(self) -> bool:
        return self._reader.is_running()

    @property
    def dropped_lines(self) -> int:
        """Lines discarded because the receive FIFO was full."""
        return self._reader.dropped_lines

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def on_advertisement(self, callback: Callable[[Advertisement], None]) -> Callable:
        self.events.subscribe(events.ADVERTISEMENT, callback)
        return callback

    def remove_advertisement(self, callback: Callable[[Advertisement], None]) -> bool:
        return self.events.unsubscribe(events.ADVERTISEMENT, callback)

    def on_disconnect(self, callback: Callable[[DisconnectEvent], None]) -> Callable:
        """Subscribe to ``discon`` reports and synthesized global disconnects."""
        self.events.subscribe(events.DISCONNECT, callback)
        return callback

    def remove_disconnect(self, callback: Callable[[DisconnectEvent], None]) -> bool:
        return self.events.unsubscribe(events.DISCONNECT, callback)

    def on_notification(self, callback: Callable) -> Callable:
        self.events.subscribe(events.NOTIFICATION, callback)
        return callback

    def remove_notification(self, callback: Callable) -> bool:
        return self.events.unsubscribe(events.NOTIFICATION, callback)

    def on_interface_disconnected(self, callback: Callable[[], None]) -> Callable:
        """Subscribe to reader shutdown (transport lost or interface closed)."""
        self.events.subscribe(events.INTERFACE_DISCONNECTED, callback)
        return callback

    def remove_interface_disconnected(self, callback: Callable[[], None]) -> bool:
        return self.events.unsubscribe(events.INTERFACE_DISCONNECTED, callback)

    def _send(self, command: str) -> None:
        if self.comm_logger:
            self.comm_logger.log_tx(self.source.name, command)
        logger.debug("TX %s", command)
        self.source.write_line(command)

    def _transact(self, command: str, ok_timeout: Optional[float] = None) -> bool:
        """Flush stale lines, send ``command`` and optionally wait for OK.

        Callers that scan for further lines must hold ``self._lock``
        around the whole exchange.

        Returns:
            True if OK arrived (always True when ``ok_timeout`` is None)

        Raises:
            DeviceProtocolError: ``ERROR <hex>`` arrived while waiting for OK
        """
        with self._lock:
            dropped = self._scanner.flush()
            if dropped:
                logger.debug("Flushed %d stale line(s) before %s", dropped, command)
            self._send(command)
            if ok_timeout is None:
                return True
            return self._scanner.ok_scan(ok_timeout)

    def _command(self, command: str, timeout: Optional[float] = None) -> None:
        """Send ``command`` and require OK, raising NoResponseError otherwise."""
        with self._lock:
            if not self._transact(command, self.timeouts.command if timeout is None else timeout):
                raise NoResponseError(command=command)

    def at(self) -> bool:
        """Check the module is answering with ``AT``.

        Returns:
            True if it answered OK. False on timeout or an ``ERROR`` reply.
        """
        with self._lock:
            try:
                return self._transact("AT", self.timeouts.at_check)
            except DeviceProtocolError as e:
                logger.debug("AT check rejected: %s", e)
                return False

    def perform_scan(self,
                     timeout: int,
                     pattern: Optional[str] = None,
                     min_rssi: Optional[int] = None,
                     scan_type: Optional[ScanType] = None) -> None:
        """Scan for advertisements for ``timeout`` seconds.

        Advertisements are delivered to ``on_advertisement`` subscribers
        while the scan runs. Omitted parameters fall back to the module's
        S-register defaults. The module may print OK before the scan ends,
        so after OK the module is polled with ``AT`` until it answers again.

        Raises:
            NoResponseError: The scan was not acknowledged
            DeviceProtocolError: The module rejected the scan
        """
        command = "AT+LSCN {},{},{},{}".format(
            timeout,
            pattern if pattern is not None else "",
            min_rssi if min_rssi is not None else "",
            int(scan_type) if scan_type is not None else ""
        )

        with self._lock:
            scan_start = time.monotonic()
            if not self._transact(command, timeout + self.timeouts.at_check):
                raise NoResponseError("Scan was not acknowledged", command)

            deadline = scan_start + timeout + self.timeouts.scan_grace
            while time.monotonic() < deadline:
                if self.at():
                    return
            logger.warning("Module did not answer AT within %.1fs after scan", timeout + self.timeouts.scan_grace)

    def end_scan(self) -> None:
        """Stop a running scan before its timeout."""
        self._command("AT+LSCNX", self.timeouts.end_scan)

    def connect(self,
                address: int,
                advertisement: Optional[Advertisement] = None,
                timeout: Optional[float] = None) -> ConnectionSession:
        """Connect to the device at ``address``.

        Args:
            address: 48/64-bit device address (sent as 14 hex digits)
            advertisement: Advertisement the address came from, kept on the session
            timeout: Seconds to wait for the connect report (default timeouts.connect)

        Returns:
            Copy of the registered session

        Raises:
            DeviceProtocolError: ``ERROR <decimal code>``
            DisconnectedDuringOperation: Connection dropped immediately
            NoResponseError: No report before the timeout
            FormatError: Malformed connect report
        """
        command = f"AT+LCON {address:014X}"

        with self._lock:
            self._transact(command)
            line = self._scanner.scan(
                lambda s: s.startswith("connect") or s.startswith("ERROR") or s.startswith("discon 0,"),
                self.timeouts.connect if timeout is None else timeout
            )

        if line is None:
            raise NoResponseError("No response to connect", command)

        if line.startswith("ERROR"):
            raise DeviceProtocolError(parse_error_line(line, 10), f"Connect failed: {line.strip()}")

        if line.startswith("discon 0,"):
            reason = parse_int(line[len("discon 0,"):], 10, line)
            raise DisconnectedDuringOperation(reason, f"Failed to connect to {address:014X}")

        fields = expect_fields(line, "connect", 5)
        session = ConnectionSession(
            handle=parse_int(fields[0], 10, line),
            address=parse_int(fields[1], 16, line),
            interval_us=parse_int(fields[2], 10, line),
            supervision_timeout_us=parse_int(fields[3], 10, line),
            latency=parse_int(fields[4], 10, line),
            advertisement=advertisement
        )
        logger.info("Connected to %014X as handle %d", session.address, session.handle)
        return self._sessions.open(session)

    def disconnect(self, handle: int, wait_for_response: bool = True) -> None:
        """Drop the connection ``handle``.

        The session is removed when the module reports the disconnect.

        Raises:
            NoResponseError: ``wait_for_response`` and no OK arrived
        """
        command = f"AT+LDSC {handle}"
        if wait_for_response:
            self._command(command)
        else:
            self._transact(command)

    def negotiate_mtu(self, handle: int) -> int:
        """Renegotiate the MTU of ``handle`` and return the new value.

        Raises:
            NoResponseError: No OK or no ``MT:`` report
            FormatError: Malformed ``MT:`` report
        """
        command = f"AT+LMTU {handle}"
        expected = f"MT:{handle},"

        with self._lock:
            self._command(command)
            line = self._scanner.scan(lambda s: s.startswith(expected), self.timeouts.command)

        if line is None:
            raise NoResponseError("No MTU report after negotiation", command)
        fields = expect_fields(line, "MT:", 2)
        return parse_int(fields[1], 10, line)

    def get_mtu(self, handle: int) -> Optional[int]:
        """Last MTU reported for ``handle``, or None if none has been seen.

        The MTU first reported after connecting is not always usable at full
        size; call negotiate_mtu() before relying on it.
        """
        return self._sessions.get_mtu(handle)

    def get_session(self, handle: int) -> Optional[ConnectionSession]:
        """Copy of the open connection on ``handle``, or None.

        A handle known only from an ``MT:`` report (for example one that
        arrives after its ``discon``) is not a connection and yields None;
        its MTU is still available from ``get_mtu``.
        """
        session = self._sessions.get(handle)
        if session is None or session.is_placeholder:
            return None
        return session

    def sessions(self) -> List[ConnectionSession]:
        """Copies of every open connection, ordered by handle."""
        result = []
        for handle in self._sessions.handles():
            session = self.get_session(handle)
            if session is not None:
                result.append(session)
        return result

    def reset_module(self) -> bool:
        """Warm-reset the module with ``ATZ``.

        Every connection is lost, so subscribers always receive a global
        disconnect, even if the module never acknowledges the reset.

        Returns:
            True if the module answered OK
        """
        try:
            return self._transact("ATZ", self.timeouts.command)
        finally:
            self._sessions.clear()
            self.events.dispatch(events.DISCONNECT,
                                 DisconnectEvent(ALL_CONNECTIONS, DisconnectReason.USER_DISCONNECT))

    def discover_services(self, handle: int, line_timeout: Optional[float] = None) -> List[GattService]:
        """Read the remote GATT table of connection ``handle``.

        Args:
            handle: Connection handle
            line_timeout: Seconds to wait for each table line (default timeouts.gatt_line)

        Raises:
            DeviceProtocolError: ``ERROR <hex code>``
            NoResponseError: Table incomplete when a line timed out
            FormatError: Malformed table record
        """
        command = f"AT+GCTM {handle}"
        line_timeout = self.timeouts.gatt_line if line_timeout is None else line_timeout
        parser = GattTableParser()

        with self._lock:
            self._transact(command)
            while not parser.is_complete:
                line = self._scanner.next_line(line_timeout)
                if line is None:
                    raise NoResponseError("No response or incomplete GATT table", command)
                if line.startswith("ERROR "):
                    raise DeviceProtocolError(parse_error_line(line, 16), "Unable to retrieve GATT table")
                parser.feed(line)

        logger.debug("Discovered %d service(s) on handle %d", len(parser.services), handle)
        return parser.services

    def find_characteristic(self,
                            services: List[GattService],
                            device_handle: int,
                            service_uuid: int,
                            characteristic_uuid: int) -> Optional[ManagedCharacteristic]:
        """Wrap a discovered characteristic in a ManagedCharacteristic.

        Returns:
            The managed characteristic, or None if the service or
            characteristic is not in ``services``
        """
        for service in services:
            if service.uuid != service_uuid:
                continue
            characteristic = service.find_characteristic(characteristic_uuid)
            if characteristic is None:
                return None
            return ManagedCharacteristic(self, device_handle, service, characteristic)
        return None

    def enable_notifications(self, device_handle: int, cccd_handle: int, enabled: bool = True) -> None:
        """Set or clear the notify bit of a CCCD, keeping its other bits."""
        self._update_cccd(device_handle, cccd_handle, CCCD_NOTIFY_BIT, enabled)

    def enable_indications(self, device_handle: int, cccd_handle: int, enabled: bool = True) -> None:
        """Set or clear the indicate bit of a CCCD, keeping its other bits."""
        self._update_cccd(device_handle, cccd_handle, CCCD_INDICATE_BIT, enabled)

    def _update_cccd(self, device_handle: int, cccd_handle: int, bit: int, enabled: bool) -> None:
        with self._lock:
            value = bytearray(self.read_characteristic(device_handle, cccd_handle))
            if not value:
                raise FormatError(f"Empty CCCD value read from handle {cccd_handle}")
            if enabled:
                value[0] |= bit
            else:
                value[0] &= ~bit & 0xFF
            self._command(f"AT+GCWC {device_handle},{cccd_handle},{encode(bytes(value))}")

    def write_without_response(self,
                               device_handle: int,
                               characteristic_handle: int,
                               data: bytes,
                               timeout: Optional[float] = None) -> None:
        """Write ``data`` without requesting an acknowledgement from the peer.

        Raises:
            NoResponseError: The module did not answer OK
        """
        command = f"AT+GCWC {device_handle},{characteristic_handle},{encode(data)}"
        self._command(command, self.timeouts.write if timeout is None else timeout)

    def write_with_response(self,
                            device_handle: int,
                            characteristic_handle: int,
                            data: bytes,
                            timeout: Optional[float] = None) -> None:
        """Write ``data`` and wait for the peer's ``AW:`` acknowledgement.

        Raises:
            NoResponseError: No OK, or no acknowledgement
            DeviceProtocolError: Acknowledgement carried a non-zero (decimal) status
        """
        timeout = self.timeouts.write if timeout is None else timeout
        command = f"AT+GCWA {device_handle},{characteristic_handle},{encode(data)}"

        with self._lock:
            self._command(command, timeout)
            line = self._scanner.scan(lambda s: s.startswith("AW:"), timeout)

        if line is None:
            raise NoResponseError("Wrote data but did not receive acknowledgement from remote", command)

        fields = expect_fields(line, "AW:", 2)
        code = parse_int(fields[1], 10, line)
        if code != ErrorCode.OK:
            raise DeviceProtocolError(code, "Error while writing characteristic")

    def read_characteristic(self,
                            device_handle: int,
                            characteristic_handle: int,
                            offset: int = 0,
                            timeout: Optional[float] = None) -> bytes:
        """Read the value of a characteristic or descriptor.

        Raises:
            NoResponseError: No OK, or no read result
            DeviceProtocolError: ``AS:`` status (decimal) or ``AB:`` out of memory
            FormatError: Malformed read result
        """
        timeout = self.timeouts.read if timeout is None else timeout
        command = f"AT+GCRD {device_handle},{characteristic_handle},{offset}"

        with self._lock:
            self._command(command, timeout)
            line = self._scanner.scan(lambda s: s.startswith(("AR:", "AS:", "AB:")), timeout)

        if line is None:
            raise NoResponseError("Invalid characteristic read, no response", command)

        if line.startswith("AR:"):
            # Keep an empty payload field: a zero-length value is valid
            fields = [part.strip() for part in line[3:].split(",", 2)]
            if len(fields) != 3:
                raise FormatError(f"Expected 3 fields after 'AR:', found {len(fields)}", line)
            parse_int(fields[0], 10, line)
            parse_int(fields[1], 10, line)
            return decode(fields[2])

        if line.startswith("AS:"):
            fields = expect_fields(line, "AS:", 2)
            raise DeviceProtocolError(parse_int(fields[1], 10, line), "Error while reading characteristic")

        raise DeviceProtocolError(ErrorCode.UNKNOWN_ERROR,
                                  "Module out of memory / insufficient memory to perform read")

    def write_register(self, number: int, value: int) -> None:
        """Set S-register ``number`` to ``value``.

        Some registers (e.g. the UART baud rate) only take effect after the
        registers are saved and the module is reset.
        """
        self._command(f"ATS {int(number)}={int(value)}")

    def read_register(self, number: int) -> int:
        """Read S-register ``number``.

        Raises:
            DeviceProtocolError: ``ERROR <hex code>``
            NoResponseError: No value, or no OK after the value
        """
        command = f"ATS {int(number)}?"

        with self._lock:
            self._transact(command)
            line = self._scanner.scan(
                lambda s: s.startswith("ERROR ") or bool(_REGISTER_VALUE.match(s.strip())),
                self.timeouts.command
            )
            if line is None:
                raise NoResponseError("No value returned for S-register", command)
            if line.startswith("ERROR "):
                raise DeviceProtocolError(parse_error_line(line, 16), f"Read S-register {number} error")

            value = parse_int(line, 10, line)
            if not self._scanner.ok_scan(self.timeouts.command):
                raise NoResponseError("Never received OK after S-register value", command)
            return value

    def read_startup_flags(self) -> StartupFlags:
        return StartupFlags(self.read_register(SRegister.STARTUP_FLAGS))

    def write_startup_flags(self, flags: StartupFlags) -> None:
        """Write the startup flags register (one byte)."""
        value = int(flags)
        if not 0 <= value <= 0xFF:
            raise UsageError(f"Startup flags must fit in one byte, got {value:#x}")
        self.write_register(SRegister.STARTUP_FLAGS, value)

    def set_max_connections(self, count: int) -> None:
        """Set the number of simultaneous connections (1-16)."""
        if not 1 <= count <= MAX_CONNECTIONS_LIMIT:
            raise UsageError(f"Max connections must be between 1 and {MAX_CONNECTIONS_LIMIT}, got {count}")
        self.write_register(SRegister.MAX_CONNECTIONS, count)

    def set_max_dle_size(self, size: int) -> None:
        """Set the maximum data length extension packet size (20-244 bytes)."""
        low, high = DLE_SIZE_RANGE
        if not low <= size <= high:
            raise UsageError(f"DLE size must be between {low} and {high} bytes, got {size}")
        self.write_register(SRegister.MAX_DLE_SIZE, size)

    def __repr__(self) -> str:
        state = "running" if self.is_running else "stopped"
        return f"BL654Interface(source={self.source.name!r}, {state})"
