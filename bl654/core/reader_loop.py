"""Background reader that demultiplexes the module's output stream.

The module interleaves synchronous command responses with unsolicited
reports (advertisements, disconnects, notifications, MTU updates) on a
single serial line. ReaderLoop owns the only reader of the transport: it
dispatches unsolicited reports to subscribers, keeps the session registry
current, and then hands every line to the bounded FIFO that command
scanners consume.
"""

import logging
import queue
import threading
from typing import Optional

from bl654.core import events
from bl654.core.error_codes import DisconnectReason, lookup_code
from bl654.core.events import EventHub
from bl654.core.exceptions import BL654Error, SerialPortError
from bl654.core.grammar import expect_fields, parse_int
from bl654.core.hex_codec import decode
from bl654.core.models import (
    ALL_CONNECTIONS,
    Advertisement,
    DisconnectEvent,
    NotificationEvent
)
from bl654.core.session_registry import SessionRegistry
from bl654.core.transport import LineSource

logger = logging.getLogger(__name__)

ADVERTISEMENT_PREFIXES = ("AD0:", "AD1:", "AD2:", "ADE:", "ADS:")
DISCONNECT_PREFIX = "discon "
NOTIFICATION_PREFIX = "IN:"
MTU_PREFIX = "MT:"


class ReaderLoop:
    """Daemon thread reading lines from a LineSource.

    Every line, unsolicited or not, ends up in ``lines`` in receive order.
    Callbacks for an unsolicited line run before the line is queued. When
    the FIFO is full new lines are dropped and a warning is logged; the
    reader never blocks on insertion.

    When the loop ends, for whatever reason, subscribers get one global
    disconnect event (handle -1) followed by one interface-disconnected
    notification, and the session registry is emptied.

    Attributes:
        lines: Bounded FIFO shared with the command layer
        dropped_lines: Number of lines discarded because the FIFO was full
        exit_reason: Reason reported on exit, None while running
    """

    def __init__(self,
                 source: LineSource,
                 registry: SessionRegistry,
                 hub: EventHub,
                 fifo_capacity: int = 1024,
                 comm_logger=None,
                 thread_name: str = "BL654 Read Thread",
                 join_timeout: float = 0.5):
        if fifo_capacity < 1:
            raise ValueError("fifo_capacity must be at least 1")

        self.lines: "queue.Queue[str]" = queue.Queue(maxsize=fifo_capacity)
        self.dropped_lines = 0
        self.exit_reason: Optional[DisconnectReason] = None

        self._source = source
        self._registry = registry
        self._hub = hub
        self._comm_logger = comm_logger
        self._thread_name = thread_name
        self._join_timeout = join_timeout
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the reader thread.

        Raises:
            RuntimeError: Reader already started
        """
        if self._thread is not None:
            raise RuntimeError("Reader loop can only be started once")

        # The reader waits for lines indefinitely; stop() interrupts it
        self._source.read_timeout = None
        self._thread = threading.Thread(target=self._run, name=self._thread_name, daemon=True)
        self._thread.start()

    def stop(self) -> bool:
        """Ask the reader to exit and wait for it.

        Returns:
            True if the thread finished within the join timeout
        """
        self._stop_event.set()
        if self._thread is None:
            return True

        try:
            self._source.cancel_read()
        except (SerialPortError, OSError) as e:
            logger.debug("cancel_read failed during stop: %s", e)

        self._thread.join(self._join_timeout)
        if self._thread.is_alive():
            logger.warning("Reader thread did not exit within %.2fs", self._join_timeout)
            return False
        return True

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the reader thread exits. Returns False on timeout."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        reason = DisconnectReason.READER_STOPPED
        try:
            while not self._stop_event.is_set():
                line = self._source.read_line()
                if line is None:
                    continue
                self.process_line(line)
        except (SerialPortError, OSError) as e:
            if not self._stop_event.is_set():
                logger.warning("Transport failed in reader thread, assuming module disconnected: %s", e)
                reason = DisconnectReason.TRANSPORT_DISCONNECTED
                if self._comm_logger:
                    self._comm_logger.log_error("ReaderLoop", str(e), {"port": self._source.name})
        except Exception:
            logger.exception("Unhandled exception in reader thread")
        finally:
            logger.info("Read thread exited (%s)", reason.name)
            self.exit_reason = reason
            self._hub.dispatch(events.DISCONNECT, DisconnectEvent(ALL_CONNECTIONS, reason))
            self._registry.clear()
            self._hub.dispatch(events.INTERFACE_DISCONNECTED)

    def process_line(self, line: str) -> None:
        """Classify one received line, dispatch it, then queue it."""
        line = line.lstrip("\r\n")
        if self._comm_logger:
            self._comm_logger.log_rx(self._source.name, line)

        try:
            self._dispatch_unsolicited(line)
        except BL654Error as e:
            logger.warning("Ignoring malformed unsolicited message %r: %s", line, e)

        try:
            self.lines.put_nowait(line)
        except queue.Full:
            self.dropped_lines += 1
            logger.warning("Line FIFO full (%d entries), dropped line %r",
                           self.lines.maxsize, line)
            if self._comm_logger:
                self._comm_logger.log_dropped_line(self._source.name, line, self.lines.maxsize)

    def _dispatch_unsolicited(self, line: str) -> None:
        if line.startswith(ADVERTISEMENT_PREFIXES):
            self._hub.dispatch(events.ADVERTISEMENT, parse_advertisement(line))

        elif line.startswith(DISCONNECT_PREFIX):
            fields = expect_fields(line, DISCONNECT_PREFIX, 2)
            handle = parse_int(fields[0], 10, line)
            reason = lookup_code(DisconnectReason, parse_int(fields[1], 10, line))
            if handle != ALL_CONNECTIONS:
                self._registry.remove(handle)
            self._hub.dispatch(events.DISCONNECT, DisconnectEvent(handle, reason))

        elif line.startswith(NOTIFICATION_PREFIX):
            fields = expect_fields(line, NOTIFICATION_PREFIX, 3)
            self._hub.dispatch(events.NOTIFICATION, NotificationEvent(
                device_handle=parse_int(fields[0], 10, line),
                characteristic_handle=parse_int(fields[1], 10, line),
                data=decode(fields[2])
            ))

        elif line.startswith(MTU_PREFIX):
            fields = expect_fields(line, MTU_PREFIX, 2)
            self._registry.update_mtu(parse_int(fields[0], 10, line),
                                      parse_int(fields[1], 10, line))


def parse_advertisement(line: str) -> Advertisement:
    """Parse an ``ADx:handle address rssi "name"`` report.

    The name field is everything after the third separator, so names with
    spaces survive.

    Raises:
        FormatError: Wrong field count or bad number
    """
    prefix = line[:4]
    fields = expect_fields(line, prefix, 4, separator=' ')
    name = fields[3].strip().strip('"')
    return Advertisement(
        handle=parse_int(fields[0], 10, line),
        address=parse_int(fields[1], 16, line),
        rssi=parse_int(fields[2], 10, line),
        name=name
    )
