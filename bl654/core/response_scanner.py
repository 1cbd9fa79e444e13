"""Timeout-bounded matching of command responses against the line FIFO."""

import logging
import queue
import time
from typing import Callable, Optional

from bl654.core.exceptions import DeviceProtocolError
from bl654.core.grammar import parse_error_line

logger = logging.getLogger(__name__)

OK_LINE = "OK"
ERROR_PREFIX = "ERROR"


class ResponseScanner:
    """Pops lines from the reader FIFO until one matches.

    The timeout passed to each call is an overall wall-clock budget: the
    wait for each pop shrinks as the budget is spent, so a stream of
    non-matching lines cannot extend the call.

    Example:
        >>> scanner = ResponseScanner(reader.lines)
        >>> scanner.scan(lambda line: line.startswith("connect"), timeout=5.0)
        'connect 1,01D8A0A...'
    """

    def __init__(self, fifo: "queue.Queue[str]"):
        self._fifo = fifo

    def next_line(self, timeout: float) -> Optional[str]:
        """Pop one line, or return None if none arrives within ``timeout``."""
        try:
            return self._fifo.get(timeout=max(timeout, 0))
        except queue.Empty:
            return None

    def scan(self, predicate: Callable[[str], bool], timeout: float = 1.0) -> Optional[str]:
        """Return the first line satisfying ``predicate``.

        Lines that do not match are discarded. Exceptions raised by
        ``predicate`` propagate to the caller.

        Returns:
            The matching line, or None once ``timeout`` seconds have elapsed
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            line = self.next_line(remaining)
            if line is None:
                return None
            if predicate(line):
                return line
            logger.debug("Discarded line while scanning: %r", line)

    def ok_scan(self, timeout: float = 1.0) -> bool:
        """Wait for ``OK``.

        Returns:
            True on ``OK``, False if the timeout expired first

        Raises:
            DeviceProtocolError: An ``ERROR <hex code>`` line arrived first
        """
        return self.scan(_is_ok, timeout) is not None

    def flush(self) -> int:
        """Discard every buffered line. Returns the number discarded."""
        count = 0
        while True:
            try:
                self._fifo.get_nowait()
            except queue.Empty:
                return count
            count += 1


def _is_ok(line: str) -> bool:
    if line.startswith(ERROR_PREFIX + " "):
        code = parse_error_line(line, 16)
        raise DeviceProtocolError(code, f"Module returned {line.strip()}")
    return line == OK_LINE
