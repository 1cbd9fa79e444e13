"""Shared fixtures: a scripted stand-in for a BL654 module on a line transport."""

import queue
import threading
from typing import Dict, List, Optional

import pytest

from bl654.config.config_models import TimeoutConfig
from bl654.core.at_interface import BL654Interface
from bl654.core.transport import LineSource

_CANCELLED = object()

# Short timeouts keep failure paths fast without making success paths flaky
FAST_TIMEOUTS = TimeoutConfig(
    at_check=0.2,
    command=0.5,
    connect=1.0,
    gatt_line=0.5,
    read=0.5,
    write=0.5,
    end_scan=0.3,
    scan_grace=1.0
)


class ScriptedModule(LineSource):
    """LineSource that answers written commands with scripted lines.

    Example:
        >>> module = ScriptedModule()
        >>> module.reply("AT", "OK", repeat=True)
        >>> module.push("AD0:1 0123456789ABCD -60 \\"Thermo\\"")
    """

    def __init__(self):
        self.written: List[str] = []
        self.break_states: List[bool] = []
        self.dtr_states: List[bool] = []
        self.cancel_count = 0
        self._incoming: "queue.Queue[object]" = queue.Queue()
        self._replies: Dict[str, List[List[str]]] = {}
        self._repeat: Dict[str, List[str]] = {}
        self._timeout: Optional[float] = 1.0
        self._lock = threading.Lock()

    def reply(self, command: str, *lines: str, repeat: bool = False) -> None:
        """Queue ``lines`` to be received after ``command`` is written."""
        with self._lock:
            if repeat:
                self._repeat[command] = list(lines)
            else:
                self._replies.setdefault(command, []).append(list(lines))

    def push(self, *lines: str) -> None:
        """Make ``lines`` arrive as if the module printed them unprompted."""
        for line in lines:
            self._incoming.put(line)

    def fail(self, error: Exception) -> None:
        """Make the next read raise ``error``."""
        self._incoming.put(error)

    def read_line(self) -> Optional[str]:
        item = self._incoming.get(timeout=self._timeout)
        if item is _CANCELLED:
            return None
        if isinstance(item, BaseException):
            raise item
        return item

    def write_line(self, line: str) -> None:
        with self._lock:
            self.written.append(line)
            scripted = self._replies.get(line)
            if scripted:
                lines = scripted.pop(0)
            else:
                lines = self._repeat.get(line, [])
        self.push(*lines)

    @property
    def read_timeout(self) -> Optional[float]:
        return self._timeout

    @read_timeout.setter
    def read_timeout(self, value: Optional[float]) -> None:
        self._timeout = value

    def set_break(self, active: bool) -> None:
        self.break_states.append(active)

    def set_dtr(self, active: bool) -> None:
        self.dtr_states.append(active)

    def cancel_read(self) -> None:
        self.cancel_count += 1
        self._incoming.put(_CANCELLED)

    @property
    def name(self) -> str:
        return "scripted"


@pytest.fixture
def module():
    """A fresh scripted module."""
    return ScriptedModule()


@pytest.fixture
def interface(module):
    """A started BL654Interface talking to ``module``."""
    iface = BL654Interface(module, timeouts=FAST_TIMEOUTS)
    iface.start()
    yield iface
    iface.close()
