"""Line transport contract consumed by the reader loop and command layer."""

from abc import ABC, abstractmethod
from typing import Optional


class LineSource(ABC):
    """Blocking line supplier/consumer.

    Implementations deliver one newline-delimited line per ``read_line`` call
    and accept one line per ``write_line`` call. ``cancel_read`` must be safe
    to call from another thread and make a pending ``read_line`` return.
    """

    @abstractmethod
    def read_line(self) -> Optional[str]:
        """Block until a complete line arrives and return it without terminator.

        Returns:
            The line, or None if the read ended without a complete line
            (read timeout expired or ``cancel_read`` was called)

        Raises:
            SerialPortError: The underlying transport failed
        """

    @abstractmethod
    def write_line(self, line: str) -> None:
        """Write ``line`` followed by the line terminator."""

    @property
    @abstractmethod
    def read_timeout(self) -> Optional[float]:
        """Read timeout in seconds; None blocks indefinitely."""

    @read_timeout.setter
    @abstractmethod
    def read_timeout(self, value: Optional[float]) -> None:
        pass

    @abstractmethod
    def set_break(self, active: bool) -> None:
        """Assert or release the BREAK condition."""

    @abstractmethod
    def set_dtr(self, active: bool) -> None:
        """Assert or release DTR."""

    @abstractmethod
    def cancel_read(self) -> None:
        """Interrupt a blocking ``read_line`` from another thread."""

    @property
    def name(self) -> str:
        """Identifier used in log output."""
        return type(self).__name__
