"""Custom exception hierarchy for the BL654 AT interface.

Every public operation either returns a typed value or raises exactly one of
the exceptions defined here. Device-reported failures, timeouts, grammar
mismatches and caller mistakes each have their own type so callers can tell
them apart without inspecting messages.
"""

from typing import Optional, Union

from bl654.core.error_codes import DisconnectReason, ErrorCode, lookup_code


class BL654Error(Exception):
    """Base exception for all BL654 interface errors.

    All custom exceptions inherit from this base class to allow
    catching every interface error with a single except clause.
    """
    pass


class SerialPortError(BL654Error):
    """Serial port communication error.

    Raised when serial port operations fail (open, read, write).
    Captures port identifier and underlying OS error for diagnostics.

    Attributes:
        port: Serial port identifier (e.g., '/dev/ttyUSB0', 'COM3')
        os_error: Original exception from pyserial or OS (if available)
    """

    def __init__(self, message: str, port: str, os_error: Optional[Exception] = None):
        """Initialize SerialPortError.

        Args:
            message: Human-readable error description
            port: Serial port identifier
            os_error: Original exception from pyserial/OS
        """
        super().__init__(message)
        self.port = port
        self.os_error = os_error

    def __str__(self) -> str:
        """Format error message with port context."""
        base_msg = super().__str__()
        if self.os_error:
            return f"{base_msg} (port: {self.port}, cause: {self.os_error})"
        return f"{base_msg} (port: {self.port})"


class SerialPortBusyError(SerialPortError):
    """Port is already in use by another process."""
    pass


class DeviceProtocolError(BL654Error):
    """The module answered with an explicit error code.

    Raised for ``ERROR <code>`` lines and for non-zero status codes in
    asynchronous GATT acknowledgements (``AW:``, ``AS:``).

    Attributes:
        code: Raw numeric code as reported (or a software sentinel)
    """

    def __init__(self, code: Union[ErrorCode, int], message: Optional[str] = None):
        self.code = int(code)
        super().__init__(message or f"Device reported error {self.error_code!r}")

    @property
    def error_code(self) -> Union[ErrorCode, int]:
        """The code as an ``ErrorCode`` member, or the raw int if uncatalogued."""
        return lookup_code(ErrorCode, self.code)

    def __str__(self) -> str:
        base_msg = super().__str__()
        code = self.error_code
        name = code.name if isinstance(code, ErrorCode) else "UNCATALOGUED"
        return f"{base_msg} (code: {self.code}, {name})"


class DisconnectedDuringOperation(BL654Error):
    """A connection attempt ended in an immediate disconnect report.

    Attributes:
        reason: Disconnect reason reported with the ``discon`` line
    """

    def __init__(self, reason: Union[DisconnectReason, int], message: Optional[str] = None):
        self.reason = lookup_code(DisconnectReason, int(reason))
        super().__init__(message or f"Disconnected during operation: {self.reason!r}")


class NoResponseError(BL654Error):
    """No expected response arrived before the timeout expired.

    Attributes:
        command: The AT command that went unanswered (if known)
    """

    def __init__(self, message: str = "No response", command: Optional[str] = None):
        super().__init__(message)
        self.command = command
        self.code = int(ErrorCode.NO_KNOWN_RESPONSE)

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.command:
            return f"{base_msg} (command: {self.command})"
        return base_msg


class FormatError(BL654Error, ValueError):
    """A line did not match the expected grammar.

    Raised for wrong field counts and unparsable numeric or hex literals.
    Distinct from DeviceProtocolError: the device did not report a failure,
    its output simply could not be understood.

    Attributes:
        line: The offending input (if available)
    """

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.line = line

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.line is not None:
            return f"{base_msg} (line: {self.line!r})"
        return base_msg


class UsageError(BL654Error):
    """A caller precondition was violated.

    Examples: operating on a disconnected characteristic, using a capability
    the characteristic does not advertise, feeding a completed parser, or
    passing an out-of-range argument.
    """
    pass
