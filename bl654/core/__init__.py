"""Core AT command engine.

This package provides the line transport, the background reader, response
matching and the BL654Interface command layer.
"""

from bl654.core.error_codes import ErrorCode, DisconnectReason
from bl654.core.exceptions import (
    BL654Error,
    SerialPortError,
    SerialPortBusyError,
    DeviceProtocolError,
    DisconnectedDuringOperation,
    NoResponseError,
    FormatError,
    UsageError
)
from bl654.core.models import (
    ALL_CONNECTIONS,
    Advertisement,
    ConnectionSession,
    DisconnectEvent,
    NotificationEvent,
    ScanType
)
from bl654.core.s_registers import SRegister, StartupFlags
from bl654.core.transport import LineSource
from bl654.core.serial_handler import SerialHandler, PortInfo
from bl654.core.at_interface import BL654Interface

__all__ = [
    'ErrorCode',
    'DisconnectReason',
    'BL654Error',
    'SerialPortError',
    'SerialPortBusyError',
    'DeviceProtocolError',
    'DisconnectedDuringOperation',
    'NoResponseError',
    'FormatError',
    'UsageError',
    'ALL_CONNECTIONS',
    'Advertisement',
    'ConnectionSession',
    'DisconnectEvent',
    'NotificationEvent',
    'ScanType',
    'SRegister',
    'StartupFlags',
    'LineSource',
    'SerialHandler',
    'PortInfo',
    'BL654Interface',
]
