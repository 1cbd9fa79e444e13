"""BL654 AT Interface - client for Laird BL654 BLE modules.

This package drives a BL654 module running the AT command firmware over a
serial line:
- Advertisement scanning and connection management
- GATT service discovery, characteristic read/write and notifications
- S-register access
- Layered configuration and raw traffic logging
"""

# Core AT command engine
from bl654.core import (
    BL654Interface,
    SerialHandler,
    PortInfo,
    Advertisement,
    ConnectionSession,
    DisconnectEvent,
    NotificationEvent,
    ScanType,
    SRegister,
    StartupFlags,
    ErrorCode,
    DisconnectReason,
    BL654Error,
    SerialPortError,
    DeviceProtocolError,
    DisconnectedDuringOperation,
    NoResponseError,
    FormatError,
    UsageError,
)

# GATT client
from bl654.gatt import (
    CharacteristicCapability,
    GattDescriptor,
    GattCharacteristic,
    GattService,
    GattTableParser,
    ManagedCharacteristic,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "BL654Interface",
    "SerialHandler",
    "PortInfo",
    "Advertisement",
    "ConnectionSession",
    "DisconnectEvent",
    "NotificationEvent",
    "ScanType",
    "SRegister",
    "StartupFlags",
    "ErrorCode",
    "DisconnectReason",
    # GATT
    "CharacteristicCapability",
    "GattDescriptor",
    "GattCharacteristic",
    "GattService",
    "GattTableParser",
    "ManagedCharacteristic",
    # Exceptions
    "BL654Error",
    "SerialPortError",
    "DeviceProtocolError",
    "DisconnectedDuringOperation",
    "NoResponseError",
    "FormatError",
    "UsageError",
]
