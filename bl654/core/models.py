"""Data models for GAP-level events and connection state.

Event payloads are frozen dataclasses; ConnectionSession is mutable because
the negotiated MTU changes over the life of a connection.
"""

from dataclasses import dataclass
from enum import IntFlag
from typing import Optional, Union

from bl654.core.error_codes import DisconnectReason

# Handle value meaning "every connection" in disconnect events
ALL_CONNECTIONS = -1


class ScanType(IntFlag):
    """Scan type flags for ``AT+LSCN``."""
    PRIMARY_1M_PHY = 1
    PRIMARY_LE_CODED = 2
    EXTENDED_SECONDARY_CHANNELS = 4
    PASSIVE = 8


@dataclass(frozen=True)
class Advertisement:
    """One advertisement report.

    Attributes:
        handle: Report handle assigned by the module
        address: 48/64-bit device address
        rssi: Signed received signal strength in dBm
        name: Advertised device name (quotes removed)
    """
    handle: int
    address: int
    rssi: int
    name: str

    def __str__(self) -> str:
        return f"{self.address:014X} {self.name!r} ({self.rssi} dBm)"


@dataclass
class ConnectionSession:
    """Metadata for one open connection.

    Attributes:
        handle: Connection handle assigned by the module
        address: Peer address (None for a placeholder created by an MTU report)
        interval_us: Connection interval in microseconds
        supervision_timeout_us: Supervision timeout in microseconds
        latency: Slave latency
        mtu: Negotiated MTU, None until reported
        advertisement: Advertisement the connection was made from (if given)
    """
    handle: int
    address: Optional[int] = None
    interval_us: Optional[int] = None
    supervision_timeout_us: Optional[int] = None
    latency: Optional[int] = None
    mtu: Optional[int] = None
    advertisement: Optional[Advertisement] = None

    @property
    def is_placeholder(self) -> bool:
        """True if only an MTU report has been seen for this handle."""
        return self.address is None


@dataclass(frozen=True)
class DisconnectEvent:
    """A ``discon`` report, or a synthesized global disconnect."""
    handle: int
    reason: Union[DisconnectReason, int]

    @property
    def is_global(self) -> bool:
        return self.handle == ALL_CONNECTIONS


@dataclass(frozen=True)
class NotificationEvent:
    """A notification or indication value pushed by a peripheral."""
    device_handle: int
    characteristic_handle: int
    data: bytes
