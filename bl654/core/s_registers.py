"""S-register numbers and the startup flag bits stored in register 100."""

from enum import IntEnum, IntFlag


class SRegister(IntEnum):
    """Configuration registers accessed with ``ATS n?`` / ``ATS n=value``."""
    STARTUP_FLAGS = 100
    CONNECTION_TIMEOUT_S = 110
    ACTIVE_SCAN = 112
    MIN_SCAN_RSSI = 113
    MAX_CONNECTIONS = 126
    LINK_SUPERVISION_TIMEOUT_MS = 206
    MAX_DLE_SIZE = 219
    MIN_CONNECTION_INTERVAL_US = 300
    MAX_CONNECTION_INTERVAL_US = 301
    UART_BAUD_RATE = 302
    MAX_MESSAGES_PER_INTERVAL = 307


MAX_CONNECTIONS_LIMIT = 16
DLE_SIZE_RANGE = (20, 244)


class StartupFlags(IntFlag):
    """Bits of register 100.

    The PHY selection occupies bits 5-6 and is a two-bit field, not a set of
    independent flags; ``PHY_1M`` is the all-clear value.
    """
    NONE = 0
    VSP_CONNECTABLE = 1
    START_ADVERTISING = 2
    START_SCANNING = 4
    MAX_THROUGHPUT = 8
    USE_DLE = 16
    PHY_1M = 0
    PHY_LONG_RANGE = 32
    PHY_RFU = 64
    PHY_2M = 96

    @property
    def phy(self) -> 'StartupFlags':
        """The PHY field on its own."""
        return StartupFlags(int(self) & int(StartupFlags.PHY_2M))
