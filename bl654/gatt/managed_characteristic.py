"""Per-characteristic convenience wrapper with its own connection lifecycle."""

from enum import Enum
from threading import Lock
from typing import Callable, List, Optional, TYPE_CHECKING
import logging

from bl654.core import events
from bl654.core.exceptions import UsageError
from bl654.core.models import ALL_CONNECTIONS, DisconnectEvent, NotificationEvent
from bl654.gatt.models import CharacteristicCapability, GattCharacteristic, GattService

# Avoid circular import for type hints
if TYPE_CHECKING:
    from bl654.core.at_interface import BL654Interface

logger = logging.getLogger(__name__)


class CharacteristicState(Enum):
    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    RELEASED = "released"


class ManagedCharacteristic:
    """A discovered characteristic bound to one connection.

    Subscribes to the interface's disconnect and notification events on
    construction. Once the connection (or the interface) goes away the
    instance is DISCONNECTED for good; ``release()`` unsubscribes and moves
    it to RELEASED. Operations are only allowed while ACTIVE and only if the
    characteristic advertises the matching capability.

    Example:
        >>> chara = iface.find_characteristic(services, handle, 0x180F, 0x2A19)
        >>> chara.on_value(lambda event: print(event.data))
        >>> chara.enable_notifications()
        >>> chara.read()
        b'd'
        >>> chara.release()
    """

    def __init__(self,
                 interface: 'BL654Interface',
                 device_handle: int,
                 service: GattService,
                 characteristic: GattCharacteristic):
        self.interface = interface
        self.device_handle = device_handle
        self.service = service
        self.characteristic = characteristic

        self._state = CharacteristicState.ACTIVE
        self._state_lock = Lock()
        self._value_callbacks: List[Callable[[NotificationEvent], None]] = []
        self._disconnect_callbacks: List[Callable[[], None]] = []

        interface.events.subscribe(events.NOTIFICATION, self._handle_notification)
        interface.events.subscribe(events.DISCONNECT, self._handle_disconnect)
        interface.events.subscribe(events.INTERFACE_DISCONNECTED, self._handle_interface_disconnected)

    @property
    def state(self) -> CharacteristicState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is CharacteristicState.ACTIVE

    @property
    def handle(self) -> int:
        return self.characteristic.handle

    def on_value(self, callback: Callable[[NotificationEvent], None]) -> None:
        """Call ``callback`` for each notification/indication of this characteristic.

        Runs on the reader thread; calling read() or write() from the
        callback blocks until the command times out.
        """
        self._value_callbacks.append(callback)

    def on_disconnected(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` once when the instance becomes DISCONNECTED."""
        self._disconnect_callbacks.append(callback)

    def read(self, offset: int = 0, timeout: Optional[float] = None) -> bytes:
        self._require(CharacteristicCapability.READ, "read")
        return self.interface.read_characteristic(self.device_handle, self.handle, offset, timeout)

    def write_with_response(self, data: bytes, timeout: Optional[float] = None) -> None:
        self._require(CharacteristicCapability.WRITE_WITH_RESPONSE, "write with response")
        self.interface.write_with_response(self.device_handle, self.handle, data, timeout)

    def write_without_response(self, data: bytes, timeout: Optional[float] = None) -> None:
        self._require(CharacteristicCapability.WRITE_WITHOUT_RESPONSE, "write without response")
        self.interface.write_without_response(self.device_handle, self.handle, data, timeout)

    def enable_notifications(self, enabled: bool = True) -> None:
        """Set or clear the notify bit in this characteristic's CCCD.

        Raises:
            UsageError: Disconnected, notify unsupported, or no CCCD discovered
        """
        self._require(CharacteristicCapability.NOTIFY, "notify")
        self.interface.enable_notifications(self.device_handle, self._cccd_handle("notifications"), enabled)

    def enable_indications(self, enabled: bool = True) -> None:
        """Set or clear the indicate bit in this characteristic's CCCD."""
        self._require(CharacteristicCapability.INDICATE, "indicate")
        self.interface.enable_indications(self.device_handle, self._cccd_handle("indications"), enabled)

    def release(self) -> None:
        """Unsubscribe from the interface. Idempotent."""
        with self._state_lock:
            if self._state is CharacteristicState.RELEASED:
                return
            self._state = CharacteristicState.RELEASED

        self.interface.events.unsubscribe(events.NOTIFICATION, self._handle_notification)
        self.interface.events.unsubscribe(events.DISCONNECT, self._handle_disconnect)
        self.interface.events.unsubscribe(events.INTERFACE_DISCONNECTED, self._handle_interface_disconnected)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    def _require(self, capability: CharacteristicCapability, operation: str) -> None:
        if self._state is not CharacteristicState.ACTIVE:
            raise UsageError(f"Characteristic {self.handle} is {self._state.value}; device disconnected")
        if not self.characteristic.supports(capability):
            raise UsageError(f"Characteristic {self.handle} does not support {operation} (unsupported)")

    def _cccd_handle(self, what: str) -> int:
        descriptor = self.characteristic.descriptor
        if descriptor is None:
            raise UsageError(
                f"Characteristic {self.handle} has no descriptor to enable {what} upon"
            )
        return descriptor.handle

    def _mark_disconnected(self) -> None:
        with self._state_lock:
            if self._state is not CharacteristicState.ACTIVE:
                return
            self._state = CharacteristicState.DISCONNECTED

        logger.debug("Characteristic %d on handle %d disconnected", self.handle, self.device_handle)
        for callback in list(self._disconnect_callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Unhandled exception in disconnect callback %r", callback)

    def _handle_disconnect(self, event: DisconnectEvent) -> None:
        if event.handle in (self.device_handle, ALL_CONNECTIONS):
            self._mark_disconnected()

    def _handle_interface_disconnected(self) -> None:
        self._mark_disconnected()

    def _handle_notification(self, event: NotificationEvent) -> None:
        if not self.is_active:
            return
        if event.device_handle != self.device_handle or event.characteristic_handle != self.handle:
            return
        for callback in list(self._value_callbacks):
            try:
                callback(event)
            except Exception:
                logger.exception("Unhandled exception in value callback %r", callback)

    def __repr__(self) -> str:
        return (f"ManagedCharacteristic(device={self.device_handle}, handle={self.handle}, "
                f"uuid={self.characteristic.uuid:04X}, state={self._state.value})")
