"""GATT client-side data model built by service discovery."""

from dataclasses import dataclass, field
from enum import IntFlag
from typing import List, Optional


class CharacteristicCapability(IntFlag):
    """Characteristic property bits as reported in ``TM:C`` records."""
    NONE = 0
    BROADCAST = 0x01
    READ = 0x02
    WRITE_WITHOUT_RESPONSE = 0x04
    WRITE_WITH_RESPONSE = 0x08
    NOTIFY = 0x10
    INDICATE = 0x20


@dataclass
class GattDescriptor:
    """Client characteristic configuration descriptor (CCCD)."""
    handle: int
    uuid: int


@dataclass
class GattCharacteristic:
    """A remote characteristic.

    Attributes:
        handle: Attribute handle used for reads and writes
        capabilities: Supported operations
        uuid: Characteristic UUID
        descriptor: CCCD, present when notify/indicate can be configured
    """
    handle: int
    capabilities: CharacteristicCapability
    uuid: int
    descriptor: Optional[GattDescriptor] = None

    def supports(self, capability: CharacteristicCapability) -> bool:
        return bool(self.capabilities & capability)


@dataclass
class GattService:
    """A remote primary service and its characteristics in discovery order."""
    handle: int
    uuid: int
    characteristics: List[GattCharacteristic] = field(default_factory=list)

    def find_characteristic(self, uuid: int) -> Optional[GattCharacteristic]:
        """First characteristic with ``uuid``, or None."""
        for characteristic in self.characteristics:
            if characteristic.uuid == uuid:
                return characteristic
        return None
