"""GATT client model, table parser and managed characteristics."""

from bl654.gatt.models import (
    CharacteristicCapability,
    GattDescriptor,
    GattCharacteristic,
    GattService
)
from bl654.gatt.table_parser import GattTableParser, ParserState
from bl654.gatt.managed_characteristic import ManagedCharacteristic, CharacteristicState

__all__ = [
    'CharacteristicCapability',
    'GattDescriptor',
    'GattCharacteristic',
    'GattService',
    'GattTableParser',
    'ParserState',
    'ManagedCharacteristic',
    'CharacteristicState',
]
