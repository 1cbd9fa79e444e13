"""Numeric code catalogues reported by the BL654 firmware.

Both enums span two numeric spaces: codes the module prints on the wire,
and negative software sentinels that the interface synthesizes itself and
that never appear in device output.
"""

from enum import IntEnum
from typing import Type, TypeVar, Union


class ErrorCode(IntEnum):
    """Error codes from ``ERROR``, ``AS:`` and ``AW:`` responses."""
    OK = 0
    INVALID_SREG_NUMBER = 1
    VALUE_OUT_OF_RANGE = 2
    SYNTAX_ERROR = 5
    INVALID_ADDRESS = 9
    COMMAND_CANNOT_BE_PROCESSED_IN_CURRENT_STATE = 14
    UNKNOWN_COMMAND = 15
    VALUE_SUPPLIED_NOT_VALID = 33
    GPIO_NOT_AVAILABLE = 46
    TOO_FEW_PARAMETERS = 47
    TOO_MANY_PARAMETERS = 48
    HEX_STRING_NOT_VALID = 49
    SAVE_FAIL = 50
    RESTORE_FAIL = 51
    VSP_OPEN_FAIL = 52
    INVALID_ADVERT_TYPE = 53
    INVALID_UUID = 54
    SERVICE_NOT_ENDED = 55
    CHARACTERISTIC_NOT_ENDED = 56
    SERVICE_NOT_STARTED = 57
    TOO_MANY_CHARACTERISTICS = 58
    CHARACTERISTIC_NOT_STARTED = 59
    NFC_NOT_OPEN = 60
    NFC_NDEF_MESSAGE_EMPTY = 61
    DIRECTED_ADVERT_PEER_ADDRESS_MISSING = 62
    INVALID_CHANNEL_MASK = 63
    INVALID_ADVERT_REPORTS = 64
    INVALID_ADVERT_REPORT_DATA = 65
    INVALID_ADVERT_REPORT_DATA_SIZE = 66
    INVALID_OUT_OF_BAND_DATA = 67
    NEWLINE_CHARACTER_NOT_FOUND = 68
    FUNCTIONALITY_NOT_CODED = 99

    # Characteristic read/write (ATT) status codes
    INVALID_ERROR_CODE = 256
    INVALID_ATTRIBUTE_HANDLE = 257
    READ_NOT_PERMITTED = 258
    WRITE_NOT_PERMITTED = 259
    INVALID_PDU = 260
    AUTHENTICATED_LINK_REQUIRED = 261
    REQUEST_NOT_SUPPORTED = 262
    INVALID_OFFSET = 263
    INSUFFICIENT_AUTHORISATION = 264
    PREPARE_QUEUE_FULL = 265
    ATTRIBUTE_NOT_FOUND = 266
    ATTRIBUTE_NOT_LONG = 267
    ENCRYPTION_KEY_TOO_SMALL = 268
    INVALID_VALUE_SIZE = 269
    UNLIKELY_ERROR = 270
    INSUFFICIENT_ENCRYPTION = 271
    UNSUPPORTED_GROUP_TYPE = 272
    INSUFFICIENT_RESOURCES = 273

    # Nordic SoftDevice errors surfaced verbatim
    GATTC_NO_MORE_DATA = 0x6052
    NORDIC_INVALID_PARAM = 0x6207
    NORDIC_INVALID_DATA = 0x620B
    NORDIC_INVALID_DATA_SIZE = 0x620C
    BLE_RESOURCES = 0x6213
    BLE_NO_TX_BUFFERS = 0x6804

    # Software sentinels, never transmitted by the module
    UNKNOWN_ERROR = -1
    NO_KNOWN_RESPONSE = -2
    CONNECTION_FAILED = -3


class DisconnectReason(IntEnum):
    """Reason codes carried by ``discon`` lines."""
    CONN_OK = 0
    SUPERVISION_TIMEOUT = 8
    BLE_CONNECT = 80
    INVALID_ADDRESS = 81
    CMD_PIN_STATE = 82
    TOO_MANY_CONNECTIONS = 83
    TIMEOUT = 84
    OUT_OF_MEMORY = 85
    UNENCRYPTED = 86
    NO_VSP_SERVICE = 87
    PAIR_UI = 88
    USER_DISCONNECT = 90
    AUTH_LINK_REQUIRED = 91
    SUSPEND = -1

    # Software sentinels, never transmitted by the module
    READER_STOPPED = -100000
    TRANSPORT_DISCONNECTED = -100001


_E = TypeVar('_E', bound=IntEnum)


def lookup_code(enum_class: Type[_E], value: int) -> Union[_E, int]:
    """Map a raw numeric code to its enum member, keeping unknown codes as ints.

    Example:
        >>> lookup_code(DisconnectReason, 84)
        <DisconnectReason.TIMEOUT: 84>
        >>> lookup_code(DisconnectReason, 19)
        19
    """
    try:
        return enum_class(value)
    except ValueError:
        return value
