"""Hex payload codec used by the GATT read/write grammars.

The module exchanges characteristic values as unseparated hex strings with
two characters per byte. Encoding always emits uppercase; decoding accepts
either case.
"""

import binascii

from bl654.core.exceptions import FormatError


def encode(data: bytes) -> str:
    """Encode bytes as uppercase hex.

    Example:
        >>> encode(b'\\x01\\xab')
        '01AB'
    """
    return binascii.hexlify(bytes(data)).decode('ascii').upper()


def decode(text: str) -> bytes:
    """Decode a hex string into bytes.

    Surrounding whitespace is ignored.

    Raises:
        FormatError: Odd number of characters or a non-hex character
    """
    stripped = text.strip()
    if len(stripped) % 2:
        raise FormatError("Hex string must contain an even number of characters", stripped)
    try:
        return binascii.unhexlify(stripped)
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"Invalid hex string: {e}", stripped)
