"""Field-level helpers shared by every response grammar.

All numeric parsing goes through ``parse_int`` so that a malformed literal
always surfaces as FormatError, never as a bare ValueError.
"""

from typing import List, Optional
import re

from bl654.core.exceptions import FormatError

_DECIMAL_LITERAL = re.compile(r"^-?[0-9]+\Z")
_HEX_LITERAL = re.compile(r"^[0-9A-Fa-f]+\Z")


def split_fields(text: str, separator: str = ',', maxsplit: int = -1) -> List[str]:
    """Split a field list, trimming whitespace and dropping empty entries."""
    if separator == ' ':
        return text.split(None, maxsplit)
    return [part.strip() for part in text.split(separator, maxsplit) if part.strip()]


def expect_fields(line: str, prefix: str, count: int, separator: str = ',') -> List[str]:
    """Strip ``prefix`` from ``line`` and require exactly ``count`` fields.

    Raises:
        FormatError: Wrong number of fields
    """
    if separator == ' ':
        fields = split_fields(line[len(prefix):], ' ', count - 1)
    else:
        fields = split_fields(line[len(prefix):], separator)
    if len(fields) != count:
        raise FormatError(
            f"Expected {count} fields after '{prefix.strip()}', found {len(fields)}", line
        )
    return fields


def parse_int(text: str, base: int = 10, line: Optional[str] = None) -> int:
    """Parse an integer literal in an explicit base.

    Decimal literals may carry a leading minus sign, hex literals may not.
    Python-only forms (``0x`` prefixes, underscores, ``+``, non-ASCII
    digits) are rejected.

    Raises:
        FormatError: Not a valid literal in ``base``
    """
    pattern = _HEX_LITERAL if base == 16 else _DECIMAL_LITERAL
    literal = text.strip()
    if not pattern.match(literal):
        kind = "hex" if base == 16 else "decimal"
        raise FormatError(f"Invalid {kind} number {text!r}", line)
    return int(literal, base)


def parse_error_line(line: str, base: int) -> int:
    """Extract the numeric code from an ``ERROR <code>`` line.

    The firmware prints some codes in hex and others in decimal depending on
    the command, so every call site passes its base explicitly.
    """
    if not line.startswith("ERROR"):
        raise FormatError("Not an ERROR line", line)
    return parse_int(line[len("ERROR"):], base, line)
