"""Incremental parser for the ``AT+GCTM`` GATT table listing.

The module answers service discovery with one record per line, each
carrying a ``TM:`` marker followed by a record tag::

    TM:S:1,0,180F          service (handle, unused, UUID)
    TM:C:3,12,2A19,0       characteristic (handle, properties, UUID, unused)
    TM:D:4,2902            descriptor (handle, UUID)
    OK

Lines may carry leading noise before the marker. Numbers other than handles
are hexadecimal.
"""

import logging
from enum import Enum
from typing import List, Optional

from bl654.core.exceptions import FormatError, UsageError
from bl654.core.grammar import split_fields, parse_int
from bl654.gatt.models import (
    CharacteristicCapability,
    GattCharacteristic,
    GattDescriptor,
    GattService
)

logger = logging.getLogger(__name__)

RECORD_MARKER = "TM:"
COMPLETION_TOKEN = "OK"
RECORD_TAGS = "SCD"


class ParserState(Enum):
    INIT = "init"
    OPEN_SERVICE = "open_service"
    OPEN_SERVICE_AND_CHARACTERISTIC = "open_service_and_characteristic"
    COMPLETE = "complete"


class GattTableParser:
    """Builds a service tree from GATT table lines fed one at a time.

    A malformed record raises FormatError and leaves the parser in the
    state it had before the line. Once the completion token has been fed
    the parser must be reset before reuse.

    Example:
        >>> parser = GattTableParser()
        >>> for line in lines:
        ...     if parser.feed(line):
        ...         break
        >>> parser.services[0].characteristics
    """

    def __init__(self):
        self._services: List[GattService] = []
        self._state = ParserState.INIT
        self._line_number = 0

    @property
    def state(self) -> ParserState:
        return self._state

    @property
    def is_complete(self) -> bool:
        return self._state is ParserState.COMPLETE

    @property
    def line_number(self) -> int:
        """Number of lines fed since construction or the last reset."""
        return self._line_number

    @property
    def services(self) -> List[GattService]:
        """Services parsed so far, in report order."""
        return self._services

    def reset(self) -> None:
        self._services = []
        self._state = ParserState.INIT
        self._line_number = 0

    def feed(self, line: str) -> bool:
        """Consume one line of the listing.

        Returns:
            True once the completion token has been seen

        Raises:
            UsageError: Parser already complete
            FormatError: Malformed record, or a record without its parent
        """
        if self._state is ParserState.COMPLETE:
            raise UsageError("GATT table already complete; call reset() before parsing another table")

        self._line_number += 1

        if line.startswith(COMPLETION_TOKEN):
            self._state = ParserState.COMPLETE
            return True

        marker = line.find(RECORD_MARKER)
        if marker < 0:
            logger.debug("Ignoring line %d without record marker: %r", self._line_number, line)
            return False

        body = line[marker + len(RECORD_MARKER):]
        tag_index = _find_tag(body)
        if tag_index is None:
            logger.debug("Ignoring line %d without record tag: %r", self._line_number, line)
            return False

        tag = body[tag_index]
        if body[tag_index + 1:tag_index + 2] != ":":
            raise FormatError(f"Line {self._line_number}: expected ':' after record tag '{tag}'", line)

        fields = split_fields(body[tag_index + 2:])
        if tag == "S":
            self._parse_service(fields, line)
        elif tag == "C":
            self._parse_characteristic(fields, line)
        else:
            self._parse_descriptor(fields, line)
        return False

    def _parse_service(self, fields: List[str], line: str) -> None:
        if len(fields) < 3:
            raise FormatError(
                f"Line {self._line_number}: expected 3 fields in service record, found {len(fields)}", line
            )
        service = GattService(
            handle=parse_int(fields[0], 10, line),
            uuid=parse_int(fields[2], 16, line)
        )
        self._services.append(service)
        self._state = ParserState.OPEN_SERVICE

    def _parse_characteristic(self, fields: List[str], line: str) -> None:
        if len(fields) != 4:
            raise FormatError(
                f"Line {self._line_number}: expected 4 fields in characteristic record, found {len(fields)}", line
            )
        if self._state is ParserState.INIT:
            raise FormatError(f"Line {self._line_number}: characteristic record before any service", line)

        characteristic = GattCharacteristic(
            handle=parse_int(fields[0], 10, line),
            capabilities=CharacteristicCapability(parse_int(fields[1], 16, line)),
            uuid=parse_int(fields[2], 16, line)
        )
        self._services[-1].characteristics.append(characteristic)
        self._state = ParserState.OPEN_SERVICE_AND_CHARACTERISTIC

    def _parse_descriptor(self, fields: List[str], line: str) -> None:
        if len(fields) != 2:
            raise FormatError(
                f"Line {self._line_number}: expected 2 fields in descriptor record, found {len(fields)}", line
            )
        if self._state is not ParserState.OPEN_SERVICE_AND_CHARACTERISTIC:
            raise FormatError(f"Line {self._line_number}: descriptor record before any characteristic", line)

        # Last write wins when a characteristic reports several descriptors
        self._services[-1].characteristics[-1].descriptor = GattDescriptor(
            handle=parse_int(fields[0], 10, line),
            uuid=parse_int(fields[1], 16, line)
        )


def _find_tag(body: str) -> Optional[int]:
    for index, char in enumerate(body):
        if char in RECORD_TAGS:
            return index
    return None
