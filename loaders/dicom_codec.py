"""
Tag-stream decoder for uncompressed DICOM Part 10 buffers.

Layout: 128-byte preamble, "DICM" magic, explicit-VR little-endian file meta
group (0002,xxxx), then the body in the mode selected by the transfer syntax
(0002,0010). Every read is bounds-checked against the buffer; a bad length
always surfaces as a DecodeError subclass.

Undefined-length elements (0xFFFFFFFF) are not interpreted. The decoder skips
their content up to the matching delimiter and records a placeholder element
with ``undefined_length=True``.
"""

from __future__ import annotations

import logging
import os
import struct
from typing import Dict, List, Optional, Tuple

from pydicom.datadict import dictionary_VR
from pydicom.tag import BaseTag, Tag
from pydicom.uid import ExplicitVRBigEndian, ImplicitVRLittleEndian

from config import DECODER_MAGIC, DECODER_MAX_ELEMENT_LENGTH, DECODER_PREAMBLE_LENGTH
from core.base import Dataset, Element
from core.errors import CorruptedData, InvalidFormat, TypeMismatch, UnexpectedEndOfInput

logger = logging.getLogger(__name__)

UNDEFINED_LENGTH = 0xFFFFFFFF

# Explicit VRs followed by 2 reserved bytes and a 4-byte length
EXTENDED_LENGTH_VRS = frozenset({
    "OB", "OD", "OF", "OL", "OV", "OW", "SQ", "SV", "UC", "UN", "UR", "UT", "UV",
})

ITEM_GROUP = 0xFFFE
ITEM = Tag(0xFFFE, 0xE000)
ITEM_DELIMITER = Tag(0xFFFE, 0xE00D)
SEQUENCE_DELIMITER = Tag(0xFFFE, 0xE0DD)

META_GROUP = 0x0002
TRANSFER_SYNTAX_UID = Tag(0x0002, 0x0010)


def _implicit_vr(tag: BaseTag) -> str:
    """VR from the data dictionary; ambiguous entries resolve to their first choice (OW for pixel data)."""
    try:
        vr = dictionary_VR(tag)
    except KeyError:
        return "UN"
    if " or " in vr:
        choices = [c.strip() for c in vr.split(" or ")]
        return "OW" if "OW" in choices else choices[0]
    return vr


class _ElementReader:
    """Cursor over ``data[pos:end]`` reading one element at a time."""

    def __init__(
        self,
        data: bytes,
        pos: int,
        end: int,
        explicit: bool = True,
        little_endian: bool = True,
        max_length: int = DECODER_MAX_ELEMENT_LENGTH,
    ) -> None:
        self.data = data
        self.pos = pos
        self.end = end
        self.explicit = explicit
        self.little_endian = little_endian
        self.max_length = max_length

    @property
    def remaining(self) -> int:
        return self.end - self.pos

    @property
    def _order(self) -> str:
        return "<" if self.little_endian else ">"

    def _take(self, n: int, what: str) -> bytes:
        if n > self.remaining:
            raise UnexpectedEndOfInput(
                f"Need {n} bytes for {what} at offset {self.pos}, only {self.remaining} left"
            )
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def _check_length(self, tag: BaseTag, length: int) -> None:
        if length > self.max_length:
            raise CorruptedData(f"{tag}: length {length} exceeds ceiling {self.max_length}")
        if length > self.remaining:
            raise CorruptedData(
                f"{tag}: length {length} exceeds remaining {self.remaining} bytes at offset {self.pos}"
            )

    def peek_group(self) -> Optional[int]:
        if self.remaining < 2:
            return None
        (group,) = struct.unpack_from(self._order + "H", self.data, self.pos)
        return group

    def read_header(self) -> Tuple[BaseTag, str, int]:
        group, elem = struct.unpack(self._order + "HH", self._take(4, "tag"))
        tag = Tag(group, elem)

        if group == ITEM_GROUP:
            (length,) = struct.unpack(self._order + "I", self._take(4, "item length"))
            return tag, "", length

        if not self.explicit:
            (length,) = struct.unpack(self._order + "I", self._take(4, "length"))
            return tag, _implicit_vr(tag), length

        raw_vr = self._take(2, "VR")
        vr = raw_vr.decode("ascii", errors="replace")
        if not (vr.isalpha() and vr.isupper()):
            raise CorruptedData(f"{tag}: invalid VR {raw_vr!r} at offset {self.pos - 2}")
        if vr in EXTENDED_LENGTH_VRS:
            self._take(2, "reserved bytes")
            (length,) = struct.unpack(self._order + "I", self._take(4, "length"))
        else:
            (length,) = struct.unpack(self._order + "H", self._take(2, "length"))
        return tag, vr, length

    def read_element(self) -> Element:
        tag, vr, length = self.read_header()
        if length == UNDEFINED_LENGTH:
            terminator = ITEM_DELIMITER if tag == ITEM else SEQUENCE_DELIMITER
            self.skip_until(terminator)
            logger.debug("Skipped undefined-length element %s (%s)", tag, vr)
            return Element(tag, vr, 0, b"", undefined_length=True, little_endian=self.little_endian)

        self._check_length(tag, length)
        value = self._take(length, f"{tag} value")
        return Element(tag, vr, length, value, little_endian=self.little_endian)

    def skip_until(self, terminator: BaseTag) -> None:
        """Skip nested content up to and including ``terminator``."""
        pending = [terminator]
        while pending:
            if self.remaining <= 0:
                raise UnexpectedEndOfInput(f"Missing delimiter {pending[-1]} before end of buffer")
            tag, _vr, length = self.read_header()
            if tag in (ITEM_DELIMITER, SEQUENCE_DELIMITER):
                if tag != pending[-1]:
                    raise CorruptedData(f"Unexpected delimiter {tag}, expected {pending[-1]}")
                pending.pop()
                continue
            if length == UNDEFINED_LENGTH:
                pending.append(ITEM_DELIMITER if tag == ITEM else SEQUENCE_DELIMITER)
                continue
            self._check_length(tag, length)
            self.pos += length


def _body_mode(transfer_syntax: Optional[str]) -> Tuple[bool, bool]:
    """(explicit, little_endian) for the dataset body."""
    if not transfer_syntax or transfer_syntax == ImplicitVRLittleEndian:
        return False, True
    if transfer_syntax == ExplicitVRBigEndian:
        return True, False
    return True, True


def decode(buffer, max_element_length: int = DECODER_MAX_ELEMENT_LENGTH) -> Dataset:
    """
    Decode a DICOM Part 10 byte buffer into a flat Dataset.

    Args:
        buffer: bytes-like object holding the whole file.
        max_element_length: Sanity ceiling for a single element payload.

    Returns:
        Dataset: tag -> Element (last write wins on duplicate tags).

    Raises:
        InvalidFormat: Buffer shorter than 132 bytes or magic missing.
        UnexpectedEndOfInput: Element header or delimiter truncated.
        CorruptedData: Declared length out of bounds or invalid VR.
    """
    data = bytes(buffer)
    header_len = DECODER_PREAMBLE_LENGTH + len(DECODER_MAGIC)
    if len(data) < header_len:
        raise InvalidFormat(f"Buffer too short ({len(data)} bytes, need at least {header_len})")
    if data[DECODER_PREAMBLE_LENGTH:header_len] != DECODER_MAGIC:
        raise InvalidFormat("Missing DICM magic at offset 128")

    reader = _ElementReader(data, header_len, len(data), explicit=True, little_endian=True,
                            max_length=max_element_length)
    elements: Dict[BaseTag, Element] = {}

    # File meta group is always explicit VR little endian
    while reader.peek_group() == META_GROUP:
        elem = reader.read_element()
        elements[elem.tag] = elem

    transfer_syntax = None
    ts_elem = elements.get(TRANSFER_SYNTAX_UID)
    if ts_elem is not None:
        transfer_syntax = ts_elem.value.decode("ascii", errors="ignore").strip(" \x00") or None

    reader.explicit, reader.little_endian = _body_mode(transfer_syntax)
    while reader.remaining > 0:
        elem = reader.read_element()
        elements[elem.tag] = elem

    return Dataset(elements, transfer_syntax=transfer_syntax,
                   explicit_vr=reader.explicit, little_endian=reader.little_endian)


def decode_sequence(element: Element, parent: Dataset) -> List[Dataset]:
    """
    Split a defined-length SQ element into its item Datasets.

    Items use the parent's encoding. Undefined-length items inside a
    defined-length sequence are read up to their item delimiter.

    Raises:
        TypeMismatch: The element is an undefined-length placeholder.
        DecodeError: Item content is truncated or corrupt.
    """
    if element.undefined_length:
        raise TypeMismatch(f"{element.tag}: undefined-length sequence is not supported")

    reader = _ElementReader(element.value, 0, len(element.value),
                            explicit=parent.explicit_vr, little_endian=parent.little_endian)
    items: List[Dataset] = []
    while reader.remaining > 0:
        tag, _vr, length = reader.read_header()
        if tag == SEQUENCE_DELIMITER:
            break
        if tag != ITEM:
            raise CorruptedData(f"Expected item tag in {element.tag}, found {tag}")

        elements: Dict[BaseTag, Element] = {}
        if length == UNDEFINED_LENGTH:
            while True:
                if reader.peek_group() == ITEM_GROUP:
                    inner_tag, _vr, _len = reader.read_header()
                    if inner_tag != ITEM_DELIMITER:
                        raise CorruptedData(f"Unexpected {inner_tag} inside item of {element.tag}")
                    break
                if reader.remaining <= 0:
                    raise UnexpectedEndOfInput(f"Missing item delimiter in {element.tag}")
                elem = reader.read_element()
                elements[elem.tag] = elem
        else:
            reader._check_length(tag, length)
            item_reader = _ElementReader(element.value, reader.pos, reader.pos + length,
                                         explicit=reader.explicit, little_endian=reader.little_endian)
            while item_reader.remaining > 0:
                elem = item_reader.read_element()
                elements[elem.tag] = elem
            reader.pos += length

        items.append(Dataset(elements, transfer_syntax=parent.transfer_syntax,
                             explicit_vr=parent.explicit_vr, little_endian=parent.little_endian))
    return items


def is_dicom_file(path: str) -> bool:
    """Cheap magic check on the first 132 bytes."""
    header_len = DECODER_PREAMBLE_LENGTH + len(DECODER_MAGIC)
    try:
        with open(path, "rb") as fh:
            head = fh.read(header_len)
    except OSError:
        return False
    return len(head) == header_len and head[DECODER_PREAMBLE_LENGTH:] == DECODER_MAGIC


def read_file(path: str) -> Dataset:
    """Read and decode one file."""
    with open(path, "rb") as fh:
        data = fh.read()
    logger.debug("Decoding %s (%d bytes)", os.path.basename(path), len(data))
    return decode(data)
