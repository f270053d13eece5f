"""Slotted pages that only ever grow by appending key/value records.

Page layout (all integers are big-endian unsigned 32-bit):

* bytes 0..4   next page id
* bytes 4..8   next frame id
* bytes 8..12  total bytes used (header + slots + records)
* bytes 12..16 slot count
* bytes 16..20 start offset of the record area

Slots grow upward right after the header; records grow downward from the
end of the page.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional, Tuple

PAGE_HEADER_SIZE = 4 * 5
SLOT_SIZE = 4 * 3
DEFAULT_PAGE_SIZE = 4096
NO_PAGE = 0xFFFFFFFF
NO_FRAME = 0xFFFFFFFF

_U32 = struct.Struct(">I")
_SLOT = struct.Struct(">III")

_NEXT_PAGE_OFFSET = 0
_NEXT_FRAME_OFFSET = 4
_TOTAL_BYTES_OFFSET = 8
_SLOT_COUNT_OFFSET = 12
_REC_START_OFFSET = 16


def _check_u32(name: str, value: int) -> int:
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"{name} must fit in an unsigned 32-bit integer, got {value}")
    return value


@dataclass
class Slot:
    """Location of one record inside a page."""

    offset: int
    key_size: int
    val_size: int

    def to_bytes(self) -> bytes:
        return _SLOT.pack(
            _check_u32("offset", self.offset),
            _check_u32("key_size", self.key_size),
            _check_u32("val_size", self.val_size),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Slot":
        if len(data) != SLOT_SIZE:
            raise ValueError(f"slot must be {SLOT_SIZE} bytes, got {len(data)}")
        return cls(*_SLOT.unpack(data))


class AppendOnlyPage:
    """A fixed-size page holding appended key/value records."""

    def __init__(self, page_id: int, size: int = DEFAULT_PAGE_SIZE) -> None:
        if size < PAGE_HEADER_SIZE + SLOT_SIZE:
            raise ValueError(
                f"page size must be at least {PAGE_HEADER_SIZE + SLOT_SIZE}, got {size}"
            )
        self.page_id = page_id
        self.size = size
        self.data = bytearray(size)

    # Raw header access

    def _read_u32(self, offset: int) -> int:
        return _U32.unpack_from(self.data, offset)[0]

    def _write_u32(self, offset: int, name: str, value: int) -> None:
        _U32.pack_into(self.data, offset, _check_u32(name, value))

    def _set_total_bytes_used(self, value: int) -> None:
        self._write_u32(_TOTAL_BYTES_OFFSET, "total_bytes_used", value)

    def _set_slot_count(self, value: int) -> None:
        self._write_u32(_SLOT_COUNT_OFFSET, "slot_count", value)

    def _set_rec_start_offset(self, value: int) -> None:
        self._write_u32(_REC_START_OFFSET, "rec_start_offset", value)

    @staticmethod
    def _slot_offset(slot_id: int) -> int:
        return PAGE_HEADER_SIZE + slot_id * SLOT_SIZE

    # Public interface

    def init(self) -> None:
        """Reset the header to that of an empty page with no successor."""
        self.set_next_page(NO_PAGE, NO_FRAME)
        self._set_total_bytes_used(PAGE_HEADER_SIZE)
        self._set_slot_count(0)
        self._set_rec_start_offset(self.size)

    def max_record_size(self) -> int:
        """Largest key plus value length that fits in an empty page."""
        return self.size - PAGE_HEADER_SIZE - SLOT_SIZE

    def next_page(self) -> Optional[Tuple[int, int]]:
        """Return ``(page_id, frame_id)`` of the next page, or None."""
        page_id = self._read_u32(_NEXT_PAGE_OFFSET)
        if page_id == NO_PAGE:
            return None
        return page_id, self._read_u32(_NEXT_FRAME_OFFSET)

    def set_next_page(self, page_id: int, frame_id: int) -> None:
        self._write_u32(_NEXT_PAGE_OFFSET, "page_id", page_id)
        self._write_u32(_NEXT_FRAME_OFFSET, "frame_id", frame_id)

    def total_bytes_used(self) -> int:
        return self._read_u32(_TOTAL_BYTES_OFFSET)

    def total_free_space(self) -> int:
        return self.size - self.total_bytes_used()

    def slot_count(self) -> int:
        return self._read_u32(_SLOT_COUNT_OFFSET)

    def rec_start_offset(self) -> int:
        return self._read_u32(_REC_START_OFFSET)

    def slot(self, slot_id: int) -> Optional[Slot]:
        """Return the slot with this id, or None if there is none."""
        if not 0 <= slot_id < self.slot_count():
            return None
        offset = self._slot_offset(slot_id)
        return Slot.from_bytes(bytes(self.data[offset : offset + SLOT_SIZE]))

    def append_slot(self, slot: Slot) -> None:
        """Write a slot after the existing ones and lower the record start.

        The caller must have checked that there is room for the slot.
        """
        slot_id = self.slot_count()
        offset = self._slot_offset(slot_id)
        encoded = slot.to_bytes()
        self._set_slot_count(slot_id + 1)
        self.data[offset : offset + SLOT_SIZE] = encoded
        self._set_rec_start_offset(min(self.rec_start_offset(), slot.offset))

    def append(self, key: bytes, value: bytes) -> bool:
        """Append a record; return False and leave the page untouched if it does not fit."""
        total_len = len(key) + len(value)
        if self.total_free_space() < SLOT_SIZE + total_len:
            return False
        start = self.rec_start_offset() - total_len
        self.data[start : start + len(key)] = key
        self.data[start + len(key) : start + total_len] = value
        self.append_slot(Slot(start, len(key), len(value)))
        self._set_total_bytes_used(self.total_bytes_used() + SLOT_SIZE + total_len)
        return True

    def _require_slot(self, slot_id: int) -> Slot:
        slot = self.slot(slot_id)
        if slot is None:
            raise IndexError(f"slot {slot_id} does not exist")
        return slot

    def get(self, slot_id: int) -> Tuple[bytes, bytes]:
        """Return ``(key, value)`` stored at the slot; raise IndexError if absent."""
        slot = self._require_slot(slot_id)
        key_end = slot.offset + slot.key_size
        key = bytes(self.data[slot.offset : key_end])
        value = bytes(self.data[key_end : key_end + slot.val_size])
        return key, value

    def set_val(self, slot_id: int, value: bytes) -> None:
        """Overwrite a record's value in place; the new value must keep its size."""
        slot = self._require_slot(slot_id)
        if len(value) != slot.val_size:
            raise ValueError(
                f"value must be {slot.val_size} bytes to update in place, got {len(value)}"
            )
        start = slot.offset + slot.key_size
        self.data[start : start + slot.val_size] = value