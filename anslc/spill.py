"""Spill store: values evicted to the stack and their offsets from the top."""
from dataclasses import dataclass
from typing import Dict, List

from .errors import ValueNotSpilled


@dataclass
class SpillRecord:
    value_id: int
    offset: int = 0


class SpillStore:
    """LIFO-ordered spill area.

    Offsets are always the contiguous range 0..len-1, with 0 the most
    recently pushed entry.
    """

    def __init__(self):
        # Index 0 is the top of the stack, so an entry's offset is its index
        self._records: List[SpillRecord] = []

    def push(self, value_id: int) -> SpillRecord:
        for record in self._records:
            record.offset += 1
        record = SpillRecord(value_id=value_id, offset=0)
        self._records.insert(0, record)
        return record

    def pop(self, value_id: int) -> SpillRecord:
        record = self._find(value_id)
        self._records.remove(record)
        for other in self._records:
            if other.offset > record.offset:
                other.offset -= 1
        return record

    def offset_of(self, value_id: int) -> int:
        return self._find(value_id).offset

    def _find(self, value_id: int) -> SpillRecord:
        for record in self._records:
            if record.value_id == value_id:
                return record
        raise ValueNotSpilled(f"value %{value_id} is not spilled", value_id=value_id)

    def offsets(self) -> Dict[int, int]:
        return {r.value_id: r.offset for r in self._records}

    def __contains__(self, value_id):
        return any(r.value_id == value_id for r in self._records)

    def __len__(self):
        return len(self._records)
