"""Value table: lifecycle and usage history of single-assignment values."""
import bisect
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional

from .errors import IllegalTransition, UseAfterExpire, ValueNotFound
from .ir import SizeClass


class ValueState(Enum):
    UNBOUND = "unbound"
    ACTIVE = "active"
    SPILLED = "spilled"
    EXPIRED = "expired"


LEGAL_TRANSITIONS = {
    ValueState.UNBOUND: frozenset({ValueState.ACTIVE}),
    ValueState.ACTIVE: frozenset({ValueState.SPILLED, ValueState.EXPIRED}),
    ValueState.SPILLED: frozenset({ValueState.ACTIVE}),
    ValueState.EXPIRED: frozenset(),
}


@dataclass
class Value:
    id: int
    size: SizeClass
    uses: List[int] = field(default_factory=list)  # ascending instruction indices
    last_use: Optional[int] = None
    state: ValueState = ValueState.UNBOUND


class ValueTable:
    """Owns every value record of one scope."""

    def __init__(self):
        self._values: Dict[int, Value] = {}

    def declare(self, value_id: int, size: SizeClass) -> Value:
        if value_id in self._values:
            raise IllegalTransition(f"value %{value_id} declared twice", value_id=value_id)
        value = Value(id=value_id, size=SizeClass(size))
        self._values[value_id] = value
        return value

    def get(self, value_id: int) -> Value:
        try:
            return self._values[value_id]
        except KeyError:
            raise ValueNotFound(f"value %{value_id} does not exist", value_id=value_id) from None

    def live(self, value_id: int) -> Value:
        """Like get(), but referencing an expired value fails."""
        value = self.get(value_id)
        if value.state is ValueState.EXPIRED:
            raise UseAfterExpire(f"value %{value_id} has expired", value_id=value_id)
        return value

    def record_use(self, value_id: int, at_index: int):
        value = self.get(value_id)
        bisect.insort(value.uses, at_index)
        value.last_use = value.uses[-1]

    def next_use_after(self, value_id: int, current_index: int) -> Optional[int]:
        """Smallest use position strictly after `current_index`.

        Returns None when the value is never read again.
        """
        uses = self.get(value_id).uses
        pos = bisect.bisect_right(uses, current_index)
        if pos == len(uses):
            return None
        return uses[pos]

    def transition(self, value_id: int, new_state: ValueState):
        value = self.live(value_id)
        if new_state not in LEGAL_TRANSITIONS[value.state]:
            raise IllegalTransition(
                f"value %{value_id} cannot go from {value.state.value} to {new_state.value}",
                value_id=value_id,
            )
        value.state = new_state

    def state(self, value_id: int) -> ValueState:
        return self.get(value_id).state

    def ids_in(self, state: ValueState) -> List[int]:
        return sorted(v.id for v in self._values.values() if v.state is state)

    def __contains__(self, value_id):
        return value_id in self._values

    def __iter__(self) -> Iterator[Value]:
        return iter(self._values.values())

    def __len__(self):
        return len(self._values)
