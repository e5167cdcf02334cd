"""Register pool for the value resolver."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .errors import AlreadyBound, DoubleRelease, PoolExhausted, SpillOfFreeRegister
from .spill import SpillRecord


class RegisterState(Enum):
    BOUND = "bound"
    FREE = "free"


@dataclass
class Register:
    """A resolver register slot.

    `lifetime` may name a value without that value being bound, to keep a
    slot associated with a value across a gap (e.g. while it sits spilled).
    Binding a value always sets the lifetime to that value.
    """
    id: int
    value_id: Optional[int] = None
    lifetime: Optional[int] = None
    state: RegisterState = RegisterState.FREE

    def reset(self):
        self.value_id = None
        self.lifetime = None
        self.state = RegisterState.FREE


class RegisterPool:
    """Fixed set of interchangeable register slots.

    Free registers are recycled LIFO: the most recently released register
    is the next one handed out. A fresh pool hands out r0, r1, ... in order.
    """

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError("register pool capacity must be non-negative")
        self.capacity = capacity
        self.registers = [Register(i) for i in range(capacity)]
        # Top of the stack is the end of the list
        self.free_list: List[int] = list(reversed(range(capacity)))

    def _get(self, register: int) -> Register:
        if not 0 <= register < self.capacity:
            raise IndexError(f"register {register} outside pool of {self.capacity}")
        return self.registers[register]

    def acquire(self, lifetime: Optional[int] = None) -> int:
        """Take a free register off the free list.

        With `lifetime`, a free register still tagged with that lifetime is
        preferred over the LIFO top.
        """
        if not self.free_list:
            raise PoolExhausted("no free register")
        if lifetime is not None:
            for pos in range(len(self.free_list) - 1, -1, -1):
                reg_id = self.free_list[pos]
                if self.registers[reg_id].lifetime == lifetime:
                    return self.free_list.pop(pos)
        return self.free_list.pop()

    def bind(self, register: int, value_id: int):
        reg = self._get(register)
        if reg.state is RegisterState.BOUND:
            raise AlreadyBound(
                f"attempted to bind %{value_id} to register {register}, "
                f"however it already holds %{reg.value_id}",
                value_id=value_id, register=register,
            )
        if register in self.free_list:
            self.free_list.remove(register)
        reg.value_id = value_id
        reg.lifetime = value_id
        reg.state = RegisterState.BOUND

    def bind_lifetime(self, register: int, lifetime: int):
        reg = self._get(register)
        if reg.state is RegisterState.BOUND:
            raise AlreadyBound(
                f"attempted to tie lifetime %{lifetime} to register {register}, "
                f"however it already holds %{reg.value_id}",
                value_id=lifetime, register=register,
            )
        reg.lifetime = lifetime

    def release(self, register: int):
        """Return a register to the free list.

        A register taken by `acquire` but never bound is still FREE and may
        be handed back; one already on the free list is a double release.
        """
        reg = self._get(register)
        if reg.state is RegisterState.FREE and register in self.free_list:
            raise DoubleRelease(f"register {register} is already free", register=register)
        reg.reset()
        self.free_list.append(register)

    def spill(self, register: int) -> SpillRecord:
        """Evict the bound value: returns its spill record and frees the slot."""
        reg = self._get(register)
        if reg.state is RegisterState.FREE:
            raise SpillOfFreeRegister(
                f"attempted to spill register {register}, however it holds no value",
                register=register,
            )
        record = SpillRecord(value_id=reg.value_id)
        self.release(register)
        return record

    def value_in(self, register: int) -> Optional[int]:
        return self._get(register).value_id

    def is_free(self, register: int) -> bool:
        return self._get(register).state is RegisterState.FREE

    def bound(self) -> Dict[int, int]:
        """Mapping register -> bound value id."""
        return {r.id: r.value_id for r in self.registers if r.state is RegisterState.BOUND}

    @property
    def bound_count(self) -> int:
        return sum(1 for r in self.registers if r.state is RegisterState.BOUND)

    def summary(self):
        """Human-readable allocation state (for debugging)."""
        return {
            'bound': self.bound(),
            'free': list(self.free_list),
            'lifetimes': {r.id: r.lifetime for r in self.registers if r.lifetime is not None},
        }
