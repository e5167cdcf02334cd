"""Binds value-numbered instructions of one scope to a fixed register pool.

The Resolver walks a straight-line instruction sequence once. Operands are
looked up in the register pool, reloaded from the spill store when needed,
and when the pool runs dry a resident value is evicted using the
furthest-next-use rule:

1. a value that is never read again is discarded outright;
2. otherwise the value whose next read is furthest away is spilled;
3. ties go to the lowest value id.

Values referenced by the instruction being resolved are never evicted.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

from .constants import MAX_REGISTERS
from .diagnostics import NullDiagnostics
from .errors import (
    IllegalTransition,
    LifecycleError,
    NoEvictionCandidate,
    PoolExhausted,
    ResolutionError,
    UseBeforeDefinition,
    ValueNotSpilled,
)
from .ir import BoundInstruction, BoundOperand, LogicalBlock, LogicalInstruction, Operation
from .registers import RegisterPool, RegisterState
from .spill import SpillStore
from .values import ValueState, ValueTable


class ResolverState(Enum):
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Resolution:
    """Output of a successful run."""
    name: str
    instructions: List[BoundInstruction]
    spill_offsets: Dict[int, int] = field(default_factory=dict)
    spill_count: int = 0
    reload_count: int = 0
    discard_count: int = 0
    max_pressure: int = 0
    used_registers: List[int] = field(default_factory=list)

    def dump(self) -> str:
        lines = [f"resolved {self.name}:"]
        for idx, instr in enumerate(self.instructions):
            lines.append(f"  {idx:4d}  {instr}")
        lines.append(
            f"  ; spills={self.spill_count} reloads={self.reload_count} "
            f"discards={self.discard_count} max_pressure={self.max_pressure}"
        )
        return "\n".join(lines)


class Resolver:
    """Register resolution for one scope.

    Owns its value table, register pool and spill store; the instruction
    sequence is only read. `step()` advances one instruction, `run()` steps
    until done and returns a Resolution (or raises the failure).
    """

    def __init__(self, instructions: Sequence[LogicalInstruction], values: Mapping[int, int],
                 capacity: int = MAX_REGISTERS, diagnostics=None, name: str = "<scope>"):
        self.name = name
        self.instructions = instructions
        self.diagnostics = diagnostics if diagnostics is not None else NullDiagnostics()
        self.values = ValueTable()
        for value_id, size in values.items():
            self.values.declare(value_id, size)
        self.pool = RegisterPool(capacity)
        self.spills = SpillStore()
        self.resident: Dict[int, int] = {}  # value id -> register
        self.cursor = 0
        self.state = ResolverState.RUNNING
        self.error: Optional[ResolutionError] = None
        self.output: List[BoundInstruction] = []

        self.spill_count = 0
        self.reload_count = 0
        self.discard_count = 0
        self.max_pressure = 0
        self._used_registers = set()

        # Per-step scratch
        self._operands = frozenset()
        self._pending: List[BoundInstruction] = []
        self._current: Optional[int] = None

        self._collect_uses()

    @classmethod
    def for_block(cls, block: LogicalBlock, capacity: int = MAX_REGISTERS, diagnostics=None):
        return cls(block.instructions, block.values, capacity=capacity,
                   diagnostics=diagnostics, name=block.name)

    def _collect_uses(self):
        # Undeclared ids are left alone; they fail when the cursor reaches them
        for idx, instr in enumerate(self.instructions):
            for value_id in instr.inputs:
                if value_id in self.values:
                    self.values.record_use(value_id, idx)

    # ------------------------------------------------------------------
    # Driver

    def run(self) -> Resolution:
        while self.state is ResolverState.RUNNING:
            self.step()
        if self.state is ResolverState.FAILED:
            raise self.error
        return self.result()

    def step(self) -> ResolverState:
        if self.state is not ResolverState.RUNNING:
            return self.state
        if self.cursor >= len(self.instructions):
            self.state = ResolverState.DONE
            self.diagnostics.very_verbose(
                f"{self.name}: resolved {len(self.instructions)} instructions, "
                f"{self.spill_count} spills, {self.reload_count} reloads"
            )
            return self.state

        instr = self.instructions[self.cursor]
        self.diagnostics.very_very_verbose(f"{self.name}[{self.cursor}]: {instr}")
        self._operands = frozenset(instr.inputs) | frozenset(instr.outputs)
        self._pending = []
        try:
            bound = self._resolve(instr)
        except ResolutionError as err:
            context = self.summary() if isinstance(err, LifecycleError) else None
            err.attach(index=self.cursor, value_id=self._current, context=context)
            self.error = err
            self.state = ResolverState.FAILED
            self.diagnostics.verbose(f"{self.name}: resolution failed: {err}")
            return self.state
        finally:
            self._operands = frozenset()
            self._current = None

        self.output.extend(self._pending)
        self.output.append(bound)
        self._pending = []
        self.max_pressure = max(self.max_pressure, self.pool.bound_count)
        self.cursor += 1
        return self.state

    def _resolve(self, instr: LogicalInstruction) -> BoundInstruction:
        inputs = []
        for value_id in instr.inputs:
            self._current = value_id
            register = self._resolve_input(value_id)
            inputs.append(BoundOperand(register, self.values.get(value_id).size))

        # Values read for the last time give their register back before
        # outputs are bound, so an output may reuse the slot.
        for value_id in dict.fromkeys(instr.inputs):
            self._current = value_id
            if self.values.next_use_after(value_id, self.cursor) is None:
                self._expire(value_id)

        outputs = []
        for value_id in instr.outputs:
            self._current = value_id
            value = self.values.live(value_id)
            if value.state is not ValueState.UNBOUND:
                raise IllegalTransition(
                    f"value %{value_id} produced twice (state {value.state.value})",
                    value_id=value_id,
                )
            register = self._acquire(value_id)
            self.pool.bind(register, value_id)
            self.values.transition(value_id, ValueState.ACTIVE)
            self.resident[value_id] = register
            self._used_registers.add(register)
            outputs.append(BoundOperand(register, value.size))

        return BoundInstruction(instr.operation, tuple(outputs), tuple(inputs), instr.immediate)

    def _resolve_input(self, value_id: int) -> int:
        value = self.values.live(value_id)
        register = self.resident.get(value_id)
        if register is not None:
            return register
        if value.state is ValueState.SPILLED:
            return self.reload_value(value_id)
        raise UseBeforeDefinition(f"value %{value_id} used before definition", value_id=value_id)

    # ------------------------------------------------------------------
    # Register traffic

    def _acquire(self, value_id: int) -> int:
        try:
            return self.pool.acquire(lifetime=value_id)
        except PoolExhausted:
            self._evict(value_id)
        return self.pool.acquire(lifetime=value_id)

    def _next_use(self, value_id: int) -> Optional[int]:
        return self.values.next_use_after(value_id, self.cursor)

    def _eviction_key(self, value_id: int):
        next_use = self._next_use(value_id)
        if next_use is None:
            return (0, 0, value_id)
        return (1, -next_use, value_id)

    def select_victim(self, exclude=frozenset()) -> Optional[int]:
        """Resident value to evict at the current cursor, or None."""
        candidates = [v for v in self.resident if v not in exclude]
        if not candidates:
            return None
        return min(candidates, key=self._eviction_key)

    def _evict(self, requester: int):
        victim = self.select_victim(exclude=self._operands)
        if victim is None:
            raise NoEvictionCandidate(
                f"no register can be freed for %{requester}: pool of "
                f"{self.pool.capacity} is too small for this instruction",
                value_id=requester,
            )
        if self._next_use(victim) is None:
            self.diagnostics.very_verbose(f"{self.name}[{self.cursor}]: discarding dead %{victim}")
            self._expire(victim)
            self.discard_count += 1
        else:
            self.spill_value(victim)

    def spill_value(self, value_id: int) -> int:
        """Move a resident value to the spill store; returns the freed register."""
        size = self.values.get(value_id).size
        self.values.transition(value_id, ValueState.SPILLED)
        register = self.resident.pop(value_id)
        try:
            record = self.pool.spill(register)
        except LifecycleError as err:
            raise err.attach(value_id=value_id)
        # The slot keeps the value's lifetime so a reload can come back to it
        self.pool.bind_lifetime(register, value_id)
        self.spills.push(record.value_id)
        self.spill_count += 1
        self._pending.append(BoundInstruction(
            Operation.SPILL, inputs=(BoundOperand(register, size),), offset=0, value_id=value_id,
        ))
        self.diagnostics.very_verbose(
            f"{self.name}[{self.cursor}]: spilled %{value_id} from register {register} "
            f"(next use {self._next_use(value_id)})"
        )
        return register

    def reload_value(self, value_id: int) -> int:
        """Bring a spilled value back into a register; returns the register."""
        value = self.values.live(value_id)
        if value_id not in self.spills:
            raise ValueNotSpilled(f"value %{value_id} is not spilled", value_id=value_id)
        register = self._acquire(value_id)
        # Read the offset only now: making room may have pushed another spill
        record = self.spills.pop(value_id)
        self.values.transition(value_id, ValueState.ACTIVE)
        self.pool.bind(register, value_id)
        self.resident[value_id] = register
        self._used_registers.add(register)
        self.reload_count += 1
        self._pending.append(BoundInstruction(
            Operation.RELOAD, outputs=(BoundOperand(register, value.size),),
            offset=record.offset, value_id=value_id,
        ))
        self.diagnostics.very_verbose(
            f"{self.name}[{self.cursor}]: reloaded %{value_id} into register {register} "
            f"from offset {record.offset}"
        )
        return register

    def _expire(self, value_id: int):
        self.values.transition(value_id, ValueState.EXPIRED)
        register = self.resident.pop(value_id)
        try:
            self.pool.release(register)
        except LifecycleError as err:
            raise err.attach(value_id=value_id)

    # ------------------------------------------------------------------
    # Introspection

    def result(self) -> Resolution:
        return Resolution(
            name=self.name,
            instructions=list(self.output),
            spill_offsets=self.spills.offsets(),
            spill_count=self.spill_count,
            reload_count=self.reload_count,
            discard_count=self.discard_count,
            max_pressure=self.max_pressure,
            used_registers=sorted(self._used_registers),
        )

    def summary(self):
        """Snapshot of the binding state, attached to lifecycle errors."""
        return {
            'scope': self.name,
            'cursor': self.cursor,
            'resident': dict(self.resident),
            'spilled': self.spills.offsets(),
            'registers': self.pool.summary(),
            'states': {v.id: v.state.value for v in self.values},
        }

    def check_invariants(self) -> List[str]:
        """Return a list of violated binding invariants (empty when consistent)."""
        problems = []
        bound = self.pool.bound()
        if bound != {reg: vid for vid, reg in self.resident.items()}:
            problems.append(f"register/value map mismatch: pool={bound} resident={self.resident}")
        if len(bound) > self.pool.capacity:
            problems.append(f"{len(bound)} registers bound in a pool of {self.pool.capacity}")
        for reg in self.pool.registers:
            on_list = self.pool.free_list.count(reg.id)
            if reg.state is RegisterState.FREE and on_list != 1:
                problems.append(f"free register {reg.id} appears {on_list} times on the free list")
            elif reg.state is RegisterState.BOUND and on_list:
                problems.append(f"bound register {reg.id} is on the free list")
        for value in self.values:
            in_map = value.id in self.resident
            in_store = value.id in self.spills
            if value.state is ValueState.ACTIVE and not (in_map and not in_store):
                problems.append(f"active %{value.id} is not resident")
            elif value.state is ValueState.SPILLED and not (in_store and not in_map):
                problems.append(f"spilled %{value.id} is not in the spill store")
            elif value.state in (ValueState.UNBOUND, ValueState.EXPIRED) and (in_map or in_store):
                problems.append(f"{value.state.value} %{value.id} still holds a location")
        offsets = sorted(self.spills.offsets().values())
        if offsets != list(range(len(offsets))):
            problems.append(f"spill offsets not contiguous: {offsets}")
        return problems


def resolve_block(block: LogicalBlock, capacity: int = MAX_REGISTERS, diagnostics=None) -> Resolution:
    return Resolver.for_block(block, capacity=capacity, diagnostics=diagnostics).run()
