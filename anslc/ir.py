"""Intermediate representation: logical (value numbered) and register-bound instructions."""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, NamedTuple, Optional, Tuple, Union


class SizeClass(IntEnum):
    BITS8 = 8
    BITS16 = 16
    BITS32 = 32
    BITS64 = 64

    @property
    def bytes(self) -> int:
        return self.value // 8

    @classmethod
    def for_bytes(cls, size: int) -> "SizeClass":
        return cls(size * 8)


class Operation(Enum):
    LDI = "ldi"
    MOV = "mov"
    LOAD = "load"
    STORE = "store"
    ADD = "add"
    SUB = "sub"
    MULT = "mult"
    DIV = "div"
    MOD = "mod"
    AND = "and"
    OR = "or"
    XOR = "xor"
    NOT = "not"
    ARG = "arg"
    CALL = "call"
    RET = "ret"
    # Inserted by the Resolver only
    SPILL = "spill"
    RELOAD = "reload"


@dataclass(frozen=True)
class Label:
    """Symbolic reference to a data definition, constant or function."""
    name: str

    def __str__(self):
        return f"!{self.name}"


Immediate = Union[int, Label, None]


def _format_immediate(imm) -> str:
    return str(imm) if isinstance(imm, Label) else f"#{imm}"


@dataclass(frozen=True)
class LogicalInstruction:
    operation: Operation
    outputs: Tuple[int, ...] = ()
    inputs: Tuple[int, ...] = ()
    immediate: Immediate = None

    def __str__(self):
        outs = ", ".join(f"%{v}" for v in self.outputs)
        ins = [f"%{v}" for v in self.inputs]
        if self.immediate is not None:
            ins.insert(0, _format_immediate(self.immediate))
        text = f"{self.operation.value} {', '.join(ins)}".rstrip()
        return f"{outs} = {text}" if outs else text


@dataclass
class LogicalBlock:
    """One straight-line scope (a function body) in value-numbered form."""
    name: str
    values: Dict[int, SizeClass] = field(default_factory=dict)
    instructions: List[LogicalInstruction] = field(default_factory=list)

    def new_value(self, size: SizeClass) -> int:
        value_id = len(self.values)
        self.values[value_id] = size
        return value_id

    def append(self, operation, outputs=(), inputs=(), immediate=None) -> LogicalInstruction:
        instr = LogicalInstruction(operation, tuple(outputs), tuple(inputs), immediate)
        self.instructions.append(instr)
        return instr

    def dump(self) -> str:
        lines = [f"block {self.name}:"]
        for idx, instr in enumerate(self.instructions):
            lines.append(f"  {idx:4d}  {instr}")
        return "\n".join(lines)


class BoundOperand(NamedTuple):
    register: int
    size: SizeClass


@dataclass(frozen=True)
class BoundInstruction:
    """An instruction whose operands are resolver registers.

    `offset` is only set for SPILL/RELOAD and is the spill-store offset at
    the moment the traffic was emitted. `value_id` names the value moved by
    SPILL/RELOAD (for comments and debugging).
    """
    operation: Operation
    outputs: Tuple[BoundOperand, ...] = ()
    inputs: Tuple[BoundOperand, ...] = ()
    immediate: Immediate = None
    offset: Optional[int] = None
    value_id: Optional[int] = None

    def __str__(self):
        outs = ", ".join(f"v{o.register}:{int(o.size)}" for o in self.outputs)
        ins = [f"v{i.register}:{int(i.size)}" for i in self.inputs]
        if self.immediate is not None:
            ins.insert(0, _format_immediate(self.immediate))
        if self.offset is not None:
            ins.append(f"[sp+{self.offset}]")
        text = f"{self.operation.value} {', '.join(ins)}".rstrip()
        if self.value_id is not None:
            text += f"  ; %{self.value_id}"
        return f"{outs} = {text}" if outs else text
