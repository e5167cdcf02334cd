from dataclasses import dataclass, field
from typing import List, Optional, Any


# Primitive types and their sizes in bytes
PRIMITIVE_TYPES = {
    'u8': 1, 'u16': 2, 'u32': 4, 'u64': 8,
    'i8': 1, 'i16': 2, 'i32': 4, 'i64': 8,
    'f32': 4,
}


def type_size(typename: str) -> int:
    """Get size in bytes for a type name. Returns 4 for unknown types."""
    return PRIMITIVE_TYPES.get(typename, 4)


@dataclass
class Module:
    items: List[Any] = field(default_factory=list)


@dataclass
class ConstDecl:
    name: str
    vtype: str
    expr: Any


@dataclass
class StaticDecl:
    name: str
    vtype: str
    expr: Optional[Any] = None  # None means zero-reserved storage


@dataclass
class Param:
    name: str
    ptype: str


@dataclass
class FunctionDef:
    name: str
    params: List[Param]
    rettype: Optional[str]  # None for functions without a return value
    body: List[Any]


@dataclass
class LetStmt:
    name: str
    vtype: str
    init_expr: Optional[Any] = None


@dataclass
class Assign:
    target: str
    expr: Any


@dataclass
class Return:
    expr: Optional[Any] = None


@dataclass
class ExprStmt:
    expr: Any


@dataclass
class BinOp:
    op: str
    left: Any
    right: Any


@dataclass
class UnaryOp:
    op: str  # only '!' (bitwise complement) for now
    operand: Any


@dataclass
class Number:
    value: int


@dataclass
class VarRef:
    name: str


@dataclass
class Call:
    name: str
    args: List[Any] = field(default_factory=list)
