"""nisvc-as emission: register-bound instructions and data definitions to text."""
from dataclasses import dataclass
from typing import Dict, List

from jinja2 import Environment

from . import ast, peephole
from .constants import ABSOLUTE, DECIMAL, LABEL, MAX_REGISTERS, NAME, RELATIVE
from .diagnostics import NullDiagnostics
from .errors import CompileError
from .ir import BoundInstruction, BoundOperand, Label, Operation, SizeClass


SUB_REGISTERS = {
    SizeClass.BITS8: 'b1',
    SizeClass.BITS16: 'q1',
    SizeClass.BITS32: 'l',
    SizeClass.BITS64: 'f',
}

PROGRAM_TEMPLATE = """\
; Generated by {{ name }}
{% if data %}
.data
{% for line in data %}
\t{{ line }}
{% endfor %}
{% endif %}
.program
{% for fn in functions %}
{{ fn.name }}:
{% for line in fn.lines %}
\t{{ line }}
{% endfor %}
{% endfor %}
"""


def int_literal(value: int) -> str:
    """Integer in nisvc-as decimal syntax, e.g. $d42."""
    return f"{ABSOLUTE}{DECIMAL}{value}"


def register_name(operand: BoundOperand) -> str:
    if not 0 <= operand.register < MAX_REGISTERS:
        raise CompileError(
            f"register {operand.register} has no machine register (target has r1-r{MAX_REGISTERS})"
        )
    return f"r{operand.register + 1}{SUB_REGISTERS[operand.size]}"


@dataclass
class DataLabel:
    name: str
    is_relative: bool


@dataclass
class DataDefinition:
    label: DataLabel
    keyword: str  # def, res or equ
    size: int = 0  # bytes, unused for equ
    value: int = 0

    def compile(self) -> str:
        if self.keyword == 'equ':
            return f"{self.label.name} equ {int_literal(self.value)}"
        return f"{self.label.name} {self.keyword}{self.size} {int_literal(self.value)}"


class DataSection:
    """The `.data` section plus the label table used to render references."""

    def __init__(self):
        self.definitions: List[DataDefinition] = []
        self.labels: Dict[str, DataLabel] = {}

    def add_equ(self, name, value):
        self._add(DataDefinition(DataLabel(name, False), 'equ', 0, value))

    def add_def(self, name, size, value):
        self._add(DataDefinition(DataLabel(name, True), 'def', size, value))

    def add_res(self, name, size, count=1):
        self._add(DataDefinition(DataLabel(name, True), 'res', size, count))

    def add_code_label(self, name):
        self.labels[name] = DataLabel(name, True)

    def _add(self, definition):
        self.definitions.append(definition)
        self.labels[definition.label.name] = definition.label

    def get_label(self, name) -> DataLabel:
        label = self.labels.get(name)
        if label is None:
            raise CompileError(f"referenced label [ {name} ] does not exist")
        return label

    def compile(self) -> List[str]:
        return [d.compile() for d in self.definitions]

    @classmethod
    def from_lowering(cls, lowering):
        data = cls()
        for name, value in lowering.constants.items():
            data.add_equ(name, value)
        for name, vtype in lowering.statics.items():
            if name in lowering.static_values:
                data.add_def(name, ast.type_size(vtype), lowering.static_values[name])
            else:
                data.add_res(name, ast.type_size(vtype))
        for name in lowering.functions:
            data.add_code_label(name)
        return data


class Emitter:
    def __init__(self, data: DataSection, optimize=True, diagnostics=None):
        self.data = data
        self.optimize = optimize
        self.diagnostics = diagnostics if diagnostics is not None else NullDiagnostics()
        self._renderers = {
            Operation.LDI: self._out_imm,
            Operation.MOV: self._out_in,
            Operation.LOAD: self._out_imm,
            Operation.STORE: self._store,
            Operation.ADD: self._out_in,
            Operation.SUB: self._out_in,
            Operation.MULT: self._out_in,
            Operation.DIV: self._out_in,
            Operation.MOD: self._out_in,
            Operation.AND: self._out_in,
            Operation.OR: self._out_in,
            Operation.XOR: self._out_in,
            Operation.NOT: self._out_in,
            Operation.ARG: self._out_imm,
            Operation.CALL: self._call,
            Operation.RET: self._out_in,
            Operation.SPILL: self._out_in,
            Operation.RELOAD: self._reload,
        }

    MNEMONICS = {
        Operation.SPILL: 'push',
        Operation.RELOAD: 'pull',
    }

    def label(self, label: Label) -> str:
        info = self.data.get_label(label.name)
        prefix = RELATIVE if info.is_relative else ABSOLUTE
        return f"{prefix}{LABEL}{info.name}"

    def immediate(self, imm) -> str:
        if isinstance(imm, Label):
            return self.label(imm)
        return int_literal(imm)

    # Operand layouts; destination first

    def _out_in(self, instr):
        return [register_name(o) for o in instr.outputs] + [register_name(i) for i in instr.inputs]

    def _out_imm(self, instr):
        return [register_name(o) for o in instr.outputs] + [self.immediate(instr.immediate)]

    def _store(self, instr):
        return [self.immediate(instr.immediate)] + [register_name(i) for i in instr.inputs]

    def _call(self, instr):
        outs = [register_name(o) for o in instr.outputs]
        return outs + [self.immediate(instr.immediate)] + [register_name(i) for i in instr.inputs]

    def _reload(self, instr):
        return [register_name(o) for o in instr.outputs] + [int_literal(instr.offset)]

    def compile_instruction(self, instr: BoundInstruction) -> str:
        renderer = self._renderers.get(instr.operation)
        if renderer is None:
            raise CompileError(f"no assembly form for operation {instr.operation.name}")
        mnemonic = self.MNEMONICS.get(instr.operation, instr.operation.value)
        operands = renderer(instr)
        line = f"{mnemonic} {','.join(operands)}" if operands else mnemonic
        if instr.value_id is not None:
            line += f"  ; {instr.operation.value} %{instr.value_id}"
        return line

    def emit_function(self, resolution) -> List[str]:
        lines = [self.compile_instruction(instr) for instr in resolution.instructions]
        if self.optimize:
            before = len(lines)
            lines = peephole.peephole_optimize(lines)
            self.diagnostics.very_verbose(
                f"peephole removed {before - len(lines)} line(s) from {resolution.name}"
            )
        return lines

    def render(self, resolutions) -> str:
        functions = [{'name': r.name, 'lines': self.emit_function(r)} for r in resolutions]
        env = Environment(trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True)
        template = env.from_string(PROGRAM_TEMPLATE)
        return template.render(name=NAME, data=self.data.compile(), functions=functions)
