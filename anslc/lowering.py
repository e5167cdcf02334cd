"""Lowers a validated AST into value-numbered logical blocks, one per function."""
from typing import Dict, List, Tuple

from . import ast
from .codegen_utils import evaluate_const_expr, expr_to_comment, truncate
from .diagnostics import NullDiagnostics
from .errors import CompileError
from .ir import Label, LogicalBlock, Operation, SizeClass


BINOPS = {
    '+': Operation.ADD,
    '-': Operation.SUB,
    '*': Operation.MULT,
    '/': Operation.DIV,
    '%': Operation.MOD,
    '&': Operation.AND,
    '|': Operation.OR,
    '^': Operation.XOR,
}


def size_of(typename: str) -> SizeClass:
    return SizeClass.for_bytes(ast.type_size(typename))


class Lowering:
    def __init__(self, module: ast.Module, diagnostics=None):
        self.module = module
        self.diagnostics = diagnostics if diagnostics is not None else NullDiagnostics()
        self.constants: Dict[str, int] = {}
        self.const_types: Dict[str, str] = {}
        self.statics: Dict[str, str] = {}
        self.static_values: Dict[str, int] = {}
        self.functions: Dict[str, ast.FunctionDef] = {}
        self._collect_globals()

    def _collect_globals(self):
        for item in self.module.items:
            if isinstance(item, ast.ConstDecl):
                self.const_types[item.name] = item.vtype
                self.constants[item.name] = truncate(self._fold(item.expr, item.name), item.vtype)
            elif isinstance(item, ast.StaticDecl):
                self.statics[item.name] = item.vtype
                if item.expr is not None:
                    self.static_values[item.name] = truncate(self._fold(item.expr, item.name), item.vtype)
            elif isinstance(item, ast.FunctionDef):
                self.functions[item.name] = item

    def _fold(self, expr, name):
        ok, value = evaluate_const_expr(expr, self.constants)
        if not ok:
            raise CompileError(f"initializer of '{name}' is not a constant expression")
        return value

    def lower(self) -> List[LogicalBlock]:
        return [self.lower_function(fn) for fn in self.functions.values()]

    def lower_function(self, fn: ast.FunctionDef) -> LogicalBlock:
        block = LogicalBlock(name=fn.name)
        env: Dict[str, Tuple[int, SizeClass]] = {}

        for index, param in enumerate(fn.params):
            size = size_of(param.ptype)
            value = block.new_value(size)
            block.append(Operation.ARG, outputs=[value], immediate=index)
            env[param.name] = (value, size)

        for stmt in fn.body:
            if isinstance(stmt, ast.LetStmt):
                size = size_of(stmt.vtype)
                if stmt.init_expr is None:
                    value = self._literal(block, 0, size)
                else:
                    value = self._coerce(block, self._lower_expr(block, env, stmt.init_expr, size), size)
                env[stmt.name] = (value, size)
                self.diagnostics.very_very_verbose(
                    f"{fn.name}: let {stmt.name} = {expr_to_comment(stmt.init_expr)} -> %{value}"
                )
            elif isinstance(stmt, ast.Assign):
                if stmt.target in env:
                    # Single assignment: the name now refers to a fresh value
                    size = env[stmt.target][1]
                    value = self._coerce(block, self._lower_expr(block, env, stmt.expr, size), size)
                    env[stmt.target] = (value, size)
                elif stmt.target in self.statics:
                    size = size_of(self.statics[stmt.target])
                    value = self._coerce(block, self._lower_expr(block, env, stmt.expr, size), size)
                    block.append(Operation.STORE, inputs=[value], immediate=Label(stmt.target))
                else:
                    raise CompileError(f"In fn '{fn.name}': assignment to undeclared variable '{stmt.target}'")
            elif isinstance(stmt, ast.Return):
                if stmt.expr is None:
                    block.append(Operation.RET)
                else:
                    size = size_of(fn.rettype) if fn.rettype else SizeClass.BITS32
                    value = self._coerce(block, self._lower_expr(block, env, stmt.expr, size), size)
                    block.append(Operation.RET, inputs=[value])
                # Anything after return is unreachable in a straight-line body
                break
            elif isinstance(stmt, ast.ExprStmt):
                self._lower_expr(block, env, stmt.expr, SizeClass.BITS32, allow_void=True)

        self.diagnostics.verbose(
            f"lowered fn {fn.name}: {len(block.instructions)} instructions, {len(block.values)} values"
        )
        return block

    def _literal(self, block, value, size):
        wrapped = value & ((1 << size.value) - 1)
        if wrapped != value:
            self.diagnostics.warning(
                f"In fn '{block.name}': literal {value} does not fit in {size.value} bits, wrapped to {wrapped}"
            )
        out = block.new_value(size)
        block.append(Operation.LDI, outputs=[out], immediate=wrapped)
        return out

    def _coerce(self, block, value, size):
        """Return a value of `size`, inserting a mov when widths differ."""
        if block.values[value] == size:
            return value
        out = block.new_value(size)
        block.append(Operation.MOV, outputs=[out], inputs=[value])
        return out

    def _lower_expr(self, block, env, expr, size, allow_void=False):
        if isinstance(expr, ast.Number):
            return self._literal(block, expr.value, size)
        elif isinstance(expr, ast.VarRef):
            name = expr.name
            if name in env:
                return env[name][0]
            elif name in self.const_types:
                out = block.new_value(size_of(self.const_types[name]))
                block.append(Operation.LDI, outputs=[out], immediate=Label(name))
                return out
            elif name in self.statics:
                out = block.new_value(size_of(self.statics[name]))
                block.append(Operation.LOAD, outputs=[out], immediate=Label(name))
                return out
            raise CompileError(f"In fn '{block.name}': undefined variable '{name}'")
        elif isinstance(expr, ast.BinOp):
            left = self._lower_expr(block, env, expr.left, size)
            right = self._lower_expr(block, env, expr.right, size)
            out = block.new_value(size)
            block.append(BINOPS[expr.op], outputs=[out], inputs=[left, right])
            return out
        elif isinstance(expr, ast.UnaryOp):
            operand = self._lower_expr(block, env, expr.operand, size)
            out = block.new_value(size)
            block.append(Operation.NOT, outputs=[out], inputs=[operand])
            return out
        elif isinstance(expr, ast.Call):
            callee = self.functions.get(expr.name)
            if callee is None:
                raise CompileError(f"In fn '{block.name}': undefined function '{expr.name}'")
            args = []
            for arg, param in zip(expr.args, callee.params):
                psize = size_of(param.ptype)
                args.append(self._coerce(block, self._lower_expr(block, env, arg, psize), psize))
            outputs = []
            if callee.rettype is not None:
                outputs.append(block.new_value(size_of(callee.rettype)))
            elif not allow_void:
                raise CompileError(f"In fn '{block.name}': function '{expr.name}' has no return value")
            block.append(Operation.CALL, outputs=outputs, inputs=args, immediate=Label(expr.name))
            return outputs[0] if outputs else None
        raise CompileError(f"In fn '{block.name}': unsupported expression {expr!r}")
