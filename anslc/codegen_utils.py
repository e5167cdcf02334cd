"""Helpers shared by the validator and the lowering pass."""

from . import ast


def evaluate_const_expr(expr, constants):
    """Try to evaluate an expression at compile time using available constants.
    Returns (success, value) where success=True if evaluation succeeded.

    Args:
        expr: Expression to evaluate
        constants: Dictionary of constant name -> value mappings
    """
    if isinstance(expr, int):
        return (True, expr)
    elif isinstance(expr, ast.Number):
        return (True, expr.value)
    elif isinstance(expr, ast.VarRef):
        if expr.name in constants:
            return (True, constants[expr.name])
        return (False, None)
    elif isinstance(expr, ast.BinOp):
        left_ok, left_val = evaluate_const_expr(expr.left, constants)
        right_ok, right_val = evaluate_const_expr(expr.right, constants)
        if not (left_ok and right_ok):
            return (False, None)

        if expr.op == '+':
            return (True, left_val + right_val)
        elif expr.op == '-':
            return (True, left_val - right_val)
        elif expr.op == '*':
            return (True, left_val * right_val)
        elif expr.op == '/':
            if right_val != 0:
                return (True, left_val // right_val)
            return (False, None)
        elif expr.op == '%':
            if right_val != 0:
                return (True, left_val % right_val)
            return (False, None)
        elif expr.op == '&':
            return (True, left_val & right_val)
        elif expr.op == '|':
            return (True, left_val | right_val)
        elif expr.op == '^':
            return (True, left_val ^ right_val)
        return (False, None)
    elif isinstance(expr, ast.UnaryOp):
        ok, val = evaluate_const_expr(expr.operand, constants)
        if ok and expr.op == '!':
            return (True, ~val)
        return (False, None)
    return (False, None)


def truncate(value, typename):
    """Wrap a folded value to the width of `typename` (two's complement)."""
    bits = ast.type_size(typename) * 8
    return value & ((1 << bits) - 1)


def expr_to_comment(expr):
    """Best-effort source text for an expression, used in IR dumps."""
    if isinstance(expr, ast.Number):
        return str(expr.value)
    if isinstance(expr, ast.VarRef):
        return expr.name
    if isinstance(expr, ast.BinOp):
        return f"({expr_to_comment(expr.left)} {expr.op} {expr_to_comment(expr.right)})"
    if isinstance(expr, ast.UnaryOp):
        return f"{expr.op}{expr_to_comment(expr.operand)}"
    if isinstance(expr, ast.Call):
        return f"{expr.name}({', '.join(expr_to_comment(a) for a in expr.args)})"
    return "<expr>"
