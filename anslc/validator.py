"""Semantic validation for ANSL modules."""
from . import ast
from .codegen_utils import evaluate_const_expr


class ValidationError(Exception):
    """Exception raised for validation errors."""
    pass


class Validator:
    """Validates AST for semantic correctness.

    Errors are collected across the whole module and raised together;
    warnings are returned from validate().
    """

    def __init__(self, module):
        self.module = module
        self.errors = []
        self.warnings = []
        self.constants = {}  # name -> folded value
        self.const_types = {}  # name -> type
        self.statics = {}  # name -> type
        self.functions = {}  # name -> FunctionDef

    def validate(self):
        """Run all validation checks on the module."""
        # First pass: collect top-level names in declaration order
        for item in self.module.items:
            if self._is_declared(item.name):
                self.errors.append(f"'{item.name}' already declared at root namespace")
                continue
            if isinstance(item, ast.ConstDecl):
                self.const_types[item.name] = item.vtype
                ok, value = evaluate_const_expr(item.expr, self.constants)
                if ok:
                    self.constants[item.name] = value
                else:
                    self.errors.append(f"Constant '{item.name}' initializer is not a constant expression")
            elif isinstance(item, ast.StaticDecl):
                self.statics[item.name] = item.vtype
                if item.expr is not None:
                    ok, _ = evaluate_const_expr(item.expr, self.constants)
                    if not ok:
                        self.errors.append(f"Static '{item.name}' initializer is not a constant expression")
            elif isinstance(item, ast.FunctionDef):
                self.functions[item.name] = item

        # Second pass: validate function bodies
        for fn in self.functions.values():
            self._validate_function(fn)

        if self.errors:
            error_msg = "\n".join(self.errors)
            raise ValidationError(f"Validation failed:\n{error_msg}")

        return self.warnings

    def _is_declared(self, name):
        return name in self.const_types or name in self.statics or name in self.functions

    def _validate_function(self, fn):
        locals_ = {}  # name -> type, params included
        used = set()
        for param in fn.params:
            if param.name in locals_:
                self.errors.append(f"In fn '{fn.name}': Duplicate parameter '{param.name}'")
            locals_[param.name] = param.ptype

        returned = False
        for stmt in fn.body:
            if returned:
                self.warnings.append(f"In fn '{fn.name}': Unreachable statement after return")
                break
            if isinstance(stmt, ast.LetStmt):
                if stmt.init_expr is not None:
                    self._validate_expr(stmt.init_expr, locals_, used, fn)
                if stmt.name in locals_:
                    self.errors.append(f"In fn '{fn.name}': Variable '{stmt.name}' already declared")
                elif self._is_declared(stmt.name):
                    self.warnings.append(f"In fn '{fn.name}': Local '{stmt.name}' shadows a global")
                locals_[stmt.name] = stmt.vtype
            elif isinstance(stmt, ast.Assign):
                self._validate_expr(stmt.expr, locals_, used, fn)
                target = stmt.target
                if target in locals_ or target in self.statics:
                    pass
                elif target in self.const_types:
                    self.errors.append(f"In fn '{fn.name}': Cannot assign to constant '{target}'")
                elif target in self.functions:
                    self.errors.append(f"In fn '{fn.name}': Cannot assign to function '{target}'")
                else:
                    self.errors.append(f"In fn '{fn.name}': Assignment to undeclared variable '{target}'")
            elif isinstance(stmt, ast.Return):
                returned = True
                if stmt.expr is not None:
                    self._validate_expr(stmt.expr, locals_, used, fn)
                    if fn.rettype is None:
                        self.errors.append(f"In fn '{fn.name}': Returns a value but declares no return type")
                elif fn.rettype is not None:
                    self.errors.append(f"In fn '{fn.name}': Must return a value of type {fn.rettype}")
            elif isinstance(stmt, ast.ExprStmt):
                self._validate_expr(stmt.expr, locals_, used, fn, allow_void=True)

        if fn.rettype is not None and not returned:
            self.warnings.append(f"In fn '{fn.name}': No return statement, result is undefined")

        for param in fn.params:
            if param.name not in used:
                self.warnings.append(f"In fn '{fn.name}': Unused parameter '{param.name}'")
        param_names = {p.name for p in fn.params}
        for stmt in fn.body:
            if isinstance(stmt, ast.LetStmt) and stmt.name not in param_names and stmt.name not in used:
                self.warnings.append(f"In fn '{fn.name}': Unused variable '{stmt.name}'")

    def _validate_expr(self, expr, locals_, used, fn, allow_void=False):
        if isinstance(expr, ast.Number):
            return
        elif isinstance(expr, ast.VarRef):
            used.add(expr.name)
            if expr.name in locals_ or expr.name in self.const_types or expr.name in self.statics:
                return
            if expr.name in self.functions:
                self.errors.append(f"In fn '{fn.name}': Function '{expr.name}' used as a value")
            else:
                self.errors.append(f"In fn '{fn.name}': Undefined variable '{expr.name}'")
        elif isinstance(expr, ast.BinOp):
            self._validate_expr(expr.left, locals_, used, fn)
            self._validate_expr(expr.right, locals_, used, fn)
        elif isinstance(expr, ast.UnaryOp):
            self._validate_expr(expr.operand, locals_, used, fn)
        elif isinstance(expr, ast.Call):
            for arg in expr.args:
                self._validate_expr(arg, locals_, used, fn)
            callee = self.functions.get(expr.name)
            if callee is None:
                error_msg = f"In fn '{fn.name}': Undefined function '{expr.name}'"
                similar = [c for c in self.functions if c.lower().startswith(expr.name[:3].lower())]
                if similar:
                    error_msg += f". Did you mean: {', '.join(similar[:3])}?"
                self.errors.append(error_msg)
                return
            if len(callee.params) != len(expr.args):
                self.errors.append(
                    f"In fn '{fn.name}': Call to '{expr.name}' expects {len(callee.params)} argument(s), got {len(expr.args)}"
                )
            if callee.rettype is None and not allow_void:
                self.errors.append(f"In fn '{fn.name}': Function '{expr.name}' has no return value")
