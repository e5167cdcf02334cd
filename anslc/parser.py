from lark import Lark, Transformer
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from . import ast
from .errors import CompileError


GRAMMAR = r"""
start: item*
?item: function_def | const_decl | static_decl

const_decl: "const" CNAME ":" type "=" expr ";"
static_decl: "static" CNAME ":" type ["=" expr] ";"

function_def: "fn" CNAME "(" [params] ")" ["->" type] "{" stmt* "}"
params: param ("," param)*
param: CNAME ":" type

!type: "u8" | "u16" | "u32" | "u64" | "i8" | "i16" | "i32" | "i64" | "f32"

?stmt: let_stmt | assign_stmt | return_stmt | expr_stmt
let_stmt: "let" CNAME ":" type ["=" expr] ";"
assign_stmt: CNAME "=" expr ";"
return_stmt: "return" [expr] ";"
expr_stmt: expr ";"

?expr: expr "|" bitwise_xor -> bitor
    | bitwise_xor
?bitwise_xor: bitwise_xor "^" bitwise_and -> bitxor
    | bitwise_and
?bitwise_and: bitwise_and "&" arith -> bitand
    | arith
?arith: arith "+" term   -> add
    | arith "-" term   -> sub
    | term
?term: term "*" factor -> mul
    | term "/" factor -> div
    | term "%" factor -> mod
    | factor
?factor: "!" factor    -> lnot
      | atom
?atom: NUMBER        -> number
     | CNAME "(" [arglist] ")" -> call
     | CNAME          -> var
     | "(" expr ")"
arglist: expr ("," expr)*

// Decimal, hex (0x) and binary (0b)
NUMBER: /0x[0-9a-fA-F]+/ | /0b[01]+/ | /[0-9]+/

%import common.CNAME

%ignore /[ \t\r\n]+/
COMMENT: /\/\/[^\n]*/
%ignore COMMENT
"""

# Anonymous terminals lark generates for the root-level keywords
ROOT_KEYWORDS = {'FN', 'CONST', 'STATIC', '$END'}

_parser = None


def _get_parser():
    global _parser
    if _parser is None:
        _parser = Lark(GRAMMAR, parser="lalr", propagate_positions=True)
    return _parser


class ASTBuilder(Transformer):
    def _val(self, item):
        # Token objects have .value; strings are already str
        try:
            return item.value
        except AttributeError:
            return str(item)

    def _parse_number(self, num_str):
        """Parse number string supporting decimal, hex (0x) and binary (0b) formats."""
        num_str = str(num_str).strip()
        if num_str.startswith(('0x', '0X')):
            return int(num_str, 16)
        elif num_str.startswith(('0b', '0B')):
            return int(num_str[2:], 2)
        return int(num_str)

    def start(self, items):
        return ast.Module(items=list(items))

    def const_decl(self, items):
        """const_decl: "const" CNAME ":" type "=" expr ";" """
        return ast.ConstDecl(name=self._val(items[0]), vtype=items[1], expr=items[2])

    def static_decl(self, items):
        """static_decl: "static" CNAME ":" type ["=" expr] ";" """
        return ast.StaticDecl(name=self._val(items[0]), vtype=items[1], expr=items[2])

    def function_def(self, items):
        # items: CNAME, params or None, return type or None, statements...
        name = self._val(items[0])
        params = items[1] if items[1] is not None else []
        rettype = items[2]
        body = [it for it in items[3:] if it is not None]
        return ast.FunctionDef(name=name, params=params, rettype=rettype, body=body)

    def params(self, items):
        return list(items)

    def param(self, items):
        return ast.Param(name=self._val(items[0]), ptype=items[1])

    def type(self, items):
        return self._val(items[0])

    def let_stmt(self, items):
        return ast.LetStmt(name=self._val(items[0]), vtype=items[1], init_expr=items[2])

    def assign_stmt(self, items):
        return ast.Assign(target=self._val(items[0]), expr=items[1])

    def return_stmt(self, items):
        return ast.Return(expr=items[0])

    def expr_stmt(self, items):
        return ast.ExprStmt(expr=items[0])

    def _binop(op):
        def build(self, items):
            return ast.BinOp(op=op, left=items[0], right=items[1])
        return build

    bitor = _binop('|')
    bitxor = _binop('^')
    bitand = _binop('&')
    add = _binop('+')
    sub = _binop('-')
    mul = _binop('*')
    div = _binop('/')
    mod = _binop('%')

    del _binop

    def lnot(self, items):
        return ast.UnaryOp(op='!', operand=items[0])

    def number(self, items):
        return ast.Number(value=self._parse_number(self._val(items[0])))

    def var(self, items):
        return ast.VarRef(name=self._val(items[0]))

    def call(self, items):
        args = items[1] if items[1] is not None else []
        return ast.Call(name=self._val(items[0]), args=args)

    def arglist(self, items):
        return list(items)


def tokenize(text: str):
    """Return the lexer's token stream for `text` (debug output)."""
    return list(_get_parser().lex(text))


def _position(e, attr):
    # lark reports -1 or "?" when it has no position
    value = getattr(e, attr, None)
    return value if isinstance(value, int) and value > 0 else 1


def _syntax_error(e: UnexpectedInput, origin):
    line = _position(e, "line")
    column = _position(e, "column")
    length = 1
    if isinstance(e, UnexpectedToken):
        token = e.token
        length = len(str(token))
        if e.expected and set(e.expected) <= ROOT_KEYWORDS:
            message = f"statement `{token}` not allowed in root namespace"
        elif token.type == '$END':
            message = "unexpected end of input"
        else:
            expected = ", ".join(sorted(e.expected)) if e.expected else "nothing"
            message = f"unexpected token `{token}`, expected one of: {expected}"
    elif isinstance(e, UnexpectedCharacters):
        message = f"unexpected character `{e.char}`"
    elif isinstance(e, UnexpectedEOF):
        message = "unexpected end of input"
    else:
        message = str(e)
    meta = origin(line, column) if origin is not None else None
    return CompileError(message, meta, length)


def parse(text: str, origin=None) -> ast.Module:
    """Parse preprocessed ANSL text into an ast.Module.

    `origin(line, column)` maps positions in `text` back to source metadata
    (see PreprocessedSource.origin); syntax errors are raised as CompileError.
    """
    try:
        tree = _get_parser().parse(text)
    except UnexpectedInput as e:
        raise _syntax_error(e, origin) from e
    return ASTBuilder().transform(tree)
