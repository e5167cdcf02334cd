import pytest

from anslc import ast
from anslc.errors import CompileError
from anslc.parser import parse, tokenize
from anslc.preprocessor import Preprocessor
from anslc.source import Source


def test_function_with_params_and_return():
    mod = parse("""
    fn add(a: u32, b: u32) -> u32 {
        let c: u32 = a + b;
        return c;
    }
    """)
    fn = mod.items[0]
    assert isinstance(fn, ast.FunctionDef)
    assert fn.name == "add"
    assert fn.params == [ast.Param("a", "u32"), ast.Param("b", "u32")]
    assert fn.rettype == "u32"
    assert fn.body == [
        ast.LetStmt("c", "u32", ast.BinOp("+", ast.VarRef("a"), ast.VarRef("b"))),
        ast.Return(ast.VarRef("c")),
    ]


def test_function_without_params_or_return_type():
    fn = parse("fn tick() { return; }").items[0]
    assert fn.params == []
    assert fn.rettype is None
    assert fn.body == [ast.Return(None)]


def test_globals():
    mod = parse("""
    const LIMIT: u16 = 0x100;
    static counter: u32;
    static mask: u8 = 0b1010;
    """)
    assert mod.items == [
        ast.ConstDecl("LIMIT", "u16", ast.Number(256)),
        ast.StaticDecl("counter", "u32", None),
        ast.StaticDecl("mask", "u8", ast.Number(10)),
    ]


def test_arithmetic_precedence():
    stmt = parse("fn f() { x = 1 + 2 * 3 - 4 % 5; }").items[0].body[0]
    assert stmt == ast.Assign(
        "x",
        ast.BinOp(
            "-",
            ast.BinOp("+", ast.Number(1), ast.BinOp("*", ast.Number(2), ast.Number(3))),
            ast.BinOp("%", ast.Number(4), ast.Number(5)),
        ),
    )


def test_bitwise_precedence():
    expr = parse("fn f() { x = a | b ^ c & d + 1; }").items[0].body[0].expr
    assert expr.op == "|"
    assert expr.right.op == "^"
    assert expr.right.right.op == "&"
    assert expr.right.right.right.op == "+"


def test_parentheses_and_unary_not():
    expr = parse("fn f() { x = !(a + 1) * 2; }").items[0].body[0].expr
    assert expr == ast.BinOp(
        "*",
        ast.UnaryOp("!", ast.BinOp("+", ast.VarRef("a"), ast.Number(1))),
        ast.Number(2),
    )


def test_calls():
    body = parse("fn f() { g(); h(1, y); }").items[0].body
    assert body == [
        ast.ExprStmt(ast.Call("g", [])),
        ast.ExprStmt(ast.Call("h", [ast.Number(1), ast.VarRef("y")])),
    ]


def test_comments_are_ignored():
    mod = parse("// header\nconst A: u8 = 1; // trailing\n")
    assert mod.items == [ast.ConstDecl("A", "u8", ast.Number(1))]


def test_tokenize():
    tokens = tokenize("const A: u8 = 0x2a;")
    assert [t.value for t in tokens] == ["const", "A", ":", "u8", "=", "0x2a", ";"]
    assert tokens[1].type == "CNAME"


def test_statement_in_root_namespace():
    with pytest.raises(CompileError) as exc:
        parse("let x: u8 = 1;")
    assert exc.value.message == "statement `let` not allowed in root namespace"
    assert exc.value.lexeme_len == 3


def test_unexpected_token_lists_expected():
    with pytest.raises(CompileError) as exc:
        parse("fn f( { }")
    assert exc.value.message.startswith("unexpected token `{`, expected one of:")


def test_unexpected_end_of_input():
    with pytest.raises(CompileError, match="unexpected end of input"):
        parse("fn f() {")


def test_unexpected_character():
    with pytest.raises(CompileError, match="unexpected character `@`"):
        parse("fn f() { x = @; }")


def test_error_position_maps_back_to_include(tmp_path):
    (tmp_path / "bad.ansl").write_text("const A: u8 = 1;\nconst B u8 = 2;\n", encoding="utf-8")
    main = tmp_path / "main.ansl"
    main.write_text("#include module bad;\nfn main() {\n}\n", encoding="utf-8")
    source = Source()
    pre = Preprocessor(source).process_file(str(main))
    with pytest.raises(CompileError) as exc:
        parse(pre.text, origin=pre.origin)
    meta = exc.value.metadata
    assert source.symbols.resolve(meta.file).endswith("bad.ansl")
    assert (meta.line_number, meta.column) == (2, 9)
    rendered = exc.value.format(source)
    assert "\t\tconst B u8 = 2;\n\t\t        ^~" in rendered
