from anslc.source import MetadataReference, Source, SymbolTable


def test_interning_returns_stable_handles():
    symbols = SymbolTable()
    a = symbols.intern("a.ansl")
    b = symbols.intern("b.ansl")
    assert symbols.intern("a.ansl") == a
    assert a != b
    assert symbols.resolve(b) == "b.ansl"
    assert "a.ansl" in symbols
    assert len(symbols) == 2


def test_source_lines(tmp_path):
    path = tmp_path / "x.ansl"
    path.write_text("first\nsecond\n", encoding="utf-8")
    source = Source()
    src = source.open_file(str(path))
    assert source.open_file(str(path)) is src
    assert source.get_line(src.handle, 2) == "second"
    assert source.get_line(src.handle, 3) is None
    assert source.get_line(99, 1) is None


def test_metadata_file_name():
    source = Source()
    src = source.add_text("<stdin>", "")
    meta = MetadataReference(src.handle, 4, 2)
    assert meta.file_name(source.symbols) == "<stdin>"
    assert meta.file_name(None) == f"<file {src.handle}>"
    assert repr(meta) == f"[{src.handle}:4:2]"
