"""Source file bookkeeping: interned names, positions and line lookup."""
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import CompileError


class SymbolTable:
    """Interning arena. Strings map to stable integer handles.

    One table is built per compilation and read by later stages; handles
    are never reused or invalidated.
    """

    def __init__(self):
        self._strings: List[str] = []
        self._handles: Dict[str, int] = {}

    def intern(self, text: str) -> int:
        handle = self._handles.get(text)
        if handle is None:
            handle = len(self._strings)
            self._strings.append(text)
            self._handles[text] = handle
        return handle

    def resolve(self, handle: int) -> str:
        return self._strings[handle]

    def __contains__(self, text):
        return text in self._handles

    def __len__(self):
        return len(self._strings)


@dataclass(frozen=True)
class MetadataReference:
    """Position of a lexeme: interned file handle, 1-based line and column."""
    file: int
    line_number: int = 1
    column: int = 1

    def file_name(self, symbols: Optional[SymbolTable]) -> str:
        if symbols is None:
            return f"<file {self.file}>"
        return symbols.resolve(self.file)

    def __repr__(self):
        return f"[{self.file}:{self.line_number}:{self.column}]"


class SourceFile:
    def __init__(self, handle: int, name: str, text: str):
        self.handle = handle
        self.name = name
        self.lines = text.splitlines()

    def get_line(self, line_number: int) -> Optional[str]:
        if 1 <= line_number <= len(self.lines):
            return self.lines[line_number - 1]
        return None

    def __repr__(self):
        return f"<source file :: {self.name}>"


class Source:
    """All files read during one compilation, keyed by interned path."""

    def __init__(self, symbols: Optional[SymbolTable] = None):
        self.symbols = symbols if symbols is not None else SymbolTable()
        self.files: Dict[int, SourceFile] = {}

    def open_file(self, path: str) -> SourceFile:
        handle = self.symbols.intern(path)
        if handle in self.files:
            return self.files[handle]
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise CompileError(f"could not open {path} :: {e}")
        return self.add_text(path, text)

    def add_text(self, name: str, text: str) -> SourceFile:
        """Register in-memory text (stdin, tests) under `name`."""
        handle = self.symbols.intern(name)
        src = SourceFile(handle, name, text)
        self.files[handle] = src
        return src

    def get_line(self, handle: int, line_number: int) -> Optional[str]:
        src = self.files.get(handle)
        if src is None:
            return None
        return src.get_line(line_number)
