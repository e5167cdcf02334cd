"""Preprocessor: splices `#include` directives and remembers where each line came from.

Directive syntax:

    #include system io;            ->  <system root>/io.ansl
    #include module helpers;       ->  helpers.ansl next to the including file
    #include absolute "lib/x.ansl"; ->  the literal path
"""
import os
import re
from dataclasses import dataclass, field
from typing import List

from .constants import SOURCE_FILE_EXTENSION, SYSTEM_LIB_ROOT
from .diagnostics import NullDiagnostics
from .errors import CompileError
from .source import MetadataReference, Source


DIRECTIVE = re.compile(r"^\s*#\s*(?P<name>\w*)(?P<args>[^;]*);?\s*(//.*)?$")
INCLUDE_ARGS = re.compile(r"^\s*(?P<location>\w+)\s+(?:\"(?P<quoted>[^\"]*)\"|(?P<bare>[\w./-]+))\s*$")


@dataclass
class PreprocessedSource:
    """Expanded program text plus the origin of every line."""
    text: str
    origins: List[MetadataReference] = field(default_factory=list)

    def origin(self, line: int, column: int = 1) -> MetadataReference:
        """Map a 1-based line/column of `text` back to the file it came from."""
        if not self.origins:
            return MetadataReference(0, line, column)
        idx = min(max(line, 1), len(self.origins)) - 1
        base = self.origins[idx]
        return MetadataReference(base.file, base.line_number, column)


class Preprocessor:
    def __init__(self, source: Source, system_root=SYSTEM_LIB_ROOT, diagnostics=None):
        self.source = source
        self.system_root = system_root
        self.diagnostics = diagnostics if diagnostics is not None else NullDiagnostics()

    def process_file(self, path: str) -> PreprocessedSource:
        self.diagnostics.very_verbose(f"entry file : <{path}>")
        src = self.source.open_file(path)
        return self._run(src, os.path.dirname(os.path.abspath(path)), path)

    def process_text(self, text: str, name: str = "<input>", base_dir=None) -> PreprocessedSource:
        src = self.source.add_text(name, text)
        return self._run(src, base_dir or os.getcwd(), name)

    def _run(self, src, base_dir, key):
        lines = []
        origins = []
        self._expand(src, base_dir, (os.path.abspath(key),), lines, origins)
        return PreprocessedSource(text="\n".join(lines) + "\n", origins=origins)

    def _expand(self, src, base_dir, chain, lines, origins):
        for n, line in enumerate(src.lines, 1):
            m = DIRECTIVE.match(line)
            if not m:
                lines.append(line)
                origins.append(MetadataReference(src.handle, n, 1))
                continue

            meta = MetadataReference(src.handle, n, line.index('#') + 1)
            name = m.group('name')
            if name != 'include':
                raise CompileError(f"unknown preprocessor directive `#{name}`", meta, len(name) + 1)

            path = self._resolve_include(m.group('args'), base_dir, meta)
            key = os.path.abspath(path)
            if key in chain:
                raise CompileError(f"#include cycle detected for {path}", meta)
            self.diagnostics.verbose(f"including file {path}")
            try:
                included = self.source.open_file(path)
            except CompileError as e:
                raise e.attach_metadata(meta)
            self._expand(included, os.path.dirname(os.path.abspath(path)), chain + (key,), lines, origins)

    def _resolve_include(self, args, base_dir, meta):
        m = INCLUDE_ARGS.match(args)
        if not m:
            raise CompileError("malformed #include, expected `#include <system|module|absolute> <target>;`", meta)
        location = m.group('location')
        target = m.group('quoted') if m.group('quoted') is not None else m.group('bare')
        if location == 'system':
            return os.path.join(self.system_root, target + SOURCE_FILE_EXTENSION)
        elif location == 'module':
            return os.path.join(base_dir, target + SOURCE_FILE_EXTENSION)
        elif location == 'absolute':
            return target
        raise CompileError(f"include subword `{location}` not recognized", meta, len(location))
