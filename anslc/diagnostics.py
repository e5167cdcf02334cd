"""Diagnostic sink handed to every compiler stage.

Replaces a process-wide verbosity flag: each compilation creates one
Diagnostics object and passes it explicitly to the stages that report.
"""
import sys

from .constants import NAME


VERBOSE = 1
VERY_VERBOSE = 2
VERY_VERY_VERBOSE = 3

_LEVEL_TAGS = {
    VERBOSE: "verbose:",
    VERY_VERBOSE: "very-verbose:",
    VERY_VERY_VERBOSE: "very-very-verbose:",
}


class Diagnostics:
    """Verbosity-filtered message sink.

    verbosity 0 prints nothing but warnings; 1-3 enable progressively
    chattier tracing. Warnings are always collected in `self.warnings`.
    """

    def __init__(self, verbosity=0, stream=None):
        self.verbosity = verbosity
        self.stream = stream if stream is not None else sys.stderr
        self.warnings = []

    def _print(self, level, msg):
        if self.verbosity >= level:
            print(f"{NAME}: {_LEVEL_TAGS[level]} {msg}", file=self.stream)

    def verbose(self, msg):
        self._print(VERBOSE, msg)

    def very_verbose(self, msg):
        self._print(VERY_VERBOSE, msg)

    def very_very_verbose(self, msg):
        self._print(VERY_VERY_VERBOSE, msg)

    def warning(self, msg):
        self.warnings.append(msg)
        print(f"{NAME}: warning: {msg}", file=self.stream)


class NullDiagnostics(Diagnostics):
    """Sink that discards everything (default for library use and tests)."""

    def __init__(self):
        super().__init__(verbosity=0)

    def _print(self, level, msg):
        pass

    def warning(self, msg):
        self.warnings.append(msg)
