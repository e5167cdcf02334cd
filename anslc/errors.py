"""Error types raised by the compiler stages."""


class CompileError(Exception):
    """User-facing compilation error, optionally tied to a source position."""

    def __init__(self, message, metadata=None, lexeme_len=1):
        super().__init__(message)
        self.message = message
        self.metadata = metadata
        self.lexeme_len = max(1, lexeme_len)

    def attach_metadata(self, metadata, lexeme_len=None):
        if self.metadata is None:
            self.metadata = metadata
            if lexeme_len is not None:
                self.lexeme_len = max(1, lexeme_len)
        return self

    def format(self, source=None):
        """Render the error; with a Source, quote the offending line."""
        header = f"Error in compilation: {self.message}"
        if self.metadata is None:
            return header
        file_name = self.metadata.file_name(source.symbols) if source is not None else "<input>"
        body = f"at {self.metadata.line_number}:{self.metadata.column} in file {file_name}"
        line = source.get_line(self.metadata.file, self.metadata.line_number) if source is not None else None
        if line is not None:
            highlight = " " * (self.metadata.column - 1) + "^" + "~" * (self.lexeme_len - 1)
            body += f":\n\t\t{line}\n\t\t{highlight}"
        return f"{header}\n\t{body}"

    def __str__(self):
        return self.format()


class ResolutionError(Exception):
    """Failure while binding values to registers.

    `index` is the cursor of the failing instruction and `value_id` the
    offending value; both are filled in by the Resolver on the way out.
    `context` holds an allocation snapshot for lifecycle errors.
    """

    def __init__(self, message, value_id=None, register=None):
        super().__init__(message)
        self.message = message
        self.value_id = value_id
        self.register = register
        self.index = None
        self.context = None

    def attach(self, index=None, value_id=None, context=None):
        if self.index is None:
            self.index = index
        if self.value_id is None:
            self.value_id = value_id
        if self.context is None:
            self.context = context
        return self

    def __str__(self):
        parts = [self.message]
        if self.index is not None:
            parts.append(f"at instruction {self.index}")
        if self.value_id is not None:
            parts.append(f"(value %{self.value_id})")
        return " ".join(parts)


# Reference errors: malformed upstream IR

class ReferenceFault(ResolutionError):
    pass


class ValueNotFound(ReferenceFault):
    pass


class UseBeforeDefinition(ReferenceFault):
    pass


# Lifecycle errors: broken internal invariants

class LifecycleError(ResolutionError):
    pass


class UseAfterExpire(LifecycleError):
    pass


class IllegalTransition(LifecycleError):
    pass


class AlreadyBound(LifecycleError):
    pass


class DoubleRelease(LifecycleError):
    pass


class SpillOfFreeRegister(LifecycleError):
    pass


class ValueNotSpilled(LifecycleError):
    pass


# Capacity errors

class CapacityError(ResolutionError):
    pass


class PoolExhausted(CapacityError):
    """Internal signal: no free register. Triggers eviction, never surfaced."""


class NoEvictionCandidate(CapacityError):
    pass
