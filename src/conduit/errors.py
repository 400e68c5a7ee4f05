"""Exception types raised by Conduit."""


class ConduitError(Exception):
    """Base class for all Conduit errors."""


class ConfigurationError(ConduitError):
    """No connection provider could be resolved for a dispatch key."""

    def __init__(self, key, message: str | None = None):
        self.key = key
        super().__init__(
            message
            or (
                f"Don't know how to get a DB connection for {key!r}: no provider is "
                f"registered for it and no 'default' provider is registered. Call "
                f"conduit.connect(url) or conduit.register_spec('default', ...) first."
            )
        )


class CompilationError(ConduitError):
    """The compiler rejected a structured query."""


class ExecutionError(ConduitError):
    """The database reported a failure executing a statement."""

    def __init__(self, message: str, orig: BaseException | None = None):
        super().__init__(message)
        self.orig = orig


class ResourceError(ConduitError):
    """A statement or result cursor could not be released."""
