"""
Conduit: per-model connection routing and transaction scoping for SQL.

Conduit sits between application code and SQLAlchemy. It decides which database a
model's queries go to, pins every query inside a ``transaction()`` block to one
connection, and runs literal SQL or SQLAlchemy constructs through one compile-then-
execute pipeline with optional statement tracing and DB call counting.
"""

import logging

from .base import ConduitField
from .compiler import (
    CompiledStatement,
    Compiler,
    SQLAlchemyCompiler,
    register_compiler,
)
from .config import ConduitSettings, configure
from .connection import (
    connect,
    connection,
    disconnect,
    do_in_transaction,
    in_transaction,
    register_spec,
    spec,
    transaction,
    unregister_spec,
    validate_configuration,
)
from .debug import (
    call_counting,
    debug,
    debug_count_calls,
    do_with_call_counting,
    set_debug_sink,
)
from .dispatch import DEFAULT, dispatch_value
from .driver import Driver, SQLAlchemyDriver, register_driver
from .errors import (
    CompilationError,
    ConduitError,
    ConfigurationError,
    ExecutionError,
    ResourceError,
)
from .execution import (
    ReducibleQuery,
    delete,
    execute,
    insert,
    query,
    reducible_query,
    update,
)
from .models import Model, clear_registry, get_model, primary_key
from .state import bind_scope

# Set up the Conduit logger
_logger = logging.getLogger("conduit")
# Only add a handler if none exists (to avoid duplicate logs)
if not _logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(name)s: %(levelname)s: %(message)s"))
    _logger.addHandler(_handler)
    _logger.setLevel(logging.INFO)
    # Prevent propagation to root logger to avoid duplicate messages
    _logger.propagate = False


__all__ = [
    "DEFAULT",
    "CompilationError",
    "CompiledStatement",
    "Compiler",
    "ConduitError",
    "ConduitField",
    "ConduitSettings",
    "ConfigurationError",
    "Driver",
    "ExecutionError",
    "Model",
    "ReducibleQuery",
    "ResourceError",
    "SQLAlchemyCompiler",
    "SQLAlchemyDriver",
    "bind_scope",
    "call_counting",
    "clear_registry",
    "configure",
    "connect",
    "connection",
    "debug",
    "debug_count_calls",
    "delete",
    "disconnect",
    "dispatch_value",
    "do_in_transaction",
    "do_with_call_counting",
    "execute",
    "get_model",
    "in_transaction",
    "insert",
    "primary_key",
    "query",
    "reducible_query",
    "register_compiler",
    "register_driver",
    "register_spec",
    "set_debug_sink",
    "spec",
    "transaction",
    "unregister_spec",
    "update",
    "validate_configuration",
]
