"""Turn structured queries and literal SQL into compiled statements."""

from collections.abc import Mapping, Sequence
from typing import Any, Hashable, NamedTuple

import sqlalchemy as sa
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection, Dialect, Engine
from sqlalchemy.sql import ClauseElement

from .dispatch import DEFAULT, dispatch_value
from .errors import CompilationError


class CompiledStatement(NamedTuple):
    """SQL text plus the parameters to send with it, in the driver's paramstyle."""

    sql: str
    params: tuple | Mapping[str, Any] = ()


def as_literal(query: Any) -> CompiledStatement | None:
    """
    Return ``query`` as a CompiledStatement if it already is literal SQL.

    Literal forms are a CompiledStatement, a bare SQL string, or a sequence whose
    first item is the SQL string and whose remaining items are the parameters.
    A single mapping after the SQL is taken as named parameters.

    Examples:
        >>> as_literal(("SELECT * FROM venue WHERE id = ?", 1))
        CompiledStatement(sql='SELECT * FROM venue WHERE id = ?', params=(1,))
        >>> as_literal(sa.select(sa.table("venue"))) is None
        True
    """
    if isinstance(query, CompiledStatement):
        return query
    if isinstance(query, str):
        return CompiledStatement(query, ())
    if (
        isinstance(query, Sequence)
        and not isinstance(query, (bytes, bytearray))
        and query
        and isinstance(query[0], str)
    ):
        params = tuple(query[1:])
        if len(params) == 1 and isinstance(params[0], Mapping):
            return CompiledStatement(query[0], dict(params[0]))
        return CompiledStatement(query[0], params)
    return None


def as_batch(query: Any) -> CompiledStatement | None:
    """
    Return a literal ``(sql, group_1, group_2, ...)`` batch as a CompiledStatement.

    Each parameter group is a sequence of positional parameters or a mapping of named
    parameters, and ``params`` holds one tuple or dict per group. Returns None for
    anything that is not literal SQL.

    Raises:
        TypeError: If a parameter group is a scalar or a string.
    """
    if isinstance(query, CompiledStatement):
        return query
    if isinstance(query, str):
        return CompiledStatement(query, ())
    if not (
        isinstance(query, Sequence)
        and not isinstance(query, (bytes, bytearray))
        and query
        and isinstance(query[0], str)
    ):
        return None

    groups = []
    for group in query[1:]:
        if isinstance(group, Mapping):
            groups.append(dict(group))
        elif isinstance(group, Sequence) and not isinstance(group, (str, bytes, bytearray)):
            groups.append(tuple(group))
        else:
            raise TypeError(
                f"Batch parameter groups must be sequences or mappings, got {group!r}"
            )
    return CompiledStatement(query[0], tuple(groups))


class Compiler:
    """
    Compiles structured queries for a model.

    Subclass and register with ``register_compiler`` to support another query
    representation for some or all models.
    """

    def compile(self, model: Any, query: Any, descriptor: Any = None) -> CompiledStatement:
        """
        Args:
            model: The model the query is for, or None.
            query: The structured query.
            descriptor: The connection descriptor the statement will run on, when the
                pipeline has already resolved it.
        """
        raise NotImplementedError


class SQLAlchemyCompiler(Compiler):
    """
    Compile SQLAlchemy Core constructs (``select()``, ``insert()``, ``text()`` ...).

    The dialect is the one given to the constructor, or else the dialect of the
    connection the model resolves to, so that the SQL and parameter style match the
    database the statement will be sent to.
    """

    def __init__(self, dialect: Dialect | None = None):
        self.dialect = dialect

    def compile(self, model: Any, query: Any, descriptor: Any = None) -> CompiledStatement:
        if not isinstance(query, ClauseElement):
            raise CompilationError(
                f"Don't know how to compile {type(query).__name__} for "
                f"{dispatch_value(model)!r}: expected literal SQL or a SQLAlchemy construct"
            )

        dialect = self.dialect or self._dialect_for(model, descriptor)
        try:
            compiled = query.compile(
                dialect=dialect, compile_kwargs={"render_postcompile": True}
            )
        except (sa_exc.CompileError, sa_exc.ArgumentError) as e:
            raise CompilationError(str(e)) from e

        params = compiled.params
        if compiled.positional:
            return CompiledStatement(
                str(compiled), tuple(params[name] for name in compiled.positiontup)
            )
        return CompiledStatement(str(compiled), dict(params))

    @staticmethod
    def _dialect_for(model: Any, descriptor: Any = None) -> Dialect:
        if descriptor is None:
            from .connection import connection

            descriptor = connection(model)
        if isinstance(descriptor, (Engine, Connection)):
            return descriptor.dialect
        if isinstance(descriptor, (str, sa.URL)):
            return sa.make_url(descriptor).get_dialect()()
        raise CompilationError(
            f"Cannot infer a SQL dialect from connection {descriptor!r}; "
            f"register SQLAlchemyCompiler(dialect=...) for {dispatch_value(model)!r}"
        )


_default_compiler = SQLAlchemyCompiler()
_COMPILER_REGISTRY: dict[Hashable, Compiler] = {}


def register_compiler(key: Hashable, compiler: Compiler) -> None:
    """Use ``compiler`` for models whose dispatch key is ``key`` (``"default"`` for all)."""
    _COMPILER_REGISTRY[key] = compiler


def get_compiler(model: Any = None) -> Compiler:
    key = dispatch_value(model)
    return (
        _COMPILER_REGISTRY.get(key)
        or _COMPILER_REGISTRY.get(DEFAULT)
        or _default_compiler
    )


def reset_compilers() -> None:
    _COMPILER_REGISTRY.clear()


def maybe_compile(model: Any, query: Any, descriptor: Any = None) -> CompiledStatement:
    """Pass literal SQL through unchanged; compile anything else for ``model``."""
    literal = as_literal(query)
    if literal is not None:
        return literal
    return get_compiler(model).compile(model, query, descriptor)
