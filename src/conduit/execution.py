"""
Compile-then-execute pipeline shared by every statement Conduit runs.

Each operation accepts an optional model followed by the query:

    conduit.query(Venue, sa.select(Venue.__table__))
    conduit.query(("SELECT * FROM venue WHERE id = ?", 1))

The query is either literal SQL (a string, or a ``(sql, *params)`` sequence) or a
structured query compiled by the compiler registered for the model. The statement
runs on the transaction's connection when inside ``transaction()``, and on the
model's registered connection otherwise.
"""

import pprint
from typing import Any, Iterator

from .compiler import CompiledStatement, as_batch, as_literal, get_compiler
from .connection import connection, statement_lock
from .debug import debug_println, inc_call_count
from .dispatch import dispatch_value
from .driver import get_driver
from .errors import CompilationError
from .models import primary_key


def _prepare(model: Any, query: Any) -> tuple[CompiledStatement, Any]:
    """
    Compile ``query`` for ``model`` and resolve the connection it runs on.

    Structured queries are compiled against the resolved connection, so the provider
    is asked once per statement. Both forms are traced when debugging is on.
    """
    statement = as_literal(query)
    if statement is None:
        debug_println("Structured form:", pprint.pformat(query))
        conn = connection(model)
        statement = get_compiler(model).compile(model, query, conn)
    else:
        conn = connection(model)
    debug_println("SQL & Args:", pprint.pformat(tuple(statement)))
    return statement, conn


def _prepare_batch(model: Any, query: Any) -> tuple[CompiledStatement, Any]:
    statement = as_batch(query)
    if statement is None:
        raise CompilationError(
            f"multi=True needs literal SQL with parameter groups, (sql, params_1, ...); "
            f"got {type(query).__name__}"
        )
    debug_println("SQL & Args:", pprint.pformat(tuple(statement)))
    return statement, connection(model)


def _optional_model(args: tuple) -> tuple[Any, Any]:
    if len(args) == 1:
        return None, args[0]
    if len(args) == 2:
        return args
    raise TypeError(f"expected ([model,] query), got {len(args)} positional arguments")


def query(*args: Any, **options: Any) -> Any:
    """
    Compile and run a query, returning all rows.

    Args:
        *args: ``(query)`` or ``(model, query)``.
        **options: Passed to the driver. The default driver accepts ``row_fn``
            (applied to each row) and ``result_set_fn`` (applied to the row list).

    Returns:
        list[dict]: The rows, in order, as column name to value mappings.
    """
    model, q = _optional_model(args)
    statement, conn = _prepare(model, q)
    inc_call_count()
    with statement_lock():
        return get_driver(model).query(conn, statement, **options)


class ReducibleQuery:
    """
    A compiled query that runs each time it is iterated.

    Nothing is sent to the database until iteration starts, and iterating twice runs
    the statement twice. Rows are streamed rather than loaded up front.
    """

    def __init__(self, model: Any, statement: CompiledStatement, conn: Any, options: dict):
        self.model = model
        self.statement = statement
        self.connection = conn
        self.options = options
        self._lock = statement_lock()

    def __iter__(self) -> Iterator[Any]:
        with self._lock:
            yield from get_driver(self.model).reducible_query(
                self.connection, self.statement, **self.options
            )

    def __repr__(self) -> str:
        return f"ReducibleQuery({dispatch_value(self.model)!r}, {self.statement.sql!r})"


def reducible_query(*args: Any, **options: Any) -> ReducibleQuery:
    """
    Compile a query now and run it lazily, once per iteration of the result.

    The connection is resolved when this is called, so a reducible query created inside
    ``transaction()`` must be consumed before the block exits.

    Args:
        *args: ``(query)`` or ``(model, query)``.
        **options: Passed to the driver (``row_fn``, ``fetch_size``).
    """
    model, q = _optional_model(args)
    statement, conn = _prepare(model, q)
    inc_call_count()
    return ReducibleQuery(model, statement, conn, options)


def execute(*args: Any, **options: Any) -> int | list[int]:
    """
    Compile and run a statement that does not return rows.

    Outside of ``transaction()`` the statement commits on its own.

    Args:
        *args: ``(statement)`` or ``(model, statement)``.
        **options: Passed to the driver. With ``multi=True`` a literal statement
            ``(sql, params_1, params_2, ...)`` runs once per parameter group, where
            each group is a sequence or a mapping. Structured statements cannot be
            batched.

    Returns:
        The number of rows affected, or one count per parameter group with ``multi``.
    """
    model, statement = _optional_model(args)
    if options.get("multi"):
        compiled, conn = _prepare_batch(model, statement)
    else:
        compiled, conn = _prepare(model, statement)
    inc_call_count()
    with statement_lock():
        return get_driver(model).execute(conn, compiled, **options)


def insert(model: Any, statement: Any) -> list[dict[str, Any]] | None:
    """
    Run an INSERT for ``model`` and return the generated primary keys.

    Args:
        model: The model being inserted; its primary key columns are requested back.
        statement: Literal SQL or a structured INSERT.

    Returns:
        One ``{column: value}`` mapping per inserted row, or None if nothing was
        inserted.
    """
    compiled, conn = _prepare(model, statement)
    inc_call_count()
    with statement_lock():
        return get_driver(model).insert(conn, compiled, primary_key(model))


def update(model: Any, statement: Any) -> bool:
    """Run an UPDATE for ``model``; return True if at least one row changed."""
    return _affected_any(execute(model, statement))


def delete(model: Any, statement: Any) -> bool:
    """Run a DELETE for ``model``; return True if at least one row was removed."""
    return _affected_any(execute(model, statement))


def _affected_any(rows_affected: int | list[int]) -> bool:
    if isinstance(rows_affected, list):
        rows_affected = rows_affected[0] if rows_affected else 0
    return rows_affected != 0
