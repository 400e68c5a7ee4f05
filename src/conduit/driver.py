"""
Drivers run compiled statements against a connection descriptor.

A descriptor is whatever a connection provider returns. The default driver accepts a
SQLAlchemy ``Engine``, a SQLAlchemy ``Connection`` (used as-is and never closed), or a
database URL, for which it creates and caches an ``Engine``.
"""

import logging
import re
import threading
from contextlib import contextmanager
from typing import Any, Callable, Hashable, Iterator, Sequence

import sqlalchemy as sa
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection, CursorResult, Engine

from .compiler import CompiledStatement
from .dispatch import DEFAULT, dispatch_value
from .errors import ExecutionError, ResourceError

_log = logging.getLogger(__name__)

Row = dict[str, Any]

_RETURNING_CLAUSE = re.compile(r"\bRETURNING\b", re.IGNORECASE)


class Driver:
    """
    Interface between the execution pipeline and a database client library.

    Register a subclass with ``register_driver`` to change how statements are run for
    some or all models.
    """

    def transaction(self, descriptor: Any):
        """
        Return a context manager that opens a connection for ``descriptor``, begins a
        transaction and yields the connection. It commits when the block exits
        normally and rolls back when an exception escapes it.
        """
        raise NotImplementedError

    def query(self, descriptor: Any, statement: CompiledStatement, **options: Any) -> list[Row]:
        raise NotImplementedError

    def reducible_query(
        self, descriptor: Any, statement: CompiledStatement, **options: Any
    ) -> Iterator[Row]:
        raise NotImplementedError

    def execute(
        self, descriptor: Any, statement: CompiledStatement, **options: Any
    ) -> int | list[int]:
        raise NotImplementedError

    def insert(
        self, descriptor: Any, statement: CompiledStatement, primary_key: Sequence[str]
    ) -> list[Row] | None:
        raise NotImplementedError


class SQLAlchemyDriver(Driver):
    """Run statements with SQLAlchemy's ``exec_driver_sql``."""

    def __init__(self) -> None:
        self._engines: dict[str, Engine] = {}
        self._lock = threading.Lock()

    def engine_for(self, url: str | sa.URL) -> Engine:
        """Return the cached Engine for ``url``, creating it on first use."""
        key = str(url)
        with self._lock:
            engine = self._engines.get(key)
            if engine is None:
                engine = sa.create_engine(url)
                self._engines[key] = engine
                _log.info(f"Created engine for {engine.url!r}")
            return engine

    def dispose(self) -> None:
        """Dispose every Engine this driver created from a URL."""
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.dispose()

    @contextmanager
    def connect(self, descriptor: Any, *, begin: bool = False) -> Iterator[Connection]:
        """
        Yield a live connection for ``descriptor``.

        With ``begin=True`` a connection taken from an Engine runs in its own
        transaction, committed when the block exits normally. A ``Connection``
        descriptor belongs to the caller (usually an enclosing ``transaction()``)
        and is yielded untouched.
        """
        if isinstance(descriptor, Connection):
            yield descriptor
            return

        if isinstance(descriptor, (str, sa.URL)):
            descriptor = self.engine_for(descriptor)
        if not isinstance(descriptor, Engine):
            raise TypeError(
                f"SQLAlchemyDriver cannot connect with {type(descriptor).__name__}; "
                f"expected an Engine, a Connection or a database URL"
            )

        if begin:
            with descriptor.begin() as conn:
                yield conn
        else:
            with descriptor.connect() as conn:
                yield conn

    @contextmanager
    def transaction(self, descriptor: Any) -> Iterator[Connection]:
        with self.connect(descriptor) as conn:
            tx = conn.begin()
            _log.debug("Transaction started")
            try:
                yield conn
            except BaseException:
                tx.rollback()
                _log.debug("Transaction rolled back")
                raise
            tx.commit()
            _log.debug("Transaction committed")

    def query(
        self,
        descriptor: Any,
        statement: CompiledStatement,
        *,
        row_fn: Callable[[Row], Any] | None = None,
        result_set_fn: Callable[[list], Any] | None = None,
    ) -> Any:
        with self.connect(descriptor) as conn:
            result = self._run(conn, statement)
            rows = [dict(row) for row in result.mappings()]
        if row_fn is not None:
            rows = [row_fn(row) for row in rows]
        if result_set_fn is not None:
            return result_set_fn(rows)
        return rows

    def reducible_query(
        self,
        descriptor: Any,
        statement: CompiledStatement,
        *,
        row_fn: Callable[[Row], Any] | None = None,
        fetch_size: int | None = None,
    ) -> Iterator[Any]:
        with self.connect(descriptor) as conn:
            execution_options = {"yield_per": fetch_size} if fetch_size else None
            result = self._run(conn, statement, execution_options)
            try:
                for row in result.mappings():
                    row = dict(row)
                    yield row_fn(row) if row_fn is not None else row
            finally:
                result.close()

    def execute(
        self, descriptor: Any, statement: CompiledStatement, *, multi: bool = False
    ) -> int | list[int]:
        with self.connect(descriptor, begin=True) as conn:
            if not multi:
                return self._run(conn, statement).rowcount
            return [
                self._run(conn, CompiledStatement(statement.sql, params)).rowcount
                for params in statement.params
            ]

    def insert(
        self, descriptor: Any, statement: CompiledStatement, primary_key: Sequence[str]
    ) -> list[Row] | None:
        with self.connect(descriptor, begin=True) as conn:
            sql = statement.sql
            if conn.dialect.insert_returning and not _RETURNING_CLAUSE.search(sql):
                quote = conn.dialect.identifier_preparer.quote
                columns = ", ".join(quote(col) for col in primary_key)
                sql = f"{sql.rstrip().rstrip(';').rstrip()} RETURNING {columns}"

            result = self._run(conn, CompiledStatement(sql, statement.params))
            try:
                keys = self._generated_keys(result, primary_key)
            except BaseException:
                self._close_quietly(result)
                raise
            self._close(result)
            return keys

    @staticmethod
    def _generated_keys(result: CursorResult, primary_key: Sequence[str]) -> list[Row] | None:
        if result.returns_rows:
            keys = [dict(row) for row in result.mappings()]
            return keys or None
        if result.rowcount <= 0:
            return None
        if len(primary_key) == 1 and result.lastrowid is not None:
            return [{primary_key[0]: result.lastrowid}]
        raise ExecutionError(
            f"The database does not report generated values for key {tuple(primary_key)}; "
            f"add a RETURNING clause to the statement"
        )

    @staticmethod
    def _run(
        conn: Connection,
        statement: CompiledStatement,
        execution_options: dict | None = None,
    ) -> CursorResult:
        try:
            return conn.exec_driver_sql(
                statement.sql, statement.params or None, execution_options
            )
        except sa_exc.DBAPIError as e:
            raise ExecutionError(str(e.orig), orig=e.orig) from e
        except sa_exc.ArgumentError as e:
            raise ExecutionError(f"Invalid parameters for {statement.sql!r}: {e}") from e

    @staticmethod
    def _close(result: CursorResult) -> None:
        try:
            result.close()
        except Exception as e:
            raise ResourceError(f"Failed to close insert result: {e}") from e

    @staticmethod
    def _close_quietly(result: CursorResult) -> None:
        try:
            result.close()
        except Exception as e:
            _log.warning(f"Failed to close insert result after an earlier error: {e}")


_default_driver = SQLAlchemyDriver()
_DRIVER_REGISTRY: dict[Hashable, Driver] = {}


def register_driver(key: Hashable, driver: Driver) -> None:
    """Use ``driver`` for models whose dispatch key is ``key`` (``"default"`` for all)."""
    _DRIVER_REGISTRY[key] = driver


def get_driver(model: Any = None) -> Driver:
    key = dispatch_value(model)
    return _DRIVER_REGISTRY.get(key) or _DRIVER_REGISTRY.get(DEFAULT) or _default_driver


def default_driver() -> SQLAlchemyDriver:
    return _default_driver


def reset_drivers() -> None:
    _DRIVER_REGISTRY.clear()
