"""
Resolve which database connection services a model, and pin it inside transactions.

Most applications use one database for every model and only register a ``"default"``
provider, usually through ``connect``:

    conduit.connect("postgresql+psycopg://cam@localhost:5432/my_db")

Models that live in another database get their own registration:

    @conduit.register_spec("AuditEvent")
    def audit_db():
        return audit_engine
"""

import logging
import threading
from contextlib import contextmanager, nullcontext
from typing import Any, Callable, Hashable, Iterator

import sqlalchemy as sa
from sqlalchemy.engine import Engine

from .dispatch import DEFAULT, dispatch_value
from .driver import get_driver
from .errors import ConfigurationError
from .state import _TRANSACTION_CONNECTION, _TRANSACTION_LOCK

_log = logging.getLogger(__name__)

Provider = Callable[[], Any]


class ConnectionRegistry:
    """
    Map dispatch keys to connection providers.

    Lookups for an unregistered key fall back to the ``"default"`` registration; when
    there is none, resolution fails with ``ConfigurationError``. Registrations are meant
    to happen at start-up; ``resolve`` is safe to call from any thread.
    """

    def __init__(self) -> None:
        self._providers: dict[Hashable, Provider] = {}
        self._lock = threading.Lock()

    def register(self, key: Hashable, provider: Any) -> None:
        """
        Install or replace the provider for ``key``.

        Args:
            key: A dispatch key (model name) or ``"default"``.
            provider: A zero-argument callable returning a connection descriptor, or
                a descriptor (Engine, Connection, URL) to return as-is.
        """
        if not callable(provider):
            descriptor = provider
            provider = lambda: descriptor  # noqa: E731
        with self._lock:
            self._providers[key] = provider

    def unregister(self, key: Hashable) -> None:
        with self._lock:
            self._providers.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._providers.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._providers

    def resolve(self, key: Hashable) -> Any:
        """Return the connection descriptor for ``key``, falling back to the default."""
        provider = self._providers.get(key) or self._providers.get(DEFAULT)
        if provider is None:
            raise ConfigurationError(key)
        return provider()

    def validate(self) -> None:
        """Raise ConfigurationError unless a default provider is registered."""
        if DEFAULT not in self._providers:
            raise ConfigurationError(
                DEFAULT,
                "No default connection provider is registered. Call "
                "conduit.connect(url) or conduit.register_spec('default', ...) at start-up.",
            )


_registry = ConnectionRegistry()

# Engines created by connect(), disposed by disconnect()
_owned_engines: list[Engine] = []


def register_spec(key: Any, provider: Any = None) -> Any:
    """
    Register the connection provider for a model, or the ``"default"`` provider.

    Can be called directly or used as a decorator:

        conduit.register_spec("default", engine)

        @conduit.register_spec(Venue)
        def venue_db():
            return venue_engine

    Args:
        key: A model, a model name, or ``"default"``.
        provider: A zero-argument callable or a connection descriptor. Omit it to use
            ``register_spec`` as a decorator.
    """
    key = dispatch_value(key)
    if provider is None:

        def decorator(fn: Provider) -> Provider:
            _registry.register(key, fn)
            return fn

        return decorator

    _registry.register(key, provider)
    return provider


def unregister_spec(key: Any) -> None:
    _registry.unregister(dispatch_value(key))


def spec(model: Any = None) -> Any:
    """Return the connection descriptor registered for ``model`` (or the default)."""
    return _registry.resolve(dispatch_value(model))


def validate_configuration() -> None:
    """Fail fast at start-up if no default connection provider is registered."""
    _registry.validate()


def connection(model: Any = None) -> Any:
    """
    Return the connection queries for ``model`` should use.

    Inside a ``transaction()`` block this is always the transaction's connection,
    whatever the model; otherwise it is the model's registered descriptor.
    """
    active = _TRANSACTION_CONNECTION.get()
    if active is not None:
        return active
    return spec(model)


def in_transaction() -> bool:
    return _TRANSACTION_CONNECTION.get() is not None


def statement_lock() -> Any:
    """
    Return the lock statements on the pinned connection must hold, or a no-op
    context manager outside of ``transaction()``.
    """
    return _TRANSACTION_LOCK.get() or nullcontext()


@contextmanager
def transaction() -> Iterator[Any]:
    """
    Run every query inside the block in a single transaction on one connection.

    The transaction commits when the block exits normally and rolls back when an
    exception escapes it. Nested ``transaction()`` blocks join the outermost one: they
    begin nothing, commit nothing and roll back nothing themselves, so an exception
    raised at any depth rolls back all of the work.

    Usage:
        with conduit.transaction():
            conduit.execute(("UPDATE venue SET name = ? WHERE id = ?", "Tempest", 1))
            conduit.insert(Venue, sa.insert(Venue.__table__).values(name="Ferrari"))

    Yields:
        The live connection pinned for the block.
    """
    active = _TRANSACTION_CONNECTION.get()
    if active is not None:
        yield active
        return

    with get_driver().transaction(spec()) as conn:
        token = _TRANSACTION_CONNECTION.set(conn)
        lock_token = _TRANSACTION_LOCK.set(threading.RLock())
        try:
            yield conn
        finally:
            _TRANSACTION_LOCK.reset(lock_token)
            _TRANSACTION_CONNECTION.reset(token)


def do_in_transaction(f: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``f`` inside ``transaction()`` and return its result."""
    with transaction():
        return f(*args, **kwargs)


def connect(url: str | sa.URL, **engine_options: Any) -> Engine:
    """
    Create an Engine for ``url`` and register it as the default connection.

    Args:
        url: A SQLAlchemy database URL (e.g. ``"sqlite:///app.db"``).
        **engine_options: Passed to ``sqlalchemy.create_engine``.

    Returns:
        The new Engine.
    """
    engine = sa.create_engine(url, **engine_options)
    _owned_engines.append(engine)
    register_spec(DEFAULT, engine)
    _log.info(f"Registered default connection {engine.url!r}")
    return engine


def disconnect() -> None:
    """Dispose engines created by ``connect`` and remove every registration."""
    from .driver import default_driver

    _registry.clear()
    while _owned_engines:
        _owned_engines.pop().dispose()
    default_driver().dispose()
