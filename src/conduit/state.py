import contextvars
from contextvars import ContextVar
from functools import wraps
from typing import Any, Callable

# Live connection pinned by the innermost active transaction() block
_TRANSACTION_CONNECTION: ContextVar[Any | None] = ContextVar(
    "transaction_connection", default=None
)

# RLock held around every statement sent on the pinned connection; worker threads
# that share a transaction through bind_scope take turns on it
_TRANSACTION_LOCK: ContextVar[Any | None] = ContextVar("transaction_lock", default=None)

# Statement tracing flag for the current scope
_DEBUG: ContextVar[bool] = ContextVar("debug", default=False)

# CallCounter of the nearest enclosing call_counting() block
_CALL_COUNTER: ContextVar[Any | None] = ContextVar("call_counter", default=None)

# Global registry for models (Python side)
_MODEL_REGISTRY_PY = {}


def bind_scope(fn: Callable[..., Any]) -> Callable[..., Any]:
    """
    Bind ``fn`` to the caller's current transaction, tracing and counting scope.

    Threads start with an empty context, so work handed to a thread pool does not
    see the caller's ``transaction()`` or ``call_counting()`` blocks. Wrapping the
    callable captures a snapshot of the current context; every call runs in its
    own copy of that snapshot, so the wrapper can be called from several threads.
    Workers that share a transaction this way run their statements one at a time
    on its connection.

    Example:
        >>> with call_counting() as call_count:
        ...     executor.submit(bind_scope(load_rows)).result()
    """
    snapshot = contextvars.copy_context()

    @wraps(fn)
    def run_in_scope(*args: Any, **kwargs: Any) -> Any:
        return snapshot.copy().run(fn, *args, **kwargs)

    return run_in_scope
