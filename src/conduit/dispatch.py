"""Derive the dispatch key used for per-model lookups."""

from typing import Any, Hashable

DEFAULT = "default"


def dispatch_value(model: Any) -> Hashable:
    """
    Return the key used to look up connection providers, compilers and drivers.

    Args:
        model: A model class, a model instance, a registration name, or None.

    Returns:
        ``DEFAULT`` for None, the model name for models and other classes, the
        string itself for strings, and the type name for anything else.

    Examples:
        >>> dispatch_value(None)
        'default'
        >>> dispatch_value("Venue")
        'Venue'
    """
    if model is None:
        return DEFAULT
    if isinstance(model, str):
        return model
    if isinstance(model, type):
        return model.__name__
    return type(model).__name__
