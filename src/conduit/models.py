from collections.abc import Sequence
from typing import Any, ClassVar

import sqlalchemy as sa
from pydantic import BaseModel, ConfigDict

from .base import ConduitField
from .state import _MODEL_REGISTRY_PY

_DEFAULT_PRIMARY_KEY = ("id",)

# Shared MetaData for the tables generated from model schemas
metadata = sa.MetaData()


class ModelMetaclass(type(BaseModel)):
    """
    Metaclass for Conduit models that records column metadata and registers the model.
    """

    def __new__(mcs, name, bases, namespace, **kwargs):
        cls = super().__new__(mcs, name, bases, namespace, **kwargs)

        # Skip the 'Model' base class itself
        if name == "Model":
            return cls

        cls.conduit_fields = mcs._parse_conduit_field_metadata(cls)
        if "__tablename__" not in namespace:
            cls.__tablename__ = name.lower()
        _MODEL_REGISTRY_PY[name] = cls

        try:
            cls.__table__ = _build_sa_table(cls)
        except Exception as e:
            raise RuntimeError(f"Conduit failed to register model '{name}': {e}") from e

        return cls

    @staticmethod
    def _parse_conduit_field_metadata(cls) -> dict[str, ConduitField]:
        """Collect ConduitField metadata from Annotated hints, keeping field order."""
        conduit_fields = {}
        # Pydantic keeps Annotated metadata it does not understand on the FieldInfo
        for field_name, field_info in cls.model_fields.items():
            for item in field_info.metadata:
                if isinstance(item, ConduitField):
                    conduit_fields[field_name] = item
                    break
        return conduit_fields


class Model(BaseModel, metaclass=ModelMetaclass):
    """
    Base class for Conduit models.

    A model is a pydantic class that names a table and its primary key. It is used as
    the dispatch key for connection, compiler and driver lookups, and its generated
    ``__table__`` can be used to build SQLAlchemy statements:

        class Venue(Model):
            id: Annotated[int | None, ConduitField(primary_key=True)] = None
            name: str

        conduit.query(Venue, sa.select(Venue.__table__))
    """

    model_config = ConfigDict(
        from_attributes=True,
        use_attribute_docstrings=True,
    )

    conduit_fields: ClassVar[dict[str, ConduitField]] = {}


def primary_key(model: Any) -> tuple[str, ...]:
    """
    Return the primary key column names for ``model``, in declaration order.

    Models use the fields flagged ``ConduitField(primary_key=True)``. Other objects may
    declare ``__primary_key__`` as a column name or a sequence of names. The key
    defaults to ``("id",)``.

    Args:
        model: A model class or instance, a registered model name, or any object.

    Returns:
        tuple[str, ...]: One column name, or several for a composite key.
    """
    if isinstance(model, str) and model in _MODEL_REGISTRY_PY:
        model = _MODEL_REGISTRY_PY[model]

    conduit_fields = getattr(model, "conduit_fields", None) or {}
    pk = tuple(name for name, field in conduit_fields.items() if field.primary_key)
    if pk:
        return pk

    declared = getattr(model, "__primary_key__", None)
    if isinstance(declared, str):
        return (declared,)
    if isinstance(declared, Sequence) and declared:
        return tuple(declared)
    return _DEFAULT_PRIMARY_KEY


def get_model(name: str) -> type[Model]:
    """Look up a registered model class by name."""
    try:
        return _MODEL_REGISTRY_PY[name]
    except KeyError:
        raise LookupError(f"No model registered under the name '{name}'") from None


def clear_registry() -> None:
    """Forget every registered model and its generated table."""
    _MODEL_REGISTRY_PY.clear()
    metadata.clear()


def _build_sa_table(model_cls) -> sa.Table:
    """Build a SQLAlchemy Table object from a model's JSON schema."""
    schema = model_cls.model_json_schema()
    properties = schema.get("properties", {})
    required_fields = schema.get("required", [])

    table_name = model_cls.__tablename__
    if table_name in metadata.tables:
        # Redefining a model (common in tests) replaces its table
        metadata.remove(metadata.tables[table_name])

    columns = []
    for col_name, col_info in properties.items():
        col_info = _resolve_ref(schema, col_info)
        field = model_cls.conduit_fields.get(col_name) or ConduitField()

        is_nullable = col_name not in required_fields
        if "anyOf" in col_info:
            is_nullable = any(item.get("type") == "null" for item in col_info["anyOf"])

        columns.append(
            sa.Column(
                col_name,
                _map_to_sa_type(schema, col_info),
                primary_key=field.primary_key,
                nullable=is_nullable and not field.primary_key,
                unique=field.unique,
                index=field.index,
            )
        )

    return sa.Table(table_name, metadata, *columns)


def _resolve_ref(schema: dict[str, Any], col_info: dict[str, Any]) -> dict[str, Any]:
    """Resolve $ref in JSON schema if present."""
    if "$ref" in col_info:
        ref_path = col_info["$ref"]
        if ref_path.startswith("#/$defs/"):
            def_name = ref_path.split("/")[-1]
            return schema.get("$defs", {}).get(def_name, col_info)
    return col_info


def _map_to_sa_type(
    schema: dict[str, Any], col_info: dict[str, Any]
) -> sa.types.TypeEngine:
    """Map JSON schema types to SQLAlchemy types."""
    json_type = col_info.get("type")
    format = col_info.get("format")
    enum_values = col_info.get("enum")

    # Handle Pydantic 'anyOf' for Optional types
    if "anyOf" in col_info:
        for item in col_info["anyOf"]:
            item = _resolve_ref(schema, item)
            if item.get("type") != "null":
                json_type = item.get("type")
                format = item.get("format")
                enum_values = item.get("enum") or enum_values
                break

    if enum_values:
        return sa.Enum(*enum_values)

    if json_type == "integer":
        return sa.Integer()
    elif json_type == "string":
        if format == "date-time":
            return sa.DateTime()
        elif format == "date":
            return sa.Date()
        elif format == "uuid":
            return sa.Uuid()
        return sa.String()
    elif json_type == "boolean":
        return sa.Boolean()
    elif json_type == "number":
        return sa.Float()
    elif json_type in ("object", "array"):
        return sa.JSON()

    return sa.String()  # Fallback
