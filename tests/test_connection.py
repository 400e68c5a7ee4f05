import pytest
import sqlalchemy as sa

import conduit
from conduit.connection import ConnectionRegistry


def test_unregistered_model_uses_default():
    """Test that models without their own registration resolve to the default."""
    conduit.register_spec("default", "A")

    assert conduit.spec() == "A"
    assert conduit.spec("Venue") == "A"
    assert conduit.spec(object()) == "A"


def test_model_registration_overrides_default():
    conduit.register_spec("default", "A")
    conduit.register_spec("Venue", "B")

    assert conduit.spec("Venue") == "B"
    assert conduit.spec("Category") == "A"


def test_last_registration_wins():
    conduit.register_spec("default", "A")
    conduit.register_spec("default", "C")

    assert conduit.spec() == "C"


def test_missing_default_raises_configuration_error():
    """Test that resolution fails loudly once the default is removed."""
    conduit.register_spec("default", "A")
    conduit.unregister_spec("default")

    with pytest.raises(conduit.ConfigurationError) as excinfo:
        conduit.spec()

    assert excinfo.value.key == "default"
    assert "default" in str(excinfo.value)


def test_missing_registration_names_the_key():
    with pytest.raises(conduit.ConfigurationError) as excinfo:
        conduit.spec("Venue")

    assert "'Venue'" in str(excinfo.value)


def test_validate_configuration():
    with pytest.raises(conduit.ConfigurationError):
        conduit.validate_configuration()

    conduit.register_spec("default", "A")
    conduit.validate_configuration()


def test_provider_called_on_each_resolution():
    """Test that providers are called lazily, e.g. to build a pool on first use."""
    calls = []

    @conduit.register_spec("default")
    def provider():
        calls.append(1)
        return "pool"

    assert calls == []
    assert conduit.spec() == "pool"
    assert conduit.spec("Venue") == "pool"
    assert len(calls) == 2


def test_register_spec_with_model_class():
    class Ledger(conduit.Model):
        id: int

    conduit.register_spec(Ledger, "ledger-db")

    assert conduit.spec(Ledger) == "ledger-db"
    assert conduit.spec(Ledger(id=1)) == "ledger-db"
    assert conduit.spec("Ledger") == "ledger-db"


def test_registry_contains():
    registry = ConnectionRegistry()
    registry.register("default", "A")

    assert "default" in registry
    assert "Venue" not in registry


def test_connect_registers_engine(db_url):
    """Test connecting to a SQLite database."""
    engine = conduit.connect(db_url)

    assert isinstance(engine, sa.Engine)
    assert conduit.spec() is engine
    assert conduit.query("SELECT 1 AS one") == [{"one": 1}]


def test_disconnect_clears_registrations(db_url):
    conduit.connect(db_url)
    conduit.disconnect()

    with pytest.raises(conduit.ConfigurationError):
        conduit.spec()


def test_url_descriptor_creates_engine(db_url):
    """Test that a URL registered as a provider is turned into a cached engine."""
    conduit.register_spec("default", db_url)

    assert conduit.query("SELECT 2 AS two") == [{"two": 2}]
    assert conduit.query("SELECT 3 AS three") == [{"three": 3}]


def test_unsupported_descriptor_raises_type_error():
    conduit.register_spec("default", 42)

    with pytest.raises(TypeError):
        conduit.query("SELECT 1")
