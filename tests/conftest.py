import threading
import time
from contextlib import contextmanager

import pytest

import conduit
from conduit.compiler import CompiledStatement, Compiler, reset_compilers
from conduit.driver import Driver, reset_drivers

VENUE_DDL = (
    "CREATE TABLE venue ("
    "id INTEGER PRIMARY KEY AUTOINCREMENT, "
    "name TEXT NOT NULL, "
    "category TEXT)"
)


class RecordingDriver(Driver):
    """Driver that records every call instead of talking to a database."""

    def __init__(self, rows=None, rows_affected=1):
        self.rows = rows if rows is not None else [{"id": 1, "name": "Tempest"}]
        self.rows_affected = rows_affected
        self.calls = []
        self.begins = 0
        self.commits = 0
        self.rollbacks = 0
        self.key_fetches = 0

    @contextmanager
    def transaction(self, descriptor):
        self.begins += 1
        try:
            yield ("tx", descriptor)
        except BaseException:
            self.rollbacks += 1
            raise
        self.commits += 1

    def query(self, descriptor, statement, **options):
        self.calls.append(("query", descriptor, statement))
        return list(self.rows)

    def reducible_query(self, descriptor, statement, **options):
        self.calls.append(("reducible_query", descriptor, statement))
        yield from self.rows

    def execute(self, descriptor, statement, **options):
        self.calls.append(("execute", descriptor, statement))
        return self.rows_affected

    def insert(self, descriptor, statement, primary_key):
        self.calls.append(("insert", descriptor, statement, tuple(primary_key)))
        if self.rows_affected == 0:
            return None
        self.key_fetches += 1
        return [{col: n for n, col in enumerate(primary_key, start=1)}]


class OverlapDriver(RecordingDriver):
    """RecordingDriver that tracks how many queries are running at once."""

    def __init__(self):
        super().__init__()
        self._guard = threading.Lock()
        self.running = 0
        self.max_running = 0

    def query(self, descriptor, statement, **options):
        with self._guard:
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        time.sleep(0.005)
        with self._guard:
            self.running -= 1
        return super().query(descriptor, statement, **options)


class RecordingCompiler(Compiler):
    """Compiler that records what it was asked to compile."""

    def __init__(self):
        self.calls = []
        self.descriptors = []

    def compile(self, model, query, descriptor=None):
        self.calls.append((model, query))
        self.descriptors.append(descriptor)
        return CompiledStatement(f"SELECT * FROM {query['from']}", ())


@pytest.fixture(autouse=True)
def reset_conduit():
    """Drop registrations, drivers, compilers and the debug sink after each test."""
    yield
    conduit.disconnect()
    reset_drivers()
    reset_compilers()
    conduit.set_debug_sink(None)


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'conduit.db'}"


@pytest.fixture
def engine(db_url):
    """A SQLite database registered as the default connection, with venue rows."""
    engine = conduit.connect(db_url)
    conduit.execute(VENUE_DDL)
    conduit.execute(
        (
            "INSERT INTO venue (name, category) VALUES (?, ?), (?, ?), (?, ?)",
            "Tempest",
            "bar",
            "Ho's Tavern",
            "bar",
            "BevMo",
            "store",
        )
    )
    return engine


@pytest.fixture
def driver():
    """A RecordingDriver registered as the default driver, with default connection 'A'."""
    recording = RecordingDriver()
    conduit.register_driver(conduit.DEFAULT, recording)
    conduit.register_spec(conduit.DEFAULT, "A")
    return recording


@pytest.fixture
def overlap_driver():
    overlapping = OverlapDriver()
    conduit.register_driver(conduit.DEFAULT, overlapping)
    conduit.register_spec(conduit.DEFAULT, "A")
    return overlapping


@pytest.fixture
def compiler():
    recording = RecordingCompiler()
    conduit.register_compiler(conduit.DEFAULT, recording)
    return recording
