import sqlalchemy as sa

import conduit
from conduit.debug import CallCounter, debug_println


class Sink:
    def __init__(self):
        self.lines = []

    def __call__(self, *args):
        self.lines.append(" ".join(str(a) for a in args))


def test_call_counting_counts_pipeline_invocations(driver):
    """Test that N statements yield a count of N, whatever their results."""
    with conduit.call_counting() as call_count:
        assert call_count() == 0
        conduit.query("SELECT 1")
        conduit.execute("DELETE FROM venue")
        conduit.insert("Venue", "INSERT INTO venue (name) VALUES ('x')")
        conduit.update("Venue", "UPDATE venue SET name = 'y'")
        conduit.delete("Venue", "DELETE FROM venue")
        conduit.reducible_query("SELECT 1")

        assert call_count() == 6


def test_call_counting_counts_once_regardless_of_rows(driver):
    driver.rows = [{"id": n} for n in range(50)]

    with conduit.call_counting() as call_count:
        conduit.query("SELECT id FROM venue")

    assert call_count() == 1


def test_nested_call_counting_shadows_outer(driver):
    """Test that an inner counting block starts at zero and does not add to the outer one."""
    with conduit.call_counting() as outer:
        conduit.query("SELECT 1")
        conduit.query("SELECT 2")

        with conduit.call_counting() as inner:
            assert inner() == 0
            conduit.query("SELECT 3")
            assert inner() == 1

        conduit.query("SELECT 4")

    assert outer() == 3
    assert inner() == 1


def test_no_counting_outside_block(driver):
    conduit.query("SELECT 1")

    with conduit.call_counting() as call_count:
        pass

    assert call_count() == 0


def test_do_with_call_counting(driver):
    def work(call_count):
        conduit.query("SELECT 1")
        conduit.query("SELECT 2")
        return call_count()

    assert conduit.do_with_call_counting(work) == 2


def test_debug_count_calls_writes_total(driver):
    sink = Sink()
    conduit.set_debug_sink(sink)

    with conduit.debug_count_calls():
        conduit.execute("DELETE FROM venue")
        conduit.execute("DELETE FROM category")

    assert sink.lines == ["DB Calls: 2"]


def test_call_counter_is_thread_safe():
    from concurrent.futures import ThreadPoolExecutor

    counter = CallCounter()
    with ThreadPoolExecutor(max_workers=8) as pool:
        for _ in range(1000):
            pool.submit(counter.increment)

    assert counter() == 1000


def test_debug_traces_literal_sql(driver):
    sink = Sink()
    conduit.set_debug_sink(sink)

    with conduit.debug():
        conduit.query(("SELECT * FROM venue WHERE id = ?", 1))

    assert sink.lines == ["SQL & Args: ('SELECT * FROM venue WHERE id = ?', (1,))"]


def test_debug_traces_structured_and_compiled_forms(driver, compiler):
    sink = Sink()
    conduit.set_debug_sink(sink)

    with conduit.debug():
        conduit.query({"select": "*", "from": "t"})

    assert sink.lines == [
        "Structured form: {'from': 't', 'select': '*'}",
        "SQL & Args: ('SELECT * FROM t', ())",
    ]


def test_debug_does_not_change_results(engine):
    conduit.set_debug_sink(Sink())
    select = sa.select(sa.column("name")).select_from(sa.table("venue"))

    plain = conduit.query(select)
    with conduit.debug():
        traced = conduit.query(select)

    assert traced == plain


def test_nothing_traced_outside_debug(driver):
    sink = Sink()
    conduit.set_debug_sink(sink)

    conduit.query("SELECT 1")
    debug_println("hidden")

    assert sink.lines == []


def test_set_debug_sink_returns_previous():
    sink = Sink()

    previous = conduit.set_debug_sink(sink)
    assert previous is print
    assert conduit.set_debug_sink(None) is sink


def test_debug_writes_to_stdout_by_default(driver, capsys):
    with conduit.debug():
        conduit.execute("DELETE FROM venue")

    assert "SQL & Args:" in capsys.readouterr().out
