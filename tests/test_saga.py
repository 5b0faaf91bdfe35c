import pytest

from marketplace.services.saga import Saga


class Boom(Exception):
    pass


def fail(_results):
    raise Boom("step failed")


def test_runs_steps_in_order_and_passes_results():
    seen = []
    saga = (
        Saga("demo")
        .step("a", lambda r: seen.append("a") or 1)
        .step("b", lambda r: seen.append(("b", dict(r))) or 2)
    )
    assert saga.run() == {"a": 1, "b": 2}
    assert seen == ["a", ("b", {"a": 1})]


def test_compensates_completed_steps_in_reverse():
    undone = []
    saga = (
        Saga("demo")
        .step("first", lambda r: "one", compensate=lambda v: undone.append(("first", v)))
        .step("second", lambda r: "two", compensate=lambda v: undone.append(("second", v)))
        .step("third", fail, compensate=lambda v: undone.append(("third", v)))
    )
    with pytest.raises(Boom):
        saga.run()

    assert undone == [("second", "two"), ("first", "one")]
    assert saga.report.compensations_run == 2
    assert saga.report.rollback_complete


def test_failed_compensation_does_not_stop_the_others():
    undone = []

    def broken(_value):
        raise RuntimeError("cannot undo")

    saga = (
        Saga("demo")
        .step("first", lambda r: 1, compensate=lambda v: undone.append("first"))
        .step("second", lambda r: 2, compensate=broken)
        .step("third", fail)
    )
    with pytest.raises(Boom):
        saga.run()

    assert undone == ["first"]
    assert saga.report.compensations_failed == 1
    assert not saga.report.rollback_complete


def test_steps_without_compensation_are_skipped():
    saga = Saga("demo").step("plain", lambda r: 1).step("boom", fail)
    with pytest.raises(Boom):
        saga.run()
    assert saga.report.compensations_run == 0
