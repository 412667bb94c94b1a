import pytest
from combinators import lift as L
from kungfu import Error, Ok

from charmcart.order import Transaction


def lifted(outcome: object):
    async def run() -> object:
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return L.catching_async(run, on_error=lambda e: e)


async def test_rollback_runs_compensators_in_reverse() -> None:
    undone: list[str] = []

    async def undo(value: str) -> None:
        undone.append(value)

    tx = Transaction()
    tx.record("reservation", undo)
    match await tx.step(lifted("order"), undo):
        case Ok(value):
            assert value == "order"
        case Error(e):
            pytest.fail(str(e))

    report = await tx.rollback()

    assert undone == ["order", "reservation"]
    assert report.compensators_run == 2
    assert report.rollback_complete
    assert tx.compensators_recorded == 0


async def test_failed_step_records_nothing() -> None:
    tx = Transaction()

    async def undo(value: object) -> None:
        pytest.fail("must not run")

    result = await tx.step(lifted(RuntimeError("db down")), undo)

    assert isinstance(result, Error)
    assert tx.compensators_recorded == 0
    assert tx.steps_executed == 0


async def test_failing_compensator_is_counted_and_others_still_run() -> None:
    undone: list[str] = []

    async def broken(value: str) -> None:
        raise RuntimeError("release failed")

    async def undo(value: str) -> None:
        undone.append(value)

    tx = Transaction()
    tx.record("first", undo)
    tx.record("second", broken)

    report = await tx.rollback()

    assert undone == ["first"]
    assert report.compensators_run == 1
    assert report.compensators_failed == 1
    assert not report.rollback_complete
