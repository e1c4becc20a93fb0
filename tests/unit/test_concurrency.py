"""Concurrent decisions on one step: exactly one wins"""
import threading
import time

import pytest

from qcflow.domain.enums import Decision, ExecutionStatus, StepStatus
from qcflow.domain.errors import ConcurrencyError, StepNotInProgressError
from qcflow.repositories.locking import KeyedLock

from tests.conftest import user_step


def race(*calls):
    """Run callables concurrently and collect (result, error) pairs"""
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def run(index, call):
        barrier.wait()
        try:
            outcomes[index] = (call(), None)
        except Exception as e:
            outcomes[index] = (None, e)

    threads = [threading.Thread(target=run, args=(i, c)) for i, c in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return outcomes


def test_two_reviewers_deciding_at_once(engine, make_template):
    template = make_template([user_step("a", 0, "bob", "carol"), user_step("b", 1, "dan")])
    execution = engine.start_workflow(template.template_id, "sub-1", "alice")
    exec_id = execution.execution_id

    outcomes = race(
        lambda: engine.process_step(exec_id, "a", Decision.APPROVE, "bob"),
        lambda: engine.process_step(exec_id, "a", Decision.REJECT, "carol"),
    )

    succeeded = [r for r, e in outcomes if e is None]
    failed = [e for r, e in outcomes if e is not None]
    assert len(succeeded) == 1
    assert len(failed) == 1
    assert isinstance(failed[0], StepNotInProgressError)

    persisted = engine.get_execution(exec_id).execution
    winner = persisted.steps[0]
    if winner.decision == Decision.APPROVE:
        assert persisted.status == ExecutionStatus.IN_PROGRESS
        assert persisted.steps[1].status == StepStatus.IN_PROGRESS
    else:
        assert persisted.status == ExecutionStatus.REJECTED
        assert persisted.steps[1].status == StepStatus.PENDING


@pytest.mark.parametrize("rounds", [10])
def test_many_concurrent_attempts_record_one_decision(engine, make_template, rounds):
    reviewers = [f"r-{i}" for i in range(rounds)]
    template = make_template([user_step("a", 0, *reviewers)])
    execution = engine.start_workflow(template.template_id, "sub-1", "alice")
    exec_id = execution.execution_id

    outcomes = race(*[
        (lambda user=user: engine.process_step(exec_id, "a", Decision.APPROVE, user))
        for user in reviewers
    ])

    assert sum(1 for _, e in outcomes if e is None) == 1
    assert all(isinstance(e, StepNotInProgressError) for _, e in outcomes if e is not None)
    assert engine.get_execution(exec_id).execution.status == ExecutionStatus.COMPLETED


def test_stale_write_is_rejected(store, engine, make_template):
    template = make_template([user_step("a", 0, "bob")])
    execution = engine.start_workflow(template.template_id, "sub-1", "alice")

    first = store.get_execution(execution.execution_id)
    second = store.get_execution(execution.execution_id)
    store.update_execution(first)

    with pytest.raises(ConcurrencyError):
        store.update_execution(second)


def test_keyed_lock_serializes_one_key_and_forgets_it():
    locks = KeyedLock()
    inside = []
    overlaps = []

    def hold():
        with locks("exec-1"):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(len(inside))
            time.sleep(0.01)
            inside.pop()
        return True

    outcomes = race(*[hold for _ in range(5)])

    assert all(e is None for _, e in outcomes)
    assert overlaps == []
    assert locks._locks == {}


def test_keyed_lock_entry_released_after_error():
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        with locks("exec-1"):
            raise RuntimeError("boom")

    assert locks._locks == {}
    with locks("exec-1"):
        assert "exec-1" in locks._locks


def test_engine_locks_do_not_accumulate(store, engine, make_template):
    template = make_template([user_step("a", 0, "bob")])
    for _ in range(3):
        execution = engine.start_workflow(template.template_id, "sub-1", "alice")
        engine.process_step(execution.execution_id, "a", Decision.APPROVE, "bob")

    assert store._lock._locks == {}
