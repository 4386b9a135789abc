import time

import pytest
from sqlalchemy import update

from laundry.extensions import db
from laundry.models import Branch, Order
from laundry.services import aggregate_service, order_service
from laundry.services.errors import ConflictError, TransactionAbortError, ValidationError
from laundry.services.transaction import after_commit, in_unit_of_work, unit_of_work

from conftest import STAFF_USER_ID, line, reload


def test_aggregate_primitives_refuse_to_run_outside_a_unit(branch, employee):
    with pytest.raises(RuntimeError):
        aggregate_service.adjust_branch_order_count(branch.id, 1)
    with pytest.raises(RuntimeError):
        aggregate_service.adjust_branch_revenue(branch.id, 100)
    with pytest.raises(RuntimeError):
        aggregate_service.adjust_employee_tasks(employee.id, assigned_delta=1)


def test_domain_error_rolls_back_every_write(branch, employee):
    with pytest.raises(ValidationError):
        with unit_of_work("test.rollback"):
            aggregate_service.adjust_branch_revenue(branch.id, 700)
            aggregate_service.adjust_employee_tasks(employee.id, assigned_delta=1, completed_delta=1)
            raise ValidationError("stop")

    assert reload(branch).total_revenue_cents == 0
    employee = reload(employee)
    assert (employee.assigned_tasks, employee.completed_tasks) == (0, 0)
    assert not in_unit_of_work()


def test_nested_units_join_the_outer_one(branch):
    with pytest.raises(ValidationError):
        with unit_of_work("outer"):
            with unit_of_work("inner"):
                aggregate_service.adjust_branch_order_count(branch.id, 5)
            assert in_unit_of_work()
            raise ValidationError("outer fails after inner finished")

    assert reload(branch).total_orders == 0


def test_after_commit_runs_only_on_commit(branch):
    calls = []

    with unit_of_work("test.commit"):
        after_commit(lambda: calls.append("committed"))
        assert calls == []
    assert calls == ["committed"]

    with pytest.raises(ValidationError):
        with unit_of_work("test.rollback"):
            after_commit(lambda: calls.append("rolled back"))
            raise ValidationError("nope")
    assert calls == ["committed"]


def test_time_budget_exceeded_aborts(branch):
    with pytest.raises(TransactionAbortError):
        with unit_of_work("test.slow", timeout=0.01):
            aggregate_service.adjust_branch_revenue(branch.id, 100)
            time.sleep(0.05)

    assert reload(branch).total_revenue_cents == 0


def test_stale_version_becomes_conflict(branch):
    order = order_service.create_order(
        customer_id=1, branch_id=branch.id, items=[line(1, 100)], actor_user_id=STAFF_USER_ID
    )

    with pytest.raises(ConflictError):
        with unit_of_work("test.stale"):
            loaded = db.session.get(Order, order.id)
            assert loaded.version_id >= 1
            # another writer bumps the version behind this session's back
            db.session.execute(
                update(Order)
                .where(Order.id == order.id)
                .values(version_id=Order.version_id + 1)
                .execution_options(synchronize_session=False)
            )
            loaded.notes = "from a stale read"

    assert reload(order).notes is None


def test_unknown_aggregate_target_is_not_found(db_session):
    from laundry.services.errors import NotFound

    with pytest.raises(NotFound):
        with unit_of_work("test.missing"):
            aggregate_service.adjust_branch_revenue(4040, 10)


def test_branch_aggregates_are_read_only_over_orm(branch):
    # aggregate columns change only through the primitives; the ORM row is
    # refreshed after commit
    with unit_of_work("test.increment"):
        aggregate_service.adjust_branch_order_count(branch.id, 2)
        aggregate_service.adjust_branch_revenue(branch.id, 999)
    refreshed = db.session.get(Branch, branch.id)
    assert (refreshed.total_orders, refreshed.total_revenue_cents) == (2, 999)


def test_uniqueness_violation_becomes_conflict(branch):
    with pytest.raises(ConflictError):
        with unit_of_work("test.duplicate"):
            db.session.add(Branch(name="Lekki Annex", code=branch.code))

    assert db.session.query(Branch).count() == 1


def test_other_constraint_violations_are_not_retryable(branch):
    with pytest.raises(ValidationError) as exc:
        with unit_of_work("test.not_null"):
            db.session.add(Branch(name=None, code="NUL"))

    assert not isinstance(exc.value, ConflictError)
    assert db.session.query(Branch).count() == 1
