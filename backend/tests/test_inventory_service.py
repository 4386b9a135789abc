import pytest

from laundry.extensions import db
from laundry.models import InventoryItem, LowStockAlert, StockLog
from laundry.services import inventory_service
from laundry.services.errors import InsufficientStock, NotFound, ValidationError

from conftest import MANAGER_USER_ID, make_item, reload


def _logs(item_id):
    return (
        db.session.query(StockLog)
        .filter_by(inventory_item_id=item_id)
        .order_by(StockLog.id)
        .all()
    )


def test_initial_stock_is_logged_as_restock(branch):
    item = make_item(branch.id, "DETERGENT", 12)

    logs = _logs(item.id)
    assert [(log.change_type, log.quantity_delta, log.resulting_stock) for log in logs] == [
        ("RESTOCK", 12, 12)
    ]
    assert item.current_stock == 12
    assert item.reorder_pending is False
    assert item.last_restocked_at is not None


def test_adjustment_writes_exactly_one_log(branch):
    item = make_item(branch.id, "DETERGENT", 10)

    item = inventory_service.adjust_inventory(
        item_id=item.id, delta=-3, change_type="DAMAGE", reason="Spilled", actor_user_id=MANAGER_USER_ID
    )

    assert item.current_stock == 7
    logs = _logs(item.id)
    assert len(logs) == 2
    assert logs[-1].change_type == "DAMAGE"
    assert logs[-1].quantity_delta == -3
    assert logs[-1].resulting_stock == 7
    assert logs[-1].reason == "Spilled"


def test_negative_result_is_rejected_without_writes(branch):
    item = make_item(branch.id, "SOFTENER", 2)

    with pytest.raises(InsufficientStock) as exc:
        inventory_service.adjust_inventory(
            item_id=item.id, delta=-3, change_type="USAGE", reason=None, actor_user_id=MANAGER_USER_ID
        )

    assert exc.value.details["category"] == "SOFTENER"
    assert exc.value.details["available"] == 2
    assert reload(item).current_stock == 2
    assert len(_logs(item.id)) == 1


def test_stock_can_reach_exactly_zero(branch):
    item = make_item(branch.id, "PACKAGING", 4)
    item = inventory_service.adjust_inventory(
        item_id=item.id, delta=-4, change_type=None, reason=None, actor_user_id=MANAGER_USER_ID
    )
    assert item.current_stock == 0
    assert _logs(item.id)[-1].change_type == "USAGE"


@pytest.mark.parametrize("delta, change_type", [(0, None), (5, "USAGE"), (-5, "RESTOCK"), (1, "BOGUS"), (1.5, None)])
def test_invalid_adjustments(branch, delta, change_type):
    item = make_item(branch.id, "DETERGENT", 10)
    with pytest.raises(ValidationError):
        inventory_service.adjust_inventory(
            item_id=item.id, delta=delta, change_type=change_type, reason=None, actor_user_id=MANAGER_USER_ID
        )
    assert len(_logs(item.id)) == 1


def test_adjust_unknown_item(db_session):
    with pytest.raises(NotFound):
        inventory_service.adjust_inventory(
            item_id=9999, delta=1, change_type=None, reason=None, actor_user_id=MANAGER_USER_ID
        )


def test_branch_mismatch_is_not_found(branch, other_branch):
    item = make_item(branch.id, "DETERGENT", 5)
    with pytest.raises(NotFound):
        inventory_service.adjust_stock(
            item_id=item.id, delta=-1, change_type="USAGE", actor_user_id=MANAGER_USER_ID, branch_id=other_branch.id
        )


def test_reorder_pending_tracks_threshold(branch):
    item = make_item(branch.id, "DETERGENT", 5, reorder_level=3)
    assert item.reorder_pending is False

    item = inventory_service.adjust_inventory(
        item_id=item.id, delta=-2, change_type="USAGE", reason=None, actor_user_id=MANAGER_USER_ID
    )
    assert item.current_stock == 3
    assert item.reorder_pending is True

    item = inventory_service.adjust_inventory(
        item_id=item.id, delta=1, change_type="RETURN", reason=None, actor_user_id=MANAGER_USER_ID
    )
    assert item.reorder_pending is False


def test_low_stock_alert_recorded_and_resolved(branch):
    item = make_item(branch.id, "DETERGENT", 5, reorder_level=3)

    inventory_service.adjust_inventory(
        item_id=item.id, delta=-3, change_type="USAGE", reason=None, actor_user_id=MANAGER_USER_ID
    )
    alert = db.session.query(LowStockAlert).filter_by(inventory_item_id=item.id).one()
    assert alert.is_resolved is False
    assert alert.current_stock == 2

    inventory_service.adjust_inventory(
        item_id=item.id, delta=10, change_type="RESTOCK", reason="Delivery", actor_user_id=MANAGER_USER_ID
    )
    alert = reload(alert)
    assert alert.is_resolved is True
    assert alert.resolved_at is not None


def test_item_created_empty_opens_alert(branch):
    item = make_item(branch.id, "HANGERS", 0)
    assert item.reorder_pending is True
    assert db.session.query(LowStockAlert).filter_by(inventory_item_id=item.id, is_resolved=False).count() == 1
    assert _logs(item.id) == []


def test_find_consumable_item_is_case_insensitive_and_skips_depleted(branch):
    empty = make_item(branch.id, "DETERGENT", 0, name="Old Detergent")
    stocked = make_item(branch.id, "DETERGENT", 3, name="New Detergent")
    db.session.query(InventoryItem).filter_by(id=stocked.id).update({"category": "detergent"})
    db.session.commit()

    found = inventory_service.find_consumable_item(branch.id, "Detergent")
    assert found.id == stocked.id
    assert found.id != empty.id
    assert inventory_service.find_consumable_item(branch.id, "SOFTENER") is None


def test_inactive_items_are_not_consumable(branch):
    item = make_item(branch.id, "SOFTENER", 3)
    inventory_service.deactivate_inventory_item(item_id=item.id)
    assert inventory_service.find_consumable_item(branch.id, "SOFTENER") is None


def test_duplicate_item_name_in_branch_rejected(branch, other_branch):
    make_item(branch.id, "DETERGENT", 1, name="Ariel")
    make_item(other_branch.id, "DETERGENT", 1, name="Ariel")
    with pytest.raises(ValidationError):
        make_item(branch.id, "DETERGENT", 1, name="Ariel")


def test_update_current_stock_becomes_adjustment(branch):
    item = make_item(branch.id, "PACKAGING", 10)

    item = inventory_service.update_inventory_item(
        item_id=item.id,
        fields={"current_stock": 6, "supplier_contact": "bags@example.com"},
        actor_user_id=MANAGER_USER_ID,
    )

    assert item.current_stock == 6
    assert item.supplier_contact == "bags@example.com"
    last = _logs(item.id)[-1]
    assert (last.change_type, last.quantity_delta, last.resulting_stock) == ("ADJUSTMENT", -4, 6)


def test_raising_reorder_level_recomputes_pending(branch):
    item = make_item(branch.id, "PACKAGING", 10, reorder_level=2)
    item = inventory_service.update_inventory_item(
        item_id=item.id, fields={"reorder_level": 10}, actor_user_id=MANAGER_USER_ID
    )
    assert item.reorder_pending is True
    assert db.session.query(LowStockAlert).filter_by(inventory_item_id=item.id, is_resolved=False).count() == 1


def test_update_rejects_unknown_fields(branch):
    item = make_item(branch.id, "PACKAGING", 10)
    with pytest.raises(ValidationError):
        inventory_service.update_inventory_item(
            item_id=item.id, fields={"reorder_pending": False}, actor_user_id=MANAGER_USER_ID
        )


def test_stock_log_replay_matches_current_stock(branch):
    item = make_item(branch.id, "DETERGENT", 20)
    for delta, change_type in ((-3, "USAGE"), (5, "RESTOCK"), (-1, "LOST"), (-2, "ADJUSTMENT"), (4, "RETURN")):
        inventory_service.adjust_inventory(
            item_id=item.id, delta=delta, change_type=change_type, reason=None, actor_user_id=MANAGER_USER_ID
        )

    audit = inventory_service.verify_stock_log(item.id)
    assert audit["current_stock"] == 23
    assert audit["replayed_stock"] == 23
    assert audit["log_count"] == 6
    assert audit["consistent"] is True


def test_low_stock_listing(branch, other_branch):
    make_item(branch.id, "DETERGENT", 1, reorder_level=5)
    make_item(branch.id, "SOFTENER", 50, reorder_level=5)
    make_item(other_branch.id, "PACKAGING", 0, reorder_level=5)

    result = inventory_service.list_low_stock_items(branch_id=branch.id)
    assert [i.category for i in result["items"]] == ["DETERGENT"]
    assert result["pagination"]["total"] == 1

    assert inventory_service.list_low_stock_items()["pagination"]["total"] == 2
