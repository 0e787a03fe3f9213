from datetime import datetime

import pytest

from app.requests.domain.errors import FinalizeValidationError, InvalidTransition
from app.requests.domain.lifecycle import (
    FinalizeLineInput,
    can_transition,
    ensure_transition,
    is_editable,
    plan_finalize,
)
from app.requests.domain.models import RequestLine, StockRequest, StockSnapshot


def make_request(status="approved", type="material_request"):
    return StockRequest(
        id="r-1",
        type=type,
        status=status,
        created_by="Rick",
        created_at=datetime(2026, 1, 1),
        updated_at=datetime(2026, 1, 1),
        items=[
            RequestLine(item_id="a", item_name="Alpha", quantity_requested=3),
            RequestLine(item_id="b", item_name="Beta", quantity_requested=1, item_index=1),
        ],
    )


STOCK = {
    "a": StockSnapshot(id="a", name="Alpha", quantity=5),
    "b": StockSnapshot(id="b", name="Beta", quantity=0),
}


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        ("pending", "approved", True),
        ("pending", "rejected", True),
        ("pending", "completed", False),
        ("approved", "completed", True),
        ("approved", "rejected", True),
        ("approved", "pending", False),
        ("completed", "rejected", False),
        ("rejected", "approved", False),
        ("unknown", "approved", False),
    ],
)
def test_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_ensure_transition_names_both_states():
    with pytest.raises(InvalidTransition) as excinfo:
        ensure_transition("completed", "approved")

    assert excinfo.value.current == "completed"
    assert "'completed' to 'approved'" in excinfo.value.message


def test_only_pending_is_editable():
    assert is_editable("pending")
    assert not is_editable("approved")


def test_plan_material_request():
    plan = plan_finalize(make_request(), [FinalizeLineInput("a", 2, 1), FinalizeLineInput("b", 0, 0)], STOCK)

    assert plan.stock_adjustments == {"a": -2}
    assert plan.resulting_stock == {"a": 3}
    assert [update.item_id for update in plan.line_updates] == ["a", "b"]


def test_plan_receiving_exactly_the_available_stock():
    plan = plan_finalize(make_request(), [FinalizeLineInput("a", 5, 0)], STOCK)

    assert plan.resulting_stock == {"a": 0}


def test_plan_item_return_ignores_availability():
    plan = plan_finalize(make_request(type="item_return"), [FinalizeLineInput("b", 4, 0)], STOCK)

    assert plan.stock_adjustments == {"b": 4}
    assert plan.resulting_stock == {"b": 4}


def test_plan_collects_every_failing_line():
    lines = [
        FinalizeLineInput("a", 6, 0),
        FinalizeLineInput("b", -1, 0),
        FinalizeLineInput("zzz", 1, 0),
    ]

    with pytest.raises(FinalizeValidationError) as excinfo:
        plan_finalize(make_request(), lines, STOCK)

    errors = excinfo.value.errors
    assert [error["index"] for error in errors] == [0, 1, 2]
    assert errors[0]["message"] == "Received quantity 6 for 'Alpha' exceeds available stock (5)"
    assert errors[1]["message"] == "Quantities cannot be negative."
    assert "not part of this request" in errors[2]["message"]


def test_plan_rejects_duplicate_lines():
    with pytest.raises(FinalizeValidationError):
        plan_finalize(make_request(), [FinalizeLineInput("a", 1, 0), FinalizeLineInput("a", 1, 0)], STOCK)


def test_plan_rejects_deleted_items():
    with pytest.raises(FinalizeValidationError) as excinfo:
        plan_finalize(make_request(), [FinalizeLineInput("a", 1, 0)], {"b": STOCK["b"]})

    assert excinfo.value.errors[0]["message"] == "Item 'Alpha' no longer exists"


def test_plan_requires_approved_request():
    with pytest.raises(InvalidTransition):
        plan_finalize(make_request(status="pending"), [FinalizeLineInput("a", 1, 0)], STOCK)


def test_receiving_below_threshold_stock_is_allowed():
    stock = {"a": StockSnapshot(id="a", name="Alpha", quantity=5)}

    plan = plan_finalize(make_request(), [FinalizeLineInput("a", 3, 0)], stock)

    assert plan.resulting_stock == {"a": 2}


def test_receiving_more_than_current_stock_is_rejected():
    stock = {"a": StockSnapshot(id="a", name="Alpha", quantity=4)}

    with pytest.raises(FinalizeValidationError) as excinfo:
        plan_finalize(make_request(), [FinalizeLineInput("a", 10, 0)], stock)

    assert "exceeds available stock" in excinfo.value.message


def test_omitted_quantities_stay_unset():
    plan = plan_finalize(make_request(), [FinalizeLineInput("a", 2), FinalizeLineInput("b")], STOCK)

    assert plan.line_updates[0].quantity_received == 2
    assert plan.line_updates[0].quantity_returned is None
    assert plan.line_updates[1].quantity_received is None
    assert plan.stock_adjustments == {"a": -2}
