"""
Request lifecycle rules.

pending  -> approved | rejected
approved -> completed | rejected
completed and rejected are terminal.

Finalize is planned here as a pure function: every line is validated against
the stock snapshot first, and the caller applies the resulting plan only when
nothing failed.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from app.requests.domain.errors import FinalizeValidationError, InvalidTransition
from app.requests.domain.models import RequestStatus, RequestType, StockRequest, StockSnapshot


ALLOWED_TRANSITIONS: Dict[RequestStatus, frozenset] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset({RequestStatus.COMPLETED, RequestStatus.REJECTED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    try:
        current_status = RequestStatus(current)
        target_status = RequestStatus(target)
    except ValueError:
        return False
    return target_status in ALLOWED_TRANSITIONS[current_status]


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(str(current), str(target))


def is_editable(status: str) -> bool:
    return status == RequestStatus.PENDING.value


@dataclass(frozen=True)
class FinalizeLineInput:
    item_id: str
    quantity_received: Optional[int] = None
    quantity_returned: Optional[int] = None


@dataclass(frozen=True)
class LineUpdate:
    item_id: str
    quantity_received: Optional[int]
    quantity_returned: Optional[int]


@dataclass(frozen=True)
class FinalizePlan:
    line_updates: Sequence[LineUpdate] = field(default_factory=list)
    # item_id -> signed change to apply to stock
    stock_adjustments: Mapping[str, int] = field(default_factory=dict)
    resulting_stock: Mapping[str, int] = field(default_factory=dict)


def plan_finalize(
    request: StockRequest,
    lines: Sequence[FinalizeLineInput],
    stock: Mapping[str, StockSnapshot],
) -> FinalizePlan:
    ensure_transition(request.status, RequestStatus.COMPLETED.value)

    names = {line.item_id: line.item_name for line in request.items}
    is_return = request.type == RequestType.ITEM_RETURN.value

    errors: List[dict] = []
    seen: set = set()
    updates: List[LineUpdate] = []
    adjustments: Dict[str, int] = {}

    for index, line in enumerate(lines):
        item_name = names.get(line.item_id)
        snapshot = stock.get(line.item_id)
        if snapshot is not None and item_name is None:
            item_name = snapshot.name

        def fail(message: str) -> None:
            errors.append({
                "index": index,
                "item_id": line.item_id,
                "item_name": item_name,
                "message": message,
            })

        if line.item_id not in names:
            fail(f"Item {line.item_id} is not part of this request")
            continue
        if line.item_id in seen:
            fail(f"Item '{item_name}' is listed more than once")
            continue
        seen.add(line.item_id)

        received = line.quantity_received or 0
        returned = line.quantity_returned or 0
        if received < 0 or returned < 0:
            fail("Quantities cannot be negative.")
            continue

        if snapshot is None:
            fail(f"Item '{item_name}' no longer exists")
            continue

        if not is_return and received > snapshot.quantity:
            fail(
                f"Received quantity {received} for '{item_name}' exceeds available "
                f"stock ({snapshot.quantity})"
            )
            continue

        updates.append(LineUpdate(line.item_id, line.quantity_received, line.quantity_returned))
        if received:
            adjustments[line.item_id] = received if is_return else -received

    if errors:
        raise FinalizeValidationError(errors)

    resulting = {
        item_id: stock[item_id].quantity + delta
        for item_id, delta in adjustments.items()
    }
    return FinalizePlan(line_updates=updates, stock_adjustments=adjustments, resulting_stock=resulting)
