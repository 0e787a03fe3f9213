"""
Checks run before a form is submitted to the API
Each validator raises ClientValidationError with one message per field or line
"""
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

REQUEST_TYPES = ("material_request", "item_return")


class ClientValidationError(ValueError):
    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{key}: {message}" for key, message in errors.items()))


def _blank(value: Optional[str]) -> bool:
    return not (value or "").strip()


def _raise_if(errors: Dict[str, str]) -> None:
    if errors:
        raise ClientValidationError(errors)


def validate_finalize(
    lines: Sequence[Mapping[str, Any]],
    request_items: Iterable[Mapping[str, Any]],
    released_by: str,
    request_type: str = "material_request",
) -> None:
    """Finalize form: non-negative quantities, received within live stock"""
    errors: Dict[str, str] = {}
    if _blank(released_by):
        errors["released_by"] = "Released by is required."
    if not lines:
        errors["items"] = "At least one item is required."

    stock = {item["item_id"]: item.get("current_stock") for item in request_items}
    for index, line in enumerate(lines):
        key = f"items[{index}]"
        received = line.get("quantity_received") or 0
        returned = line.get("quantity_returned") or 0
        if line.get("item_id") not in stock:
            errors[key] = "Item is not part of this request."
        elif received < 0 or returned < 0:
            errors[key] = "Quantities cannot be negative."
        elif request_type == "material_request":
            available = stock[line["item_id"]]
            if available is not None and received > available:
                errors[key] = f"Received quantity cannot exceed available stock ({available})."

    _raise_if(errors)


def validate_issue(person_name: str, item_id: str, quantity: int, available: Optional[int] = None) -> None:
    errors: Dict[str, str] = {}
    if _blank(person_name):
        errors["person_name"] = "Person name is required."
    if not item_id:
        errors["item_id"] = "Item is required."
    if quantity is None or quantity <= 0:
        errors["quantity"] = "Quantity must be positive."
    elif available is not None and quantity > available:
        errors["quantity"] = f"Insufficient stock. Only {available} units available."
    _raise_if(errors)


def validate_new_request(payload: Mapping[str, Any]) -> None:
    errors: Dict[str, str] = {}
    if not payload.get("selected_approver_id"):
        errors["selected_approver_id"] = "An approver must be selected."
    if payload.get("type", "material_request") not in REQUEST_TYPES:
        errors["type"] = "Unknown request type."

    items = payload.get("items") or []
    if not items:
        errors["items"] = "At least one item is required."
    for index, item in enumerate(items):
        key = f"items[{index}]"
        if not item.get("item_id") and _blank(item.get("item_name")):
            errors[key] = "Item is required."
        elif (item.get("quantity") or 0) <= 0:
            errors[key] = "Quantity must be greater than zero."

    _raise_if(errors)


def validate_reject(reason: str, rejector_name: str) -> None:
    errors: Dict[str, str] = {}
    if _blank(reason):
        errors["reason"] = "Reason is required."
    if _blank(rejector_name):
        errors["rejector_name"] = "Rejector name is required."
    _raise_if(errors)


def validate_approve(approver_name: str) -> None:
    if _blank(approver_name):
        raise ClientValidationError({"approver_name": "Approver name is required."})
