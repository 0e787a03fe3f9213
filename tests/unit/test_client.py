import json

import pytest

from client import ApiError, ApiSession, ClientValidationError, InventoryApiClient
from client.validation import validate_finalize, validate_issue, validate_new_request


class FakeResponse:
    def __init__(self, status_code, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is not None:
            self.content = text.encode()
        else:
            self.content = json.dumps(payload).encode() if payload is not None else b""

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeHttp:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.responses.pop(0)


def make_client(*responses, token=None):
    session = ApiSession(base_url="http://inventory.test/", token=token)
    http = FakeHttp(*responses)
    return InventoryApiClient(session, http=http), http


# ==================== SESSION & ERRORS ====================

def test_login_stores_token_and_sends_bearer_afterwards():
    user = {"id": "u-1", "role": "issuer"}
    client, http = make_client(
        FakeResponse(200, {"token": "abc", "user": user}),
        FakeResponse(200, []),
    )

    client.login("ivy", "secret")
    client.get_items()

    assert client.session.role == "issuer"
    method, url, kwargs = http.calls[1]
    assert url == "http://inventory.test/api/items"
    assert kwargs["headers"]["Authorization"] == "Bearer abc"


def test_export_returns_raw_bytes():
    client, http = make_client(FakeResponse(200, text="PK-workbook"), token="abc")

    assert client.export_inventory() == b"PK-workbook"
    assert http.calls[0][1] == "http://inventory.test/api/reports/inventory/export"


def test_unauthorized_clears_session():
    client, _ = make_client(FakeResponse(401, {"detail": "Invalid token"}), token="stale")

    with pytest.raises(ApiError) as excinfo:
        client.get_requests()

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Invalid token"
    assert client.session.is_authenticated is False


def test_logout_clears_session_even_when_server_fails():
    client, _ = make_client(FakeResponse(500, text="boom"), token="abc")

    with pytest.raises(ApiError) as excinfo:
        client.logout()

    assert excinfo.value.message == "Request failed with status 500"
    assert client.session.token is None


def test_finalize_error_carries_line_errors():
    detail = {"message": "Received quantity 9 for 'Router' exceeds available stock (3)", "errors": [{"index": 0}]}
    client, _ = make_client(FakeResponse(400, {"detail": detail}), token="abc")

    with pytest.raises(ApiError) as excinfo:
        client.finalize_request("r-1", [{"item_id": "i-1", "quantity_received": 9}], "Ivy")

    assert excinfo.value.errors == [{"index": 0}]
    assert "exceeds available stock" in excinfo.value.message


def test_validation_error_list_is_flattened():
    detail = [{"loc": ["body", "reason"], "msg": "Field required"}]
    client, _ = make_client(FakeResponse(422, {"detail": detail}), token="abc")

    with pytest.raises(ApiError) as excinfo:
        client.update_request("r-1", {})

    assert excinfo.value.message == "Field required"


def test_get_requests_passes_filters():
    client, http = make_client(FakeResponse(200, []), token="abc")

    client.get_requests(status="pending")

    assert http.calls[0][2]["params"] == {"status": "pending"}


# ==================== PRE-SUBMIT VALIDATION ====================

def test_issue_is_validated_before_sending():
    client, http = make_client(token="abc")

    with pytest.raises(ClientValidationError) as excinfo:
        client.issue_item("", "i-1", 5, available=2)

    assert set(excinfo.value.errors) == {"person_name", "quantity"}
    assert http.calls == []


def test_validate_issue_accepts_available_stock():
    validate_issue("Sam", "i-1", 2, available=2)


def test_validate_finalize_checks_each_line():
    request_items = [
        {"item_id": "a", "current_stock": 3},
        {"item_id": "b", "current_stock": 0},
    ]
    lines = [
        {"item_id": "a", "quantity_received": 4},
        {"item_id": "b", "quantity_received": 0, "quantity_returned": -1},
        {"item_id": "c", "quantity_received": 1},
    ]

    with pytest.raises(ClientValidationError) as excinfo:
        validate_finalize(lines, request_items, "Ivy")

    errors = excinfo.value.errors
    assert errors["items[0]"] == "Received quantity cannot exceed available stock (3)."
    assert errors["items[1]"] == "Quantities cannot be negative."
    assert errors["items[2]"] == "Item is not part of this request."


def test_validate_finalize_skips_stock_check_for_returns():
    validate_finalize([{"item_id": "a", "quantity_received": 10}], [{"item_id": "a", "current_stock": 0}], "Ivy", "item_return")


def test_validate_new_request():
    with pytest.raises(ClientValidationError) as excinfo:
        validate_new_request({"items": [{"item_id": "a", "quantity": 0}]})

    assert set(excinfo.value.errors) == {"selected_approver_id", "items[0]"}
