"""
HTTP client for the inventory API
Every call goes through _request: non-2xx raises ApiError, 401 also clears the session
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import requests

from client.session import ApiSession
from client.validation import (
    validate_approve,
    validate_finalize,
    validate_issue,
    validate_new_request,
    validate_reject,
)

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.status_code = status_code
        self.message = message
        self.errors = errors or []
        super().__init__(message)

    @classmethod
    def from_response(cls, response: requests.Response) -> "ApiError":
        fallback = f"Request failed with status {response.status_code}"
        try:
            payload = response.json()
        except ValueError:
            return cls(response.status_code, fallback)

        if not isinstance(payload, dict):
            return cls(response.status_code, fallback)

        detail = payload.get("detail") or payload.get("error")
        errors = None
        if isinstance(detail, dict):
            errors = detail.get("errors")
            detail = detail.get("message")
        elif isinstance(detail, list):
            # FastAPI body validation errors
            detail = "; ".join(str(entry.get("msg", entry)) for entry in detail if entry) or None

        return cls(response.status_code, detail or fallback, errors)


class InventoryApiClient:
    def __init__(
        self,
        session: ApiSession,
        http: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.session = session
        self.http = http or requests.Session()
        self.timeout = timeout

    def _send(self, method: str, path: str, **kwargs):
        headers = dict(kwargs.pop("headers", None) or {})
        headers.update(self.session.headers())

        response = self.http.request(
            method,
            self.session.url(f"/api{path}"),
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )

        if response.status_code == 401:
            logger.warning(f"{method} {path} returned 401, clearing session")
            self.session.clear()
        if not 200 <= response.status_code < 300:
            raise ApiError.from_response(response)
        return response

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self._send(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ==================== AUTH ====================

    def login(self, username: str, password: str) -> Dict[str, Any]:
        data = self._request("POST", "/login", json={"username": username, "password": password})
        self.session.store(data.get("token") or data.get("access_token"), data.get("user"))
        return data

    def logout(self) -> None:
        try:
            if self.session.is_authenticated:
                self._request("POST", "/logout")
        finally:
            self.session.clear()

    def me(self) -> Dict[str, Any]:
        return self._request("GET", "/me")

    # ==================== USERS & SUPERVISORS ====================

    def get_users(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/users")

    def get_approvers(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/users/approvers")

    def create_user(self, first_name: str, last_name: str, email: str, role: str) -> Dict[str, Any]:
        return self._request(
            "POST", "/users",
            json={"first_name": first_name, "last_name": last_name, "email": email, "role": role},
        )

    def update_user(self, user_id: str, **fields) -> Dict[str, Any]:
        return self._request("PUT", f"/users/{user_id}", json=fields)

    def update_user_role(self, user_id: str, role: str) -> Dict[str, Any]:
        return self._request("PUT", f"/users/{user_id}/role", json={"role": role})

    def reset_password(self, user_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/users/{user_id}/reset-password")

    def delete_user(self, user_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/users/{user_id}")

    def get_supervisors(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/supervisors")

    def create_supervisor(self, name: str, email: str) -> Dict[str, Any]:
        return self._request("POST", "/supervisors", json={"name": name, "email": email})

    def update_supervisor(self, supervisor_id: str, **fields) -> Dict[str, Any]:
        return self._request("PUT", f"/supervisors/{supervisor_id}", json=fields)

    def delete_supervisor(self, supervisor_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/supervisors/{supervisor_id}")

    # ==================== ITEMS & CATEGORIES ====================

    def get_items(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/items")

    def get_item(self, item_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/items/{item_id}")

    def create_item(self, name: str, quantity: int = 0, **fields) -> Dict[str, Any]:
        return self._request("POST", "/items", json={"name": name, "quantity": quantity, **fields})

    def update_item(self, item_id: str, update_reason: str, **fields) -> Dict[str, Any]:
        return self._request("PUT", f"/items/{item_id}", json={"update_reason": update_reason, **fields})

    def delete_item(self, item_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/items/{item_id}")

    def upload_receipt(self, item_id: str, path: Path, content_type: str = "image/png") -> Dict[str, Any]:
        path = Path(path)
        with path.open("rb") as handle:
            return self._request(
                "POST", f"/items/{item_id}/receipt",
                files={"file": (path.name, handle, content_type)},
            )

    def get_categories(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/categories")

    def create_category(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/categories", json={"name": name, "description": description})

    def update_category(self, category_id: str, **fields) -> Dict[str, Any]:
        return self._request("PUT", f"/categories/{category_id}", json=fields)

    def delete_category(self, category_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/categories/{category_id}")

    # ==================== STOCK ====================

    def get_items_out(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/items-out")

    def issue_item(self, person_name: str, item_id: str, quantity: int, available: Optional[int] = None) -> Dict[str, Any]:
        validate_issue(person_name, item_id, quantity, available)
        return self._request(
            "POST", "/items-out",
            json={"person_name": person_name, "item_id": item_id, "quantity": quantity},
        )

    def get_low_stock(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/low-stock")

    def send_low_stock_alert(self) -> Dict[str, Any]:
        return self._request("POST", "/send-low-stock-alert")

    def get_dashboard_stats(self) -> Dict[str, Any]:
        return self._request("GET", "/dashboard-stats")

    def export_inventory(self) -> bytes:
        """Inventory workbook (.xlsx) as raw bytes"""
        return self._send("GET", "/reports/inventory/export").content

    def export_items_out(self) -> bytes:
        return self._send("GET", "/reports/items-out/export").content

    # ==================== REQUESTS ====================

    def get_requests(self, status: Optional[str] = None, type: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {key: value for key, value in (("status", status), ("type", type)) if value}
        return self._request("GET", "/requests", params=params or None)

    def get_request(self, request_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/requests/{request_id}")

    def create_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        validate_new_request(payload)
        return self._request("POST", "/requests", json=payload)

    def update_request(self, request_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/requests/{request_id}", json=payload)

    def approve_request(self, request_id: str, approver_name: str, signature: Optional[str] = None) -> Dict[str, Any]:
        validate_approve(approver_name)
        return self._request(
            "POST", f"/requests/{request_id}/approve",
            json={"approver_name": approver_name, "signature": signature},
        )

    def reject_request(self, request_id: str, reason: str, rejector_name: str) -> Dict[str, Any]:
        validate_reject(reason, rejector_name)
        return self._request(
            "POST", f"/requests/{request_id}/reject",
            json={"reason": reason, "rejector_name": rejector_name},
        )

    def finalize_request(
        self,
        request_id: str,
        items: Sequence[Dict[str, Any]],
        released_by: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Finalize an approved request; ``details`` (from get_request) enables the stock checks"""
        if details is not None:
            validate_finalize(items, details.get("items", []), released_by, details.get("type", "material_request"))
        return self._request(
            "POST", f"/requests/{request_id}/finalize",
            json={"items": list(items), "released_by": released_by},
        )

    # ==================== SETTINGS & AUDIT ====================

    def get_settings(self) -> Dict[str, Any]:
        return self._request("GET", "/settings")

    def update_setting(self, key: str, value: str) -> Dict[str, Any]:
        return self._request("PUT", f"/settings/{key}", json={"value": value})

    def get_audit_logs(self, **filters) -> List[Dict[str, Any]]:
        return self._request("GET", "/audit-logs", params=filters or None)
