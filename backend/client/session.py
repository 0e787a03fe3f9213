"""
Client-side auth state
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ApiSession:
    """Bearer token and user for one API connection; cleared on HTTP 401."""

    base_url: str
    token: Optional[str] = None
    user: Optional[Dict[str, Any]] = field(default=None)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def role(self) -> Optional[str]:
        return self.user.get("role") if self.user else None

    def store(self, token: str, user: Optional[Dict[str, Any]]) -> None:
        self.token = token
        self.user = user

    def clear(self) -> None:
        self.token = None
        self.user = None

    def headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
