from typing import Iterable, Mapping, Optional, Protocol, Sequence

from app.requests.domain.lifecycle import FinalizePlan
from app.requests.domain.models import (
    ApprovalRecord,
    AuditEntry,
    RejectionRecord,
    RequestDetails,
    RequestFilters,
    StockRequest,
    StockSnapshot,
    UserSummary,
)


class StockRequestRepository(Protocol):
    async def get_user(self, user_id: str) -> Optional[UserSummary]:
        ...

    async def resolve_item(
        self, item_id: Optional[str], item_name: Optional[str]
    ) -> Optional[StockSnapshot]:
        ...

    async def get_next_request_number(self, request_type: str) -> tuple[str, int]:
        ...

    async def add_request(self, request: StockRequest) -> None:
        ...

    async def replace_request(self, request: StockRequest) -> None:
        ...

    async def get_request(self, request_id: str, for_update: bool = False) -> Optional[StockRequest]:
        ...

    async def get_request_details(self, request_id: str) -> Optional[RequestDetails]:
        ...

    async def list_requests(self, filters: RequestFilters) -> Sequence[StockRequest]:
        ...

    async def add_approval(self, approval: ApprovalRecord) -> None:
        ...

    async def add_rejection(self, rejection: RejectionRecord) -> None:
        ...

    async def lock_stock(self, item_ids: Iterable[str]) -> Mapping[str, StockSnapshot]:
        ...

    async def apply_finalize(self, request_id: str, plan: FinalizePlan) -> None:
        ...

    async def set_status(
        self,
        request_id: str,
        status: str,
        updated_at,
        release_by: Optional[str] = None,
    ) -> None:
        ...

    async def add_audit_entry(self, entry: AuditEntry) -> None:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...
