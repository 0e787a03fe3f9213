import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Sequence


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


class RequestType(str, enum.Enum):
    MATERIAL_REQUEST = "material_request"
    ITEM_RETURN = "item_return"


MANAGER_ROLES = ("approver", "issuer", "superadmin")
FINALIZER_ROLES = ("issuer", "superadmin")


@dataclass(frozen=True)
class UserSummary:
    id: str
    name: str
    role: str
    username: Optional[str] = None


@dataclass(frozen=True)
class StockSnapshot:
    """Live stock of one item as read inside the current transaction."""
    id: str
    name: str
    quantity: int


@dataclass(frozen=True)
class RequestLine:
    item_id: str
    item_name: str
    quantity_requested: int
    item_index: int = 0
    quantity_received: Optional[int] = None
    quantity_returned: Optional[int] = None
    current_stock: Optional[int] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class StockRequest:
    id: str
    type: str
    status: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    request_number: Optional[str] = None
    request_seq: Optional[int] = None
    created_by_id: Optional[str] = None
    team_leader_name: Optional[str] = None
    team_leader_phone: Optional[str] = None
    project_name: Optional[str] = None
    isp_name: Optional[str] = None
    location: Optional[str] = None
    deployment_type: Optional[str] = None
    reason: Optional[str] = None
    selected_approver_id: Optional[str] = None
    selected_approver_name: Optional[str] = None
    release_by: Optional[str] = None
    received_by: Optional[str] = None
    reject_reason: Optional[str] = None
    item_count: Optional[int] = None
    items: Sequence[RequestLine] = field(default_factory=list)


@dataclass(frozen=True)
class ApprovalRecord:
    id: str
    request_id: str
    approver_name: str
    created_at: datetime
    approver_id: Optional[str] = None
    signature: Optional[str] = None


@dataclass(frozen=True)
class RejectionRecord:
    id: str
    request_id: str
    rejector_name: str
    reason: str
    created_at: datetime
    rejector_id: Optional[str] = None


@dataclass(frozen=True)
class RequestDetails:
    request: StockRequest
    approvals: Sequence[ApprovalRecord] = field(default_factory=list)
    rejections: Sequence[RejectionRecord] = field(default_factory=list)


@dataclass(frozen=True)
class AuditEntry:
    id: str
    action: str
    entity_type: Optional[str]
    entity_id: Optional[str]
    user_id: Optional[str]
    user_name: Optional[str]
    user_role: Optional[str]
    ip_address: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RequestFilters:
    # Approvers only see pending requests addressed to them
    pending_approver_id: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    limit: int = 100
    offset: int = 0
