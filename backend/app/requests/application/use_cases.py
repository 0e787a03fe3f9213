from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from app.requests.application.ports import StockRequestRepository
from app.requests.domain.errors import (
    DuplicateRequestNumber,
    InvalidRequest,
    NotFound,
    PermissionDenied,
)
from app.requests.domain.lifecycle import (
    FinalizeLineInput,
    ensure_transition,
    is_editable,
    plan_finalize,
)
from app.requests.domain.models import (
    FINALIZER_ROLES,
    MANAGER_ROLES,
    ApprovalRecord,
    AuditEntry,
    RejectionRecord,
    RequestDetails,
    RequestFilters,
    RequestLine,
    RequestStatus,
    RequestType,
    StockRequest,
    UserSummary,
)


@dataclass(frozen=True)
class RequestLineInput:
    quantity: int
    item_id: Optional[str] = None
    item_name: Optional[str] = None


@dataclass(frozen=True)
class RequestMetadata:
    created_by: Optional[str] = None
    team_leader_name: Optional[str] = None
    team_leader_phone: Optional[str] = None
    project_name: Optional[str] = None
    isp_name: Optional[str] = None
    location: Optional[str] = None
    deployment_type: Optional[str] = None
    reason: Optional[str] = None
    release_by: Optional[str] = None
    received_by: Optional[str] = None


@dataclass(frozen=True)
class CreateStockRequestCommand:
    items: Sequence[RequestLineInput]
    selected_approver_id: str
    type: str = RequestType.MATERIAL_REQUEST.value
    metadata: RequestMetadata = field(default_factory=RequestMetadata)


@dataclass(frozen=True)
class UpdateStockRequestCommand:
    request_id: str
    metadata: RequestMetadata = field(default_factory=RequestMetadata)
    items: Optional[Sequence[RequestLineInput]] = None
    selected_approver_id: Optional[str] = None


@dataclass(frozen=True)
class ListStockRequestsQuery:
    status: Optional[str] = None
    type: Optional[str] = None
    limit: int = 100
    offset: int = 0


@dataclass(frozen=True)
class ApproveRequestCommand:
    request_id: str
    approver_name: str
    signature: Optional[str] = None


@dataclass(frozen=True)
class RejectRequestCommand:
    request_id: str
    reason: str
    rejector_name: str


@dataclass(frozen=True)
class FinalizeRequestCommand:
    request_id: str
    items: Sequence[FinalizeLineInput]
    released_by: str


IdGenerator = Callable[[], str]
Clock = Callable[[], datetime]

REQUEST_NUMBER_ATTEMPTS = 3


class _RequestUseCase:
    def __init__(
        self,
        repository: StockRequestRepository,
        id_generator: IdGenerator,
        clock: Clock,
    ) -> None:
        self._repository = repository
        self._id_generator = id_generator
        self._clock = clock

    async def _get_request(self, request_id: str, for_update: bool = False) -> StockRequest:
        request = await self._repository.get_request(request_id, for_update=for_update)
        if request is None:
            raise NotFound("Request not found")
        return request

    async def _record(
        self,
        action: str,
        request_id: str,
        current_user: UserSummary,
        ip_address: str,
        timestamp: datetime,
        details: Dict[str, Any],
    ) -> None:
        await self._repository.add_audit_entry(
            AuditEntry(
                id=self._id_generator(),
                action=action,
                entity_type="request",
                entity_id=request_id,
                user_id=current_user.id,
                user_name=current_user.name,
                user_role=current_user.role,
                ip_address=ip_address,
                timestamp=timestamp,
                details=details,
            )
        )

    async def _build_lines(self, items: Sequence[RequestLineInput]) -> List[RequestLine]:
        if not items:
            raise InvalidRequest("At least one item is required")

        lines: List[RequestLine] = []
        seen: set = set()
        for index, item in enumerate(items):
            if not item.item_id and not (item.item_name or "").strip():
                raise InvalidRequest("Each line needs an item")
            if item.quantity is None or item.quantity <= 0:
                raise InvalidRequest("Requested quantity must be greater than zero")

            snapshot = await self._repository.resolve_item(item.item_id, item.item_name)
            if snapshot is None:
                raise NotFound(f"Item '{item.item_name or item.item_id}' not found")
            if snapshot.id in seen:
                raise InvalidRequest(f"Item '{snapshot.name}' is listed more than once")
            seen.add(snapshot.id)

            lines.append(
                RequestLine(
                    item_id=snapshot.id,
                    item_name=snapshot.name,
                    quantity_requested=item.quantity,
                    item_index=index,
                )
            )
        return lines

    async def _resolve_approver(self, approver_id: Optional[str]) -> UserSummary:
        if not approver_id:
            raise InvalidRequest("An approver must be selected")
        approver = await self._repository.get_user(approver_id)
        if approver is None:
            raise NotFound("Selected approver not found")
        if approver.role not in MANAGER_ROLES:
            raise InvalidRequest("Selected user cannot approve requests")
        return approver


class CreateStockRequestUseCase(_RequestUseCase):
    async def execute(
        self,
        command: CreateStockRequestCommand,
        current_user: UserSummary,
        ip_address: str = "unknown",
    ) -> StockRequest:
        try:
            request_type = RequestType(command.type).value
        except ValueError:
            raise InvalidRequest(f"Unknown request type '{command.type}'")

        approver = await self._resolve_approver(command.selected_approver_id)
        lines = await self._build_lines(command.items)

        meta = command.metadata
        created_by = (meta.created_by or "").strip() or current_user.name
        request_id = self._id_generator()

        for attempt in range(1, REQUEST_NUMBER_ATTEMPTS + 1):
            request_number, request_seq = await self._repository.get_next_request_number(request_type)
            now = self._clock()
            request = StockRequest(
                id=request_id,
                request_number=request_number,
                request_seq=request_seq,
                type=request_type,
                status=RequestStatus.PENDING.value,
                created_by=created_by,
                created_by_id=current_user.id,
                team_leader_name=meta.team_leader_name or created_by,
                team_leader_phone=meta.team_leader_phone,
                project_name=meta.project_name,
                isp_name=meta.isp_name,
                location=meta.location,
                deployment_type=meta.deployment_type,
                reason=meta.reason,
                selected_approver_id=approver.id,
                selected_approver_name=approver.name,
                release_by=meta.release_by,
                received_by=meta.received_by,
                created_at=now,
                updated_at=now,
                item_count=len(lines),
                items=lines,
            )

            await self._repository.add_request(request)
            await self._record(
                "create_request",
                request_id,
                current_user,
                ip_address,
                now,
                {
                    "request_number": request_number,
                    "type": request_type,
                    "item_count": len(lines),
                    "selected_approver_id": approver.id,
                },
            )
            try:
                await self._repository.commit()
            except DuplicateRequestNumber:
                # Another create committed the same sequence number first
                await self._repository.rollback()
                if attempt == REQUEST_NUMBER_ATTEMPTS:
                    raise
                continue

            return request


class UpdateStockRequestUseCase(_RequestUseCase):
    async def execute(
        self,
        command: UpdateStockRequestCommand,
        current_user: UserSummary,
        ip_address: str = "unknown",
    ) -> StockRequest:
        request = await self._get_request(command.request_id, for_update=True)

        if current_user.id != request.created_by_id and current_user.role not in MANAGER_ROLES:
            raise PermissionDenied("Only the creator or a manager can edit this request")
        if (
            current_user.role == "approver"
            and current_user.id != request.created_by_id
            and request.selected_approver_id
            and request.selected_approver_id != current_user.id
        ):
            raise PermissionDenied("This request is assigned to another approver")
        if not is_editable(request.status):
            raise InvalidRequest(f"Only pending requests can be edited (status is '{request.status}')")

        meta = command.metadata
        changes = {
            name: value
            for name, value in vars(meta).items()
            if value is not None
        }

        if command.selected_approver_id and command.selected_approver_id != request.selected_approver_id:
            approver = await self._resolve_approver(command.selected_approver_id)
            changes["selected_approver_id"] = approver.id
            changes["selected_approver_name"] = approver.name

        lines = request.items
        if command.items is not None:
            lines = await self._build_lines(command.items)

        now = self._clock()
        updated = replace(request, **changes, items=lines, item_count=len(lines), updated_at=now)

        await self._repository.replace_request(updated)
        await self._record(
            "update_request",
            request.id,
            current_user,
            ip_address,
            now,
            {
                "fields": sorted(changes),
                "items_replaced": command.items is not None,
                "item_count": len(lines),
            },
        )
        await self._repository.commit()

        return updated


class ListStockRequestsUseCase:
    def __init__(
        self,
        repository: StockRequestRepository,
        max_limit: int = 500,
    ) -> None:
        self._repository = repository
        self._max_limit = max_limit

    async def execute(
        self,
        query: ListStockRequestsQuery,
        current_user: UserSummary,
    ) -> Sequence[StockRequest]:
        limit = max(1, min(query.limit, self._max_limit))
        offset = max(0, query.offset)

        filters = RequestFilters(
            pending_approver_id=current_user.id if current_user.role == "approver" else None,
            status=query.status,
            type=query.type,
            limit=limit,
            offset=offset,
        )
        return await self._repository.list_requests(filters)


class GetRequestDetailsUseCase:
    def __init__(self, repository: StockRequestRepository) -> None:
        self._repository = repository

    async def execute(self, request_id: str) -> RequestDetails:
        details = await self._repository.get_request_details(request_id)
        if details is None:
            raise NotFound("Request not found")
        return details


class ApproveRequestUseCase(_RequestUseCase):
    async def execute(
        self,
        command: ApproveRequestCommand,
        current_user: UserSummary,
        ip_address: str = "unknown",
    ) -> StockRequest:
        if current_user.role not in MANAGER_ROLES:
            raise PermissionDenied("Only approvers, issuers or superadmins can approve requests")

        approver_name = (command.approver_name or "").strip()
        if not approver_name:
            raise InvalidRequest("Approver name is required")

        request = await self._get_request(command.request_id, for_update=True)
        if (
            current_user.role == "approver"
            and request.selected_approver_id
            and request.selected_approver_id != current_user.id
        ):
            raise PermissionDenied("This request is assigned to another approver")

        ensure_transition(request.status, RequestStatus.APPROVED.value)

        now = self._clock()
        await self._repository.add_approval(
            ApprovalRecord(
                id=self._id_generator(),
                request_id=request.id,
                approver_name=approver_name,
                approver_id=current_user.id,
                signature=command.signature,
                created_at=now,
            )
        )
        await self._repository.set_status(request.id, RequestStatus.APPROVED.value, now)
        await self._record(
            "approve_request",
            request.id,
            current_user,
            ip_address,
            now,
            {"approver_name": approver_name, "signed": bool(command.signature)},
        )
        await self._repository.commit()

        return replace(request, status=RequestStatus.APPROVED.value, updated_at=now)


class RejectRequestUseCase(_RequestUseCase):
    async def execute(
        self,
        command: RejectRequestCommand,
        current_user: UserSummary,
        ip_address: str = "unknown",
    ) -> StockRequest:
        if current_user.role not in MANAGER_ROLES:
            raise PermissionDenied("Only approvers, issuers or superadmins can reject requests")

        reason = (command.reason or "").strip()
        rejector_name = (command.rejector_name or "").strip()
        if not reason or not rejector_name:
            raise InvalidRequest("Reason and rejector name are required")

        request = await self._get_request(command.request_id, for_update=True)
        ensure_transition(request.status, RequestStatus.REJECTED.value)

        now = self._clock()
        await self._repository.add_rejection(
            RejectionRecord(
                id=self._id_generator(),
                request_id=request.id,
                rejector_name=rejector_name,
                rejector_id=current_user.id,
                reason=reason,
                created_at=now,
            )
        )
        await self._repository.set_status(request.id, RequestStatus.REJECTED.value, now)
        await self._record(
            "reject_request",
            request.id,
            current_user,
            ip_address,
            now,
            {"reason": reason, "rejector_name": rejector_name, "previous_status": request.status},
        )
        await self._repository.commit()

        return replace(
            request,
            status=RequestStatus.REJECTED.value,
            reject_reason=reason,
            updated_at=now,
        )


class FinalizeRequestUseCase(_RequestUseCase):
    async def execute(
        self,
        command: FinalizeRequestCommand,
        current_user: UserSummary,
        ip_address: str = "unknown",
    ) -> StockRequest:
        if current_user.role not in FINALIZER_ROLES:
            raise PermissionDenied("Only issuers or superadmins can finalize requests")

        released_by = (command.released_by or "").strip()
        if not released_by:
            raise InvalidRequest("Released by is required")
        if not command.items:
            raise InvalidRequest("At least one item is required")

        try:
            request = await self._get_request(command.request_id, for_update=True)
            ensure_transition(request.status, RequestStatus.COMPLETED.value)

            item_ids = {line.item_id for line in request.items}
            item_ids.update(line.item_id for line in command.items)
            stock = await self._repository.lock_stock(sorted(item_ids))

            plan = plan_finalize(request, command.items, stock)

            now = self._clock()
            await self._repository.apply_finalize(request.id, plan)
            await self._repository.set_status(
                request.id, RequestStatus.COMPLETED.value, now, release_by=released_by
            )
            await self._record(
                "finalize_request",
                request.id,
                current_user,
                ip_address,
                now,
                {
                    "released_by": released_by,
                    "type": request.type,
                    "stock_changes": dict(plan.stock_adjustments),
                },
            )
            await self._repository.commit()
        except Exception:
            # Nothing from this finalize may persist
            await self._repository.rollback()
            raise

        received = {update.item_id: update for update in plan.line_updates}
        lines = [
            replace(
                line,
                quantity_received=received[line.item_id].quantity_received,
                quantity_returned=received[line.item_id].quantity_returned,
                current_stock=plan.resulting_stock.get(line.item_id, stock[line.item_id].quantity),
            )
            if line.item_id in received else line
            for line in request.items
        ]
        return replace(
            request,
            status=RequestStatus.COMPLETED.value,
            release_by=released_by,
            items=lines,
            updated_at=now,
        )
