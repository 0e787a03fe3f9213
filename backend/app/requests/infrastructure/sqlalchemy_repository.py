import json
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import delete, desc, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.requests.application.ports import StockRequestRepository
from app.requests.domain.errors import DuplicateRequestNumber
from app.requests.domain.lifecycle import FinalizePlan
from app.requests.domain.models import (
    ApprovalRecord,
    AuditEntry,
    RejectionRecord,
    RequestDetails,
    RequestFilters,
    RequestLine,
    RequestStatus,
    RequestType,
    StockRequest,
    StockSnapshot,
    UserSummary,
)
from database import (
    Approval,
    AuditLog,
    Item,
    Rejection,
    StockRequest as StockRequestModel,
    StockRequestItem as StockRequestItemModel,
    User,
)

REQUEST_NUMBER_PREFIXES = {
    RequestType.MATERIAL_REQUEST.value: "REQ-",
    RequestType.ITEM_RETURN.value: "RET-",
}


class SqlAlchemyStockRequestRepository(StockRequestRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._locked: Dict[str, Item] = {}

    async def get_user(self, user_id: str) -> Optional[UserSummary]:
        result = await self._session.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            return None
        return UserSummary(id=user.id, name=user.full_name, role=user.role, username=user.username)

    async def resolve_item(
        self, item_id: Optional[str], item_name: Optional[str]
    ) -> Optional[StockSnapshot]:
        if item_id:
            query = select(Item).where(Item.id == item_id)
        else:
            query = (
                select(Item)
                .where(func.lower(Item.name) == (item_name or "").strip().lower())
                .order_by(Item.created_at)
                .limit(1)
            )
        result = await self._session.execute(query)
        item = result.scalars().first()
        if item is None:
            return None
        return StockSnapshot(id=item.id, name=item.name, quantity=item.quantity)

    async def get_next_request_number(self, request_type: str) -> tuple[str, int]:
        result = await self._session.execute(
            select(func.max(StockRequestModel.request_seq)).where(
                StockRequestModel.type == request_type
            )
        )
        max_seq = result.scalar() or 0
        next_seq = max_seq + 1
        prefix = REQUEST_NUMBER_PREFIXES.get(request_type, "REQ-")
        return f"{prefix}{next_seq:05d}", next_seq

    async def add_request(self, request: StockRequest) -> None:
        self._session.add(
            StockRequestModel(
                id=request.id,
                request_number=request.request_number,
                request_seq=request.request_seq,
                type=request.type,
                status=request.status,
                created_by=request.created_by,
                created_by_id=request.created_by_id,
                team_leader_name=request.team_leader_name,
                team_leader_phone=request.team_leader_phone,
                project_name=request.project_name,
                isp_name=request.isp_name,
                location=request.location,
                deployment_type=request.deployment_type,
                reason=request.reason,
                selected_approver_id=request.selected_approver_id,
                selected_approver_name=request.selected_approver_name,
                release_by=request.release_by,
                received_by=request.received_by,
                created_at=request.created_at,
                updated_at=request.updated_at,
            )
        )
        self._add_lines(request)

    async def replace_request(self, request: StockRequest) -> None:
        model = await self._session.get(StockRequestModel, request.id)
        if model is None:
            return

        for name in (
            "created_by", "team_leader_name", "team_leader_phone", "project_name",
            "isp_name", "location", "deployment_type", "reason",
            "selected_approver_id", "selected_approver_name", "release_by",
            "received_by", "updated_at",
        ):
            setattr(model, name, getattr(request, name))

        # Lines loaded from the database keep their ids; only fresh lines replace them
        if all(line.id for line in request.items):
            return
        await self._session.execute(
            delete(StockRequestItemModel).where(StockRequestItemModel.request_id == request.id)
        )
        self._add_lines(request)

    def _add_lines(self, request: StockRequest) -> None:
        for line in request.items:
            self._session.add(
                StockRequestItemModel(
                    id=line.id or str(uuid.uuid4()),
                    request_id=request.id,
                    item_id=line.item_id,
                    item_name=line.item_name,
                    quantity_requested=line.quantity_requested,
                    quantity_received=line.quantity_received,
                    quantity_returned=line.quantity_returned,
                    item_index=line.item_index,
                    created_at=request.updated_at,
                )
            )

    async def get_request(self, request_id: str, for_update: bool = False) -> Optional[StockRequest]:
        query = select(StockRequestModel).where(StockRequestModel.id == request_id)
        if for_update:
            query = query.with_for_update()
        result = await self._session.execute(query)
        model = result.scalar_one_or_none()
        if model is None:
            return None

        lines = await self._load_lines(request_id)
        rejections = await self._load_rejections([request_id])
        return self._to_domain(
            model,
            lines=lines,
            reject_reason=rejections[0].reason if rejections else None,
        )

    async def get_request_details(self, request_id: str) -> Optional[RequestDetails]:
        request = await self.get_request(request_id)
        if request is None:
            return None

        approvals_result = await self._session.execute(
            select(Approval)
            .where(Approval.request_id == request_id)
            .order_by(desc(Approval.created_at))
        )
        approvals = [
            ApprovalRecord(
                id=approval.id,
                request_id=approval.request_id,
                approver_name=approval.approver_name,
                approver_id=approval.approver_id,
                signature=approval.signature,
                created_at=approval.created_at,
            )
            for approval in approvals_result.scalars().all()
        ]
        rejections = await self._load_rejections([request_id])
        return RequestDetails(request=request, approvals=approvals, rejections=rejections)

    async def list_requests(self, filters: RequestFilters) -> Sequence[StockRequest]:
        query = select(StockRequestModel, User.first_name, User.last_name).outerjoin(
            User, User.id == StockRequestModel.selected_approver_id
        )

        if filters.pending_approver_id:
            query = query.where(
                or_(
                    StockRequestModel.status != RequestStatus.PENDING.value,
                    StockRequestModel.selected_approver_id == filters.pending_approver_id,
                )
            )
        if filters.status:
            query = query.where(StockRequestModel.status == filters.status)
        if filters.type:
            query = query.where(StockRequestModel.type == filters.type)

        query = query.order_by(desc(StockRequestModel.created_at))
        query = query.limit(filters.limit).offset(filters.offset)

        result = await self._session.execute(query)
        rows = result.all()

        request_ids = [row[0].id for row in rows]
        counts: Dict[str, int] = {}
        reasons: Dict[str, str] = {}
        if request_ids:
            count_result = await self._session.execute(
                select(StockRequestItemModel.request_id, func.count(StockRequestItemModel.id))
                .where(StockRequestItemModel.request_id.in_(request_ids))
                .group_by(StockRequestItemModel.request_id)
            )
            counts = {request_id: count for request_id, count in count_result.all()}
            # newest first, so keep the first reason seen per request
            for rejection in await self._load_rejections(request_ids):
                reasons.setdefault(rejection.request_id, rejection.reason)

        requests = []
        for model, first_name, last_name in rows:
            approver_name = model.selected_approver_name
            if first_name is not None:
                approver_name = f"{first_name} {last_name}".strip()
            requests.append(
                self._to_domain(
                    model,
                    item_count=counts.get(model.id, 0),
                    reject_reason=reasons.get(model.id),
                    approver_name=approver_name,
                )
            )
        return requests

    async def add_approval(self, approval: ApprovalRecord) -> None:
        self._session.add(
            Approval(
                id=approval.id,
                request_id=approval.request_id,
                approver_name=approval.approver_name,
                approver_id=approval.approver_id,
                signature=approval.signature,
                created_at=approval.created_at,
            )
        )

    async def add_rejection(self, rejection: RejectionRecord) -> None:
        self._session.add(
            Rejection(
                id=rejection.id,
                request_id=rejection.request_id,
                rejector_name=rejection.rejector_name,
                rejector_id=rejection.rejector_id,
                reason=rejection.reason,
                created_at=rejection.created_at,
            )
        )

    async def lock_stock(self, item_ids: Iterable[str]) -> Mapping[str, StockSnapshot]:
        ids = list(item_ids)
        if not ids:
            return {}
        # Fixed lock order avoids deadlocks between concurrent finalizes
        result = await self._session.execute(
            select(Item).where(Item.id.in_(ids)).order_by(Item.id).with_for_update()
        )
        snapshots = {}
        for item in result.scalars().all():
            self._locked[item.id] = item
            snapshots[item.id] = StockSnapshot(id=item.id, name=item.name, quantity=item.quantity)
        return snapshots

    async def apply_finalize(self, request_id: str, plan: FinalizePlan) -> None:
        now = datetime.utcnow()

        for item_id, delta in plan.stock_adjustments.items():
            item = self._locked.get(item_id) or await self._session.get(Item, item_id)
            item.quantity = item.quantity + delta
            item.updated_at = now

        if not plan.line_updates:
            return
        lines_result = await self._session.execute(
            select(StockRequestItemModel).where(StockRequestItemModel.request_id == request_id)
        )
        updates = {update.item_id: update for update in plan.line_updates}
        for line in lines_result.scalars().all():
            update = updates.get(line.item_id)
            if update is None:
                continue
            line.quantity_received = update.quantity_received
            line.quantity_returned = update.quantity_returned
            line.updated_at = now

    async def set_status(
        self,
        request_id: str,
        status: str,
        updated_at,
        release_by: Optional[str] = None,
    ) -> None:
        model = await self._session.get(StockRequestModel, request_id)
        if model is None:
            return
        model.status = status
        model.updated_at = updated_at
        if release_by is not None:
            model.release_by = release_by

    async def add_audit_entry(self, entry: AuditEntry) -> None:
        self._session.add(
            AuditLog(
                id=entry.id,
                action=entry.action,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                user_id=entry.user_id,
                user_name=entry.user_name,
                user_role=entry.user_role,
                ip_address=entry.ip_address,
                details=json.dumps(entry.details, default=str),
                timestamp=entry.timestamp,
            )
        )

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except IntegrityError as exc:
            if "request_seq" in str(exc.orig):
                raise DuplicateRequestNumber("Request number is already taken") from exc
            raise
        finally:
            self._locked.clear()

    async def rollback(self) -> None:
        await self._session.rollback()
        self._locked.clear()

    async def _load_lines(self, request_id: str) -> List[RequestLine]:
        result = await self._session.execute(
            select(StockRequestItemModel, Item.name, Item.quantity)
            .outerjoin(Item, Item.id == StockRequestItemModel.item_id)
            .where(StockRequestItemModel.request_id == request_id)
            .order_by(StockRequestItemModel.item_index)
        )
        return [
            RequestLine(
                id=line.id,
                item_id=line.item_id,
                item_name=item_name or line.item_name,
                quantity_requested=line.quantity_requested,
                quantity_received=line.quantity_received,
                quantity_returned=line.quantity_returned,
                item_index=line.item_index,
                current_stock=current_stock,
            )
            for line, item_name, current_stock in result.all()
        ]

    async def _load_rejections(self, request_ids: List[str]) -> List[RejectionRecord]:
        result = await self._session.execute(
            select(Rejection)
            .where(Rejection.request_id.in_(request_ids))
            .order_by(desc(Rejection.created_at))
        )
        return [
            RejectionRecord(
                id=rejection.id,
                request_id=rejection.request_id,
                rejector_name=rejection.rejector_name,
                rejector_id=rejection.rejector_id,
                reason=rejection.reason,
                created_at=rejection.created_at,
            )
            for rejection in result.scalars().all()
        ]

    @staticmethod
    def _to_domain(
        model: StockRequestModel,
        lines: Optional[List[RequestLine]] = None,
        item_count: Optional[int] = None,
        reject_reason: Optional[str] = None,
        approver_name: Optional[str] = None,
    ) -> StockRequest:
        lines = lines or []
        return StockRequest(
            id=model.id,
            request_number=model.request_number,
            request_seq=model.request_seq,
            type=model.type,
            status=model.status,
            created_by=model.created_by,
            created_by_id=model.created_by_id,
            team_leader_name=model.team_leader_name,
            team_leader_phone=model.team_leader_phone,
            project_name=model.project_name,
            isp_name=model.isp_name,
            location=model.location,
            deployment_type=model.deployment_type,
            reason=model.reason,
            selected_approver_id=model.selected_approver_id,
            selected_approver_name=approver_name or model.selected_approver_name,
            release_by=model.release_by,
            received_by=model.received_by,
            reject_reason=reject_reason,
            item_count=item_count if item_count is not None else len(lines),
            created_at=model.created_at,
            updated_at=model.updated_at or model.created_at,
            items=lines,
        )
