"""
Requests Routes - material requests and item returns
Thin HTTP layer over the app.requests use cases
"""
from fastapi import APIRouter, HTTPException, Depends, Request, BackgroundTasks
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import uuid
import logging

from app.inventory.low_stock import is_low
from app.requests.application.use_cases import (
    ApproveRequestCommand,
    ApproveRequestUseCase,
    CreateStockRequestCommand,
    CreateStockRequestUseCase,
    FinalizeRequestCommand,
    FinalizeRequestUseCase,
    GetRequestDetailsUseCase,
    ListStockRequestsQuery,
    ListStockRequestsUseCase,
    RejectRequestCommand,
    RejectRequestUseCase,
    RequestLineInput,
    RequestMetadata,
    UpdateStockRequestCommand,
    UpdateStockRequestUseCase,
)
from app.requests.domain.errors import (
    DomainError,
    DuplicateRequestNumber,
    FinalizeValidationError,
    NotFound,
    PermissionDenied,
)
from app.requests.domain.lifecycle import FinalizeLineInput
from app.requests.domain.models import RequestType, UserSummary
from app.requests.infrastructure.sqlalchemy_repository import SqlAlchemyStockRequestRepository
from app.requests.presentation.response_mapper import (
    request_details_to_response,
    stock_request_to_response,
)
from database import get_postgres_session, User, Item
from routes.auth_routes import get_current_user
from services.audit_service import get_client_ip
from services.stock_alerts import schedule_low_stock_alert

logger = logging.getLogger(__name__)

requests_router = APIRouter(prefix="/api", tags=["Requests"])


# ==================== PYDANTIC MODELS ====================

class RequestItemIn(BaseModel):
    quantity: int
    item_id: Optional[str] = None
    item_name: Optional[str] = None


class RequestFields(BaseModel):
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


class RequestCreate(RequestFields):
    items: List[RequestItemIn]
    selected_approver_id: str
    type: str = RequestType.MATERIAL_REQUEST.value


class RequestUpdate(RequestFields):
    items: Optional[List[RequestItemIn]] = None
    selected_approver_id: Optional[str] = None


class ApproveData(BaseModel):
    approver_name: str
    signature: Optional[str] = None


class RejectData(BaseModel):
    reason: str
    rejector_name: str


class FinalizeItemIn(BaseModel):
    item_id: str
    quantity_received: Optional[int] = None
    quantity_returned: Optional[int] = None


class FinalizeData(BaseModel):
    items: List[FinalizeItemIn]
    released_by: str


# ==================== HELPER FUNCTIONS ====================

def to_user_summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        name=user.full_name,
        role=user.role,
        username=user.username,
    )


def to_http_error(exc: DomainError) -> HTTPException:
    if isinstance(exc, PermissionDenied):
        return HTTPException(status_code=403, detail=exc.message)
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, DuplicateRequestNumber):
        return HTTPException(status_code=409, detail=exc.message)
    if isinstance(exc, FinalizeValidationError):
        return HTTPException(status_code=400, detail={"message": exc.message, "errors": exc.errors})
    return HTTPException(status_code=400, detail=exc.message)


def to_line_inputs(items: Optional[List[RequestItemIn]]):
    if items is None:
        return None
    return [
        RequestLineInput(quantity=item.quantity, item_id=item.item_id, item_name=item.item_name)
        for item in items
    ]


def to_metadata(data: RequestFields) -> RequestMetadata:
    return RequestMetadata(**data.model_dump(include=set(RequestFields.model_fields)))


def use_case_dependencies(session: AsyncSession) -> dict:
    return {
        "repository": SqlAlchemyStockRequestRepository(session),
        "id_generator": lambda: str(uuid.uuid4()),
        "clock": datetime.utcnow,
    }


# ==================== REQUESTS ROUTES ====================

@requests_router.post("/requests", status_code=201)
async def create_request(
    request_data: RequestCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create a material request or an item return - any authenticated user"""
    use_case = CreateStockRequestUseCase(**use_case_dependencies(session))
    command = CreateStockRequestCommand(
        items=to_line_inputs(request_data.items),
        selected_approver_id=request_data.selected_approver_id,
        type=request_data.type,
        metadata=to_metadata(request_data),
    )

    try:
        created = await use_case.execute(command, to_user_summary(current_user), get_client_ip(request))
    except DomainError as exc:
        raise to_http_error(exc)

    logger.info(f"Request {created.request_number} created by {current_user.username}")
    return stock_request_to_response(created)


@requests_router.get("/requests")
async def get_requests(
    status: Optional[str] = None,
    type: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """List requests - approvers only see pending requests addressed to them"""
    use_case = ListStockRequestsUseCase(SqlAlchemyStockRequestRepository(session))
    query = ListStockRequestsQuery(status=status, type=type, limit=limit, offset=offset)
    requests = await use_case.execute(query, to_user_summary(current_user))
    return [stock_request_to_response(req) for req in requests]


@requests_router.get("/requests/{request_id}")
async def get_request_details(
    request_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Request with line items, live stock, approvals and rejections"""
    use_case = GetRequestDetailsUseCase(SqlAlchemyStockRequestRepository(session))
    try:
        details = await use_case.execute(request_id)
    except DomainError as exc:
        raise to_http_error(exc)
    return request_details_to_response(details)


@requests_router.put("/requests/{request_id}")
async def update_request(
    request_id: str,
    request_data: RequestUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Edit a pending request"""
    use_case = UpdateStockRequestUseCase(**use_case_dependencies(session))
    command = UpdateStockRequestCommand(
        request_id=request_id,
        metadata=to_metadata(request_data),
        items=to_line_inputs(request_data.items),
        selected_approver_id=request_data.selected_approver_id,
    )

    try:
        updated = await use_case.execute(command, to_user_summary(current_user), get_client_ip(request))
    except DomainError as exc:
        raise to_http_error(exc)

    return stock_request_to_response(updated)


@requests_router.post("/requests/{request_id}/approve")
async def approve_request(
    request_id: str,
    approve_data: ApproveData,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    use_case = ApproveRequestUseCase(**use_case_dependencies(session))
    command = ApproveRequestCommand(
        request_id=request_id,
        approver_name=approve_data.approver_name,
        signature=approve_data.signature,
    )

    try:
        approved = await use_case.execute(command, to_user_summary(current_user), get_client_ip(request))
    except DomainError as exc:
        raise to_http_error(exc)

    return {"message": "Request approved", "request": stock_request_to_response(approved)}


@requests_router.post("/requests/{request_id}/reject")
async def reject_request(
    request_id: str,
    reject_data: RejectData,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    use_case = RejectRequestUseCase(**use_case_dependencies(session))
    command = RejectRequestCommand(
        request_id=request_id,
        reason=reject_data.reason,
        rejector_name=reject_data.rejector_name,
    )

    try:
        rejected = await use_case.execute(command, to_user_summary(current_user), get_client_ip(request))
    except DomainError as exc:
        raise to_http_error(exc)

    return {"message": "Request rejected", "request": stock_request_to_response(rejected)}


@requests_router.post("/requests/{request_id}/finalize")
async def finalize_request(
    request_id: str,
    finalize_data: FinalizeData,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Release (or take back) stock for an approved request - issuer or superadmin"""
    use_case = FinalizeRequestUseCase(**use_case_dependencies(session))
    command = FinalizeRequestCommand(
        request_id=request_id,
        items=[
            FinalizeLineInput(
                item_id=item.item_id,
                quantity_received=item.quantity_received,
                quantity_returned=item.quantity_returned,
            )
            for item in finalize_data.items
        ],
        released_by=finalize_data.released_by,
    )

    try:
        finalized = await use_case.execute(command, to_user_summary(current_user), get_client_ip(request))
    except DomainError as exc:
        raise to_http_error(exc)

    if finalized.type == RequestType.MATERIAL_REQUEST.value:
        touched = [line.item_id for line in finalized.items if line.quantity_received]
        if touched:
            result = await session.execute(select(Item).where(Item.id.in_(touched)))
            if any(is_low(item.quantity, item.low_stock_threshold) for item in result.scalars().all()):
                await schedule_low_stock_alert(session, background_tasks)

    return {"message": "Request finalized", "request": stock_request_to_response(finalized)}
