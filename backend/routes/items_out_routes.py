"""
Items Out Routes - direct stock issuance outside the request workflow
"""
from fastapi import APIRouter, HTTPException, Depends, Request, BackgroundTasks
from pydantic import BaseModel
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc
import uuid

from app.inventory.low_stock import is_low
from database import get_postgres_session, User, Item, ItemOut, Category
from routes.auth_routes import get_current_user
from services.audit_service import get_client_ip, log_audit
from services.stock_alerts import schedule_low_stock_alert

items_out_router = APIRouter(prefix="/api", tags=["Items Out"])


class IssueItemRequest(BaseModel):
    person_name: str
    item_id: str
    quantity: int


def item_out_to_response(record: ItemOut) -> dict:
    return {
        "id": record.id,
        "person_name": record.person_name,
        "item_id": record.item_id,
        "item_name": record.item_name,
        "category_name": record.category_name,
        "quantity": record.quantity,
        "issued_by": record.issued_by,
        "date_time": record.date_time.isoformat() if record.date_time else None,
    }


@items_out_router.get("/items-out")
async def get_items_out(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    result = await session.execute(select(ItemOut).order_by(desc(ItemOut.date_time)))
    return [item_out_to_response(record) for record in result.scalars().all()]


@items_out_router.post("/items-out", status_code=201)
async def issue_item(
    issue_data: IssueItemRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Issue stock to a person; the item row is locked while stock is checked"""
    person_name = issue_data.person_name.strip()
    if not person_name or not issue_data.item_id:
        raise HTTPException(status_code=400, detail="Person name, item and quantity are required")
    if issue_data.quantity <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be positive")

    result = await session.execute(
        select(Item).where(Item.id == issue_data.item_id).with_for_update()
    )
    item = result.scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    if issue_data.quantity > item.quantity:
        await session.rollback()
        raise HTTPException(
            status_code=400,
            detail=f"Insufficient stock. Only {item.quantity} units available. Requested: {issue_data.quantity}"
        )

    category = await session.get(Category, item.category_id) if item.category_id else None
    now = datetime.utcnow()
    record = ItemOut(
        id=str(uuid.uuid4()),
        person_name=person_name,
        item_id=item.id,
        item_name=item.name,
        category_name=category.name if category else None,
        quantity=issue_data.quantity,
        issued_by=current_user.id,
        date_time=now,
    )
    session.add(record)
    item.quantity = item.quantity - issue_data.quantity
    item.updated_at = now

    log_audit(
        session, "issue_item", current_user, get_client_ip(request),
        entity_type="item", entity_id=item.id,
        details={
            "item_name": item.name,
            "quantity": issue_data.quantity,
            "person_name": person_name,
            "remaining": item.quantity,
        }
    )
    await session.commit()

    if is_low(item.quantity, item.low_stock_threshold):
        await schedule_low_stock_alert(session, background_tasks)

    response = item_out_to_response(record)
    response["remaining_quantity"] = item.quantity
    return response
