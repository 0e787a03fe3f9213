"""
Items Routes - stock items, receipt uploads
"""
from fastapi import APIRouter, HTTPException, Depends, Request, UploadFile, File, BackgroundTasks
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from pathlib import Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
import json
import uuid
import logging

from app.inventory.low_stock import effective_threshold, is_low
from core.config import app_settings
from database import get_postgres_session, User, Item, Category, StockRequestItem
from routes.auth_routes import get_current_user, require_superadmin
from services.audit_service import get_client_ip, log_audit
from services.stock_alerts import schedule_low_stock_alert

logger = logging.getLogger(__name__)

items_router = APIRouter(prefix="/api", tags=["Items"])

ALLOWED_IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"}


# ==================== PYDANTIC MODELS ====================

class ItemCreate(BaseModel):
    name: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    quantity: int = 0
    low_stock_threshold: Optional[int] = None
    vendor_name: Optional[str] = None
    unit_price: Optional[float] = None


class ItemUpdate(BaseModel):
    update_reason: str
    name: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    quantity: Optional[int] = None
    low_stock_threshold: Optional[int] = None
    vendor_name: Optional[str] = None
    unit_price: Optional[float] = None


# ==================== HELPER FUNCTIONS ====================

def parse_receipt_images(raw: Optional[str]) -> list:
    if not raw:
        return []
    try:
        images = json.loads(raw)
    except ValueError:
        logger.warning("Stored receipt_images is not valid JSON, treating as empty")
        return []
    return images if isinstance(images, list) else []


def item_to_response(item: Item, category_name: Optional[str] = None) -> dict:
    threshold = effective_threshold(item.low_stock_threshold, app_settings.default_low_stock_threshold)
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "category_id": item.category_id,
        "category_name": category_name,
        "quantity": item.quantity,
        "low_stock_threshold": threshold,
        "vendor_name": item.vendor_name,
        "unit_price": item.unit_price,
        "receipt_images": parse_receipt_images(item.receipt_images),
        "update_reasons": item.update_reasons,
        "is_low_stock": item.quantity <= threshold,
        "created_at": item.created_at.isoformat() if item.created_at else None,
        "updated_at": item.updated_at.isoformat() if item.updated_at else None,
    }


def validate_stock_fields(quantity: Optional[int], threshold: Optional[int], unit_price: Optional[float]):
    if quantity is not None and quantity < 0:
        raise HTTPException(status_code=400, detail="Quantity must be non-negative")
    if threshold is not None and threshold < 0:
        raise HTTPException(status_code=400, detail="Low stock threshold must be non-negative")
    if unit_price is not None and unit_price < 0:
        raise HTTPException(status_code=400, detail="Unit price must be non-negative")


async def get_category_name(session: AsyncSession, category_id: Optional[str]) -> Optional[str]:
    if not category_id:
        return None
    category = await session.get(Category, category_id)
    if not category:
        raise HTTPException(status_code=400, detail="Category not found")
    return category.name


async def get_item_or_404(session: AsyncSession, item_id: str) -> Item:
    item = await session.get(Item, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


# ==================== ITEM ROUTES ====================

@items_router.get("/items")
async def get_items(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    result = await session.execute(
        select(Item, Category.name)
        .outerjoin(Category, Category.id == Item.category_id)
        .order_by(Item.name)
    )
    return [item_to_response(item, category_name) for item, category_name in result.all()]


@items_router.get("/items/{item_id}")
async def get_item(
    item_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    item = await get_item_or_404(session, item_id)
    return item_to_response(item, await get_category_name(session, item.category_id))


@items_router.post("/items", status_code=201)
async def create_item(
    item_data: ItemCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    name = item_data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Item name is required")
    validate_stock_fields(item_data.quantity, item_data.low_stock_threshold, item_data.unit_price)
    category_name = await get_category_name(session, item_data.category_id)

    threshold = effective_threshold(item_data.low_stock_threshold, app_settings.default_low_stock_threshold)
    item = Item(
        id=str(uuid.uuid4()),
        name=name,
        description=item_data.description,
        category_id=item_data.category_id,
        quantity=item_data.quantity,
        low_stock_threshold=threshold,
        vendor_name=item_data.vendor_name,
        unit_price=item_data.unit_price,
        receipt_images="[]",
    )
    session.add(item)
    log_audit(
        session, "create_item", current_user, get_client_ip(request),
        entity_type="item", entity_id=item.id,
        details={"name": name, "quantity": item.quantity, "threshold": threshold}
    )
    await session.commit()

    if is_low(item.quantity, threshold):
        await schedule_low_stock_alert(session, background_tasks)

    return item_to_response(item, category_name)


@items_router.put("/items/{item_id}")
async def update_item(
    item_id: str,
    item_data: ItemUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update an item - a reason is required and kept in the item's history"""
    reason = (item_data.update_reason or "").strip()
    if not reason:
        raise HTTPException(status_code=400, detail="Update reason is required")
    validate_stock_fields(item_data.quantity, item_data.low_stock_threshold, item_data.unit_price)

    item = await get_item_or_404(session, item_id)
    old_quantity = item.quantity

    changes = item_data.model_dump(exclude_none=True, exclude={"update_reason"})
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise HTTPException(status_code=400, detail="Item name cannot be empty")
    if "category_id" in changes:
        await get_category_name(session, changes["category_id"])

    for field, value in changes.items():
        setattr(item, field, value)

    now = datetime.utcnow()
    entry = f"{reason} at {now.strftime('%Y-%m-%d %H:%M:%S')}"
    item.update_reasons = f"{item.update_reasons} | {entry}" if item.update_reasons else entry
    item.updated_at = now

    log_audit(
        session, "update_item", current_user, get_client_ip(request),
        entity_type="item", entity_id=item.id,
        details={"reason": reason, "fields": sorted(changes), "old_quantity": old_quantity, "new_quantity": item.quantity}
    )
    await session.commit()

    if item.quantity < old_quantity and is_low(item.quantity, item.low_stock_threshold):
        await schedule_low_stock_alert(session, background_tasks)

    return item_to_response(item, await get_category_name(session, item.category_id))


@items_router.delete("/items/{item_id}")
async def delete_item(
    item_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete an item and its receipt files - superadmin only"""
    require_superadmin(current_user)
    item = await get_item_or_404(session, item_id)

    result = await session.execute(
        select(func.count(StockRequestItem.id)).where(StockRequestItem.item_id == item_id)
    )
    if result.scalar():
        raise HTTPException(status_code=400, detail="Item is used in requests and cannot be deleted")

    receipts = parse_receipt_images(item.receipt_images)
    name = item.name
    await session.delete(item)
    log_audit(
        session, "delete_item", current_user, get_client_ip(request),
        entity_type="item", entity_id=item_id,
        details={"name": name}
    )
    await session.commit()

    for receipt in receipts:
        path = receipt.get("path") if isinstance(receipt, dict) else receipt
        file_path = app_settings.uploads_dir / Path(str(path)).name
        try:
            file_path.unlink()
        except OSError as e:
            logger.warning(f"Could not delete receipt image {file_path}: {e}")

    return {"message": "Item deleted successfully"}


@items_router.post("/items/{item_id}/receipt")
async def upload_receipt(
    item_id: str,
    request: Request,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Attach a receipt image to an item"""
    item = await get_item_or_404(session, item_id)

    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed")

    content = await file.read()
    if len(content) > app_settings.max_upload_bytes:
        limit_mb = app_settings.max_upload_bytes // (1024 * 1024)
        raise HTTPException(status_code=400, detail=f"Image must be smaller than {limit_mb}MB")

    suffix = Path(file.filename or "").suffix.lower()
    if suffix not in ALLOWED_IMAGE_SUFFIXES:
        suffix = ".png"
    filename = f"receipt-{uuid.uuid4().hex}{suffix}"

    app_settings.uploads_dir.mkdir(parents=True, exist_ok=True)
    (app_settings.uploads_dir / filename).write_bytes(content)

    now = datetime.utcnow()
    receipts = parse_receipt_images(item.receipt_images)
    receipts.append({"path": f"/uploads/{filename}", "uploaded_at": now.isoformat()})
    item.receipt_images = json.dumps(receipts)
    item.updated_at = now

    log_audit(
        session, "upload_receipt", current_user, get_client_ip(request),
        entity_type="item", entity_id=item.id,
        details={"path": f"/uploads/{filename}", "size": len(content)}
    )
    await session.commit()

    return item_to_response(item, await get_category_name(session, item.category_id))
