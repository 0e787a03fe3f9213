"""
Stock Overview Routes - low stock list, alert emails, dashboard counters and Excel exports
"""
from fastapi import APIRouter, Depends, Request, BackgroundTasks
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, desc

from core.config import app_settings
from database import get_postgres_session, User, Item, Category, ItemOut, StockRequest
from routes.auth_routes import get_current_user
from services.audit_service import get_client_ip, log_audit
from app.inventory.low_stock import LEVEL_LOW, LEVEL_OUT, effective_threshold
from services.reports import (
    INVENTORY_HEADERS,
    INVENTORY_WIDTHS,
    ITEMS_OUT_HEADERS,
    ITEMS_OUT_WIDTHS,
    XLSX_MEDIA_TYPE,
    build_workbook,
    export_filename,
    workbook_bytes,
)
from services.stock_alerts import load_low_stock, schedule_low_stock_alert

stock_router = APIRouter(prefix="/api", tags=["Stock"])


def low_stock_condition():
    return Item.quantity <= func.coalesce(Item.low_stock_threshold, app_settings.default_low_stock_threshold)


@stock_router.get("/low-stock")
async def get_low_stock_items(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Items at or below their threshold, lowest quantity first"""
    low_items = await load_low_stock(session)
    return [
        {
            "id": entry.id,
            "name": entry.name,
            "quantity": entry.quantity,
            "low_stock_threshold": entry.threshold,
            "level": entry.level,
        }
        for entry in low_items
    ]


@stock_router.post("/send-low-stock-alert")
async def send_low_stock_alert(
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Email the current low stock summary to all supervisors"""
    low_count = await schedule_low_stock_alert(session, background_tasks)
    log_audit(
        session, "send_low_stock_alert", current_user, get_client_ip(request),
        details={"low_items": low_count}
    )
    await session.commit()

    if low_count == 0:
        return {"message": "No low stock items to alert about", "lowStockItems": 0}
    return {"message": "Low stock alert queued", "lowStockItems": low_count}


@stock_router.get("/dashboard-stats")
async def get_dashboard_stats(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    total_items = (await session.execute(select(func.count(Item.id)))).scalar() or 0
    total_categories = (await session.execute(select(func.count(Category.id)))).scalar() or 0
    items_out = (await session.execute(select(func.count(ItemOut.id)))).scalar() or 0
    low_stock = (await session.execute(
        select(func.count(Item.id)).where(low_stock_condition())
    )).scalar() or 0
    pending = (await session.execute(
        select(func.count(StockRequest.id)).where(StockRequest.status == "pending")
    )).scalar() or 0

    return {
        "totalItems": total_items,
        "totalCategories": total_categories,
        "itemsOut": items_out,
        "lowStockItems": low_stock,
        "pendingRequests": pending,
    }


# ==================== EXCEL EXPORTS ====================

def xlsx_response(wb, prefix: str) -> StreamingResponse:
    return StreamingResponse(
        workbook_bytes(wb),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={export_filename(prefix)}"}
    )


@stock_router.get("/reports/inventory/export")
async def export_inventory(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Current stock of every item, low and out-of-stock rows highlighted"""
    result = await session.execute(
        select(Item, Category.name)
        .outerjoin(Category, Category.id == Item.category_id)
        .order_by(Item.name)
    )

    rows = []
    for item, category_name in result.all():
        threshold = effective_threshold(item.low_stock_threshold, app_settings.default_low_stock_threshold)
        status = "OK"
        if item.quantity <= 0:
            status = LEVEL_OUT
        elif item.quantity <= threshold:
            status = LEVEL_LOW
        last_updated = item.updated_at or item.created_at
        rows.append([
            item.name,
            category_name or "-",
            item.quantity,
            threshold,
            status,
            item.vendor_name or "-",
            item.unit_price,
            last_updated.strftime("%Y-%m-%d %H:%M") if last_updated else "-",
        ])

    wb = build_workbook("Inventory", INVENTORY_HEADERS, rows, INVENTORY_WIDTHS, status_column=4)
    return xlsx_response(wb, "inventory")


@stock_router.get("/reports/items-out/export")
async def export_items_out(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Issuance history, newest first"""
    result = await session.execute(
        select(ItemOut, User.first_name, User.last_name)
        .outerjoin(User, User.id == ItemOut.issued_by)
        .order_by(desc(ItemOut.date_time))
    )

    rows = [
        [
            record.date_time.strftime("%Y-%m-%d %H:%M") if record.date_time else "-",
            record.person_name,
            record.item_name,
            record.category_name or "-",
            record.quantity,
            f"{first_name} {last_name}".strip() if first_name is not None else record.issued_by,
        ]
        for record, first_name, last_name in result.all()
    ]

    wb = build_workbook("Items Out", ITEMS_OUT_HEADERS, rows, ITEMS_OUT_WIDTHS)
    return xlsx_response(wb, "items_out")
