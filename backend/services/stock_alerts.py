"""
Low stock alert dispatch
Reads supervisors, sender settings and low items inside the request session,
then hands the SMTP work to a FastAPI background task.
"""
import logging
from typing import List

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.inventory.low_stock import LowStockItem, find_low_stock
from core.config import app_settings
from database import Item, Supervisor, SystemSetting
from services.email_service import Sender, email_service, recipients_from

logger = logging.getLogger(__name__)


async def load_sender(session: AsyncSession) -> Sender:
    result = await session.execute(
        select(SystemSetting).where(SystemSetting.key.in_(["from_name", "from_email"]))
    )
    values = {setting.key: setting.value for setting in result.scalars().all()}
    default = email_service.default_sender()
    return Sender(
        name=values.get("from_name") or default.name,
        email=values.get("from_email") or default.email,
    )


async def load_low_stock(session: AsyncSession) -> List[LowStockItem]:
    result = await session.execute(select(Item))
    return find_low_stock(result.scalars().all(), app_settings.default_low_stock_threshold)


async def schedule_low_stock_alert(session: AsyncSession, background_tasks: BackgroundTasks) -> int:
    """Queue the summary email when anything is low; returns the number of low items"""
    low_items = await load_low_stock(session)
    if not low_items:
        return 0

    result = await session.execute(select(Supervisor).order_by(Supervisor.name))
    supervisors = recipients_from(result.scalars().all())
    if not supervisors:
        logger.warning(f"{len(low_items)} item(s) are low but no supervisors are configured")
        return len(low_items)

    sender = await load_sender(session)
    background_tasks.add_task(email_service.send_low_stock_alert, supervisors, low_items, sender)
    logger.info(f"Queued low stock alert for {len(supervisors)} supervisor(s), {len(low_items)} item(s)")
    return len(low_items)
