"""
Settings & Audit Log Routes
"""
from fastapi import APIRouter, HTTPException, Depends, Request
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc
import json
import uuid

from database import get_postgres_session, SystemSetting, AuditLog, User
from routes.auth_routes import get_current_user
from services.audit_service import get_client_ip, log_audit

settings_router = APIRouter(prefix="/api", tags=["Settings & Audit"])


# ==================== PYDANTIC MODELS ====================

class SystemSettingUpdate(BaseModel):
    value: str
    description: Optional[str] = None


def setting_to_response(setting: SystemSetting) -> dict:
    return {
        "id": setting.id,
        "key": setting.key,
        "value": setting.value,
        "description": setting.description,
        "updated_by_name": setting.updated_by_name,
        "updated_at": setting.updated_at.isoformat() if setting.updated_at else None
    }


# ==================== SYSTEM SETTINGS ROUTES ====================

@settings_router.get("/settings")
async def get_system_settings(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """All settings, plus a flat key/value map for convenience"""
    result = await session.execute(select(SystemSetting).order_by(SystemSetting.key))
    settings = result.scalars().all()

    return {
        "settings": [setting_to_response(s) for s in settings],
        "values": {s.key: s.value for s in settings},
    }


@settings_router.get("/settings/{key}")
async def get_system_setting(
    key: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    result = await session.execute(select(SystemSetting).where(SystemSetting.key == key))
    setting = result.scalar_one_or_none()

    if not setting:
        raise HTTPException(status_code=404, detail="Setting not found")

    return setting_to_response(setting)


@settings_router.put("/settings/{key}")
async def update_system_setting(
    key: str,
    update_data: SystemSettingUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update a setting, creating it when the key is new"""
    key = key.strip()
    if not key:
        raise HTTPException(status_code=400, detail="Setting key is required")

    result = await session.execute(select(SystemSetting).where(SystemSetting.key == key))
    setting = result.scalar_one_or_none()

    now = datetime.utcnow()
    old_value = None
    if setting:
        old_value = setting.value
        setting.value = update_data.value
        if update_data.description is not None:
            setting.description = update_data.description
    else:
        setting = SystemSetting(
            id=str(uuid.uuid4()),
            key=key,
            value=update_data.value,
            description=update_data.description,
            created_at=now
        )
        session.add(setting)

    setting.updated_by = current_user.id
    setting.updated_by_name = current_user.full_name
    setting.updated_at = now

    log_audit(
        session, "update_setting", current_user, get_client_ip(request),
        entity_type="setting", entity_id=setting.id,
        details={"key": key, "old": old_value, "new": update_data.value}
    )
    await session.commit()

    return setting_to_response(setting)


# ==================== AUDIT LOG ROUTES ====================

@settings_router.get("/audit-logs")
async def get_audit_logs(
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 500,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Audit logs, newest first"""
    query = select(AuditLog)

    if action:
        query = query.where(AuditLog.action == action)
    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)

    query = query.order_by(desc(AuditLog.timestamp)).limit(max(1, min(limit, 5000)))

    result = await session.execute(query)
    logs = result.scalars().all()

    return [
        {
            "id": log.id,
            "action": log.action,
            "entity_type": log.entity_type,
            "entity_id": log.entity_id,
            "user_id": log.user_id,
            "full_name": log.user_name,
            "user_role": log.user_role,
            "ip_address": log.ip_address,
            "details": json.loads(log.details) if log.details else None,
            "timestamp": log.timestamp.isoformat() if log.timestamp else None
        }
        for log in logs
    ]
