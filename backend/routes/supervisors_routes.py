"""
Supervisors Routes - recipients of low stock alerts (superadmin only)
"""
from fastapi import APIRouter, HTTPException, Depends, Request
from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
import uuid

from database import get_postgres_session, User, Supervisor
from routes.auth_routes import get_current_user, require_superadmin
from services.audit_service import get_client_ip, log_audit

supervisors_router = APIRouter(prefix="/api", tags=["Supervisors"])


class SupervisorCreate(BaseModel):
    name: str
    email: EmailStr


class SupervisorUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None


def supervisor_to_response(supervisor: Supervisor) -> dict:
    return {
        "id": supervisor.id,
        "name": supervisor.name,
        "email": supervisor.email,
        "created_at": supervisor.created_at.isoformat() if supervisor.created_at else None,
        "updated_at": supervisor.updated_at.isoformat() if supervisor.updated_at else None,
    }


async def ensure_supervisor_email_available(session: AsyncSession, email: str, exclude_id: Optional[str] = None):
    query = select(Supervisor.id).where(func.lower(Supervisor.email) == email.lower())
    if exclude_id:
        query = query.where(Supervisor.id != exclude_id)
    result = await session.execute(query)
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Supervisor email already exists")


@supervisors_router.get("/supervisors")
async def get_supervisors(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    require_superadmin(current_user)
    result = await session.execute(select(Supervisor).order_by(Supervisor.name))
    return [supervisor_to_response(s) for s in result.scalars().all()]


@supervisors_router.post("/supervisors", status_code=201)
async def create_supervisor(
    supervisor_data: SupervisorCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    require_superadmin(current_user)
    name = supervisor_data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    email = supervisor_data.email.strip().lower()
    await ensure_supervisor_email_available(session, email)

    supervisor = Supervisor(id=str(uuid.uuid4()), name=name, email=email)
    session.add(supervisor)
    log_audit(
        session, "create_supervisor", current_user, get_client_ip(request),
        entity_type="supervisor", entity_id=supervisor.id,
        details={"name": name, "email": email}
    )
    await session.commit()
    return supervisor_to_response(supervisor)


@supervisors_router.put("/supervisors/{supervisor_id}")
async def update_supervisor(
    supervisor_id: str,
    supervisor_data: SupervisorUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    require_superadmin(current_user)
    supervisor = await session.get(Supervisor, supervisor_id)
    if not supervisor:
        raise HTTPException(status_code=404, detail="Supervisor not found")

    if supervisor_data.name is not None:
        if not supervisor_data.name.strip():
            raise HTTPException(status_code=400, detail="Name cannot be empty")
        supervisor.name = supervisor_data.name.strip()
    if supervisor_data.email is not None:
        email = supervisor_data.email.strip().lower()
        await ensure_supervisor_email_available(session, email, exclude_id=supervisor.id)
        supervisor.email = email
    supervisor.updated_at = datetime.utcnow()

    log_audit(
        session, "update_supervisor", current_user, get_client_ip(request),
        entity_type="supervisor", entity_id=supervisor.id,
        details=supervisor_data.model_dump(exclude_none=True)
    )
    await session.commit()
    return supervisor_to_response(supervisor)


@supervisors_router.delete("/supervisors/{supervisor_id}")
async def delete_supervisor(
    supervisor_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    require_superadmin(current_user)
    supervisor = await session.get(Supervisor, supervisor_id)
    if not supervisor:
        raise HTTPException(status_code=404, detail="Supervisor not found")

    details = {"name": supervisor.name, "email": supervisor.email}
    await session.delete(supervisor)
    log_audit(
        session, "delete_supervisor", current_user, get_client_ip(request),
        entity_type="supervisor", entity_id=supervisor_id, details=details
    )
    await session.commit()
    return {"message": "Supervisor deleted successfully"}
