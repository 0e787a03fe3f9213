"""
User Management Routes - superadmin only, except the approver list
New users get a generated username and password which are emailed to them
"""
from fastapi import APIRouter, HTTPException, Depends, Request, BackgroundTasks
from pydantic import BaseModel, EmailStr
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
import secrets
import uuid
import logging

from database import get_postgres_session, User, UserRole
from routes.auth_routes import (
    get_current_user,
    get_password_hash,
    require_superadmin,
    user_to_response,
    VALID_ROLES,
)
from services.audit_service import get_client_ip, log_audit
from services.email_service import email_service
from services.stock_alerts import load_sender

logger = logging.getLogger(__name__)

users_router = APIRouter(prefix="/api", tags=["Users"])


# ==================== PYDANTIC MODELS ====================

class UserCreate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    role: str


class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


class RoleUpdate(BaseModel):
    role: str


# ==================== HELPER FUNCTIONS ====================

def generate_password() -> str:
    """Six uppercase hex characters"""
    return secrets.token_hex(3).upper()


async def generate_unique_username(session: AsyncSession, last_name: str) -> str:
    base_username = "".join(last_name.lower().split()) or "user"
    username = base_username
    counter = 1
    while True:
        result = await session.execute(select(User.id).where(User.username == username))
        if result.scalar_one_or_none() is None:
            return username
        username = f"{base_username}{counter}"
        counter += 1


def validate_role(role: str) -> str:
    if role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {', '.join(sorted(VALID_ROLES))}")
    return role


async def get_user_or_404(session: AsyncSession, user_id: str) -> User:
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def ensure_email_available(session: AsyncSession, email: str, exclude_user_id: Optional[str] = None):
    query = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_user_id:
        query = query.where(User.id != exclude_user_id)
    result = await session.execute(query)
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already exists")


# ==================== USER ROUTES ====================

@users_router.get("/users/approvers")
async def get_approvers(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Approvers available for new requests - any authenticated user"""
    result = await session.execute(
        select(User)
        .where(User.role == UserRole.APPROVER.value, User.is_active == True)
        .order_by(User.last_name, User.first_name)
    )
    return [{"id": u.id, "fullName": u.full_name} for u in result.scalars().all()]


@users_router.get("/users")
async def get_users(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """List all users"""
    require_superadmin(current_user)
    result = await session.execute(select(User).order_by(User.created_at.desc()))
    return [user_to_response(u) for u in result.scalars().all()]


@users_router.post("/users", status_code=201)
async def create_user(
    user_data: UserCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create a user with generated credentials and email them"""
    require_superadmin(current_user)
    validate_role(user_data.role)

    first_name = user_data.first_name.strip()
    last_name = user_data.last_name.strip()
    if not first_name or not last_name:
        raise HTTPException(status_code=400, detail="First and last name are required")

    email = user_data.email.strip().lower()
    await ensure_email_available(session, email)

    username = await generate_unique_username(session, last_name)
    plain_password = generate_password()

    new_user = User(
        id=str(uuid.uuid4()),
        first_name=first_name,
        last_name=last_name,
        username=username,
        email=email,
        password=get_password_hash(plain_password),
        role=user_data.role,
        is_active=True,
    )
    session.add(new_user)
    log_audit(
        session, "create_user", current_user, get_client_ip(request),
        entity_type="user", entity_id=new_user.id,
        details={"username": username, "role": user_data.role}
    )
    await session.commit()

    sender = await load_sender(session)
    background_tasks.add_task(email_service.send_user_credentials, email, username, plain_password, sender)
    logger.info(f"User '{username}' created by {current_user.username}")

    return user_to_response(new_user)


@users_router.post("/users/{user_id}/reset-password")
async def reset_user_password(
    user_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Generate a new password and email it to the user"""
    require_superadmin(current_user)
    user = await get_user_or_404(session, user_id)

    plain_password = generate_password()
    user.password = get_password_hash(plain_password)
    log_audit(
        session, "reset_password", current_user, get_client_ip(request),
        entity_type="user", entity_id=user.id,
        details={"username": user.username}
    )
    await session.commit()

    sender = await load_sender(session)
    background_tasks.add_task(email_service.send_password_reset, user.email, user.username, plain_password, sender)

    return {"message": "Password reset and email sent"}


@users_router.put("/users/{user_id}/role")
async def update_user_role(
    user_id: str,
    role_data: RoleUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Change a user's role"""
    require_superadmin(current_user)
    validate_role(role_data.role)
    user = await get_user_or_404(session, user_id)

    if user.id == current_user.id and role_data.role != UserRole.SUPERADMIN.value:
        raise HTTPException(status_code=400, detail="You cannot remove your own superadmin role")

    old_role = user.role
    user.role = role_data.role
    log_audit(
        session, "update_user_role", current_user, get_client_ip(request),
        entity_type="user", entity_id=user.id,
        details={"old_role": old_role, "new_role": role_data.role}
    )
    await session.commit()

    return user_to_response(user)


@users_router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update a user's profile, role or active flag"""
    require_superadmin(current_user)
    user = await get_user_or_404(session, user_id)

    changes = {}
    if user_data.first_name is not None:
        if not user_data.first_name.strip():
            raise HTTPException(status_code=400, detail="First name cannot be empty")
        changes["first_name"] = user_data.first_name.strip()
    if user_data.last_name is not None:
        if not user_data.last_name.strip():
            raise HTTPException(status_code=400, detail="Last name cannot be empty")
        changes["last_name"] = user_data.last_name.strip()
    if user_data.email is not None:
        email = user_data.email.strip().lower()
        await ensure_email_available(session, email, exclude_user_id=user.id)
        changes["email"] = email
    if user_data.role is not None:
        role = validate_role(user_data.role)
        if user.id == current_user.id and role != UserRole.SUPERADMIN.value:
            raise HTTPException(status_code=400, detail="You cannot remove your own superadmin role")
        changes["role"] = role
    if user_data.is_active is not None:
        if user.id == current_user.id and not user_data.is_active:
            raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
        changes["is_active"] = user_data.is_active

    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    for field, value in changes.items():
        setattr(user, field, value)

    log_audit(
        session, "update_user", current_user, get_client_ip(request),
        entity_type="user", entity_id=user.id,
        details={"fields": sorted(changes)}
    )
    await session.commit()

    return user_to_response(user)


@users_router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete a user - not yourself"""
    require_superadmin(current_user)
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    user = await get_user_or_404(session, user_id)
    username = user.username
    await session.delete(user)
    log_audit(
        session, "delete_user", current_user, get_client_ip(request),
        entity_type="user", entity_id=user_id,
        details={"username": username}
    )
    await session.commit()

    return {"message": "User deleted successfully"}
