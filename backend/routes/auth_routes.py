"""
Auth Routes - login, logout and the current user
Also hosts the JWT/password helpers and role gates used by the other routers
"""
from fastapi import APIRouter, HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import Optional
from datetime import datetime, timezone, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import logging

from core.config import app_settings
from database import get_postgres_session, User, UserRole
from services.audit_service import get_client_ip, log_audit

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Security
security = HTTPBearer()

# Create router
auth_router = APIRouter(prefix="/api", tags=["Auth"])

VALID_ROLES = {role.value for role in UserRole}


# ==================== PYDANTIC MODELS ====================

class UserLogin(BaseModel):
    username: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


# ==================== HELPER FUNCTIONS ====================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    to_encode = data.copy()
    minutes = expires_minutes or app_settings.access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, app_settings.secret_key, algorithm=app_settings.jwt_algorithm)


def user_to_response(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "email": user.email,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_postgres_session)
) -> User:
    """Resolve the bearer token to an active user"""
    try:
        payload = jwt.decode(
            credentials.credentials,
            app_settings.secret_key,
            algorithms=[app_settings.jwt_algorithm]
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is disabled")

    return user


def require_superadmin(user: User) -> None:
    if user.role != UserRole.SUPERADMIN.value:
        raise HTTPException(status_code=403, detail="Superadmin access required")


# ==================== AUTH ROUTES ====================

@auth_router.post("/login")
async def login(
    credentials: UserLogin,
    request: Request,
    session: AsyncSession = Depends(get_postgres_session)
):
    """Login with username and password"""
    username = credentials.username.strip().lower()
    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.password):
        logger.warning(f"Failed login attempt for '{username}'")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    access_token = create_access_token({"sub": user.id, "username": user.username, "role": user.role})

    log_audit(
        session, "login", user, get_client_ip(request),
        entity_type="user", entity_id=user.id,
        details={"user_agent": request.headers.get("user-agent")}
    )
    await session.commit()

    return {
        "token": access_token,
        "access_token": access_token,
        "token_type": "bearer",
        "user": user_to_response(user)
    }


@auth_router.post("/logout")
async def logout(
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Record the logout; the token itself is discarded client side"""
    log_audit(
        session, "logout", current_user, get_client_ip(request),
        entity_type="user", entity_id=current_user.id,
        details={"user_agent": request.headers.get("user-agent")}
    )
    await session.commit()
    return {"message": "Logged out successfully"}


@auth_router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info"""
    return user_to_response(current_user)


@auth_router.post("/change-password")
async def change_password(
    password_data: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Change current user's password"""
    if not verify_password(password_data.current_password, current_user.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    if len(password_data.new_password) < 6:
        raise HTTPException(status_code=400, detail="New password must be at least 6 characters")

    current_user.password = get_password_hash(password_data.new_password)
    log_audit(
        session, "change_password", current_user, get_client_ip(request),
        entity_type="user", entity_id=current_user.id
    )
    await session.commit()

    return {"message": "Password changed successfully"}
