"""
PostgreSQL Database Models - SQLAlchemy ORM
All tables for the Inventory & Request Approval System
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import (
    Integer, String, Text, DateTime, Boolean, Float,
    ForeignKey, Index, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
import uuid as uuid_lib
import enum

from .connection import Base


# ==================== ENUMS ====================

class UserRole(str, enum.Enum):
    REQUESTER = "requester"
    APPROVER = "approver"
    ISSUER = "issuer"
    SUPERADMIN = "superadmin"


# ==================== USER MODEL ====================

class User(Base):
    """User table - stores all system users"""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default=UserRole.REQUESTER.value, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_users_role_last_name', 'role', 'last_name'),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ==================== SUPERVISOR MODEL ====================

class Supervisor(Base):
    """Supervisors - recipients of low stock alert emails"""
    __tablename__ = "supervisors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# ==================== CATEGORY & ITEM MODELS ====================

class Category(Base):
    """Item categories"""
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class Item(Base):
    """Stock items - quantity is the live stock level"""
    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    vendor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    unit_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    receipt_images: Mapped[str] = mapped_column(Text, default="[]")  # JSON array as text
    update_reasons: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint('quantity >= 0', name='ck_items_quantity_non_negative'),
        CheckConstraint('low_stock_threshold >= 0', name='ck_items_threshold_non_negative'),
        Index('idx_items_quantity_threshold', 'quantity', 'low_stock_threshold'),
    )


class ItemOut(Base):
    """Items out - direct stock issuance records"""
    __tablename__ = "items_out"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    person_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("items.id", ondelete="SET NULL"), nullable=True, index=True)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    issued_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    date_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_items_out_quantity_positive'),
    )


# ==================== REQUEST MODELS ====================

class StockRequest(Base):
    """Material requests and item returns"""
    __tablename__ = "requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    request_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    request_seq: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="material_request", index=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending", index=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    team_leader_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    team_leader_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    project_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    isp_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deployment_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    selected_approver_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    selected_approver_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    release_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    received_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("type IN ('material_request', 'item_return')", name='ck_requests_type'),
        CheckConstraint("status IN ('pending', 'approved', 'completed', 'rejected')", name='ck_requests_status'),
        UniqueConstraint('type', 'request_seq', name='uq_requests_type_request_seq'),
        Index('idx_requests_status_created_at', 'status', 'created_at'),
        Index('idx_requests_approver_status', 'selected_approver_id', 'status'),
    )


class StockRequestItem(Base):
    """Request line items - quantities received/returned are set on finalize"""
    __tablename__ = "request_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    request_id: Mapped[str] = mapped_column(String(36), ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity_requested: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_received: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quantity_returned: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    item_index: Mapped[int] = mapped_column(Integer, default=0)  # Order in the request
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint('quantity_requested > 0', name='ck_request_items_requested_positive'),
        CheckConstraint('quantity_received >= 0', name='ck_request_items_received_non_negative'),
        CheckConstraint('quantity_returned >= 0', name='ck_request_items_returned_non_negative'),
    )


class Approval(Base):
    """Approvals - append-only"""
    __tablename__ = "approvals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    request_id: Mapped[str] = mapped_column(String(36), ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    approver_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    signature: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Rejection(Base):
    """Rejections - append-only"""
    __tablename__ = "rejections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    request_id: Mapped[str] = mapped_column(String(36), ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True)
    rejector_name: Mapped[str] = mapped_column(String(255), nullable=False)
    rejector_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ==================== AUDIT LOG MODEL ====================

class AuditLog(Base):
    """Audit logs - tracks all system actions, never updated or deleted"""
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON object
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )


# ==================== SYSTEM SETTINGS MODEL ====================

class SystemSetting(Base):
    """System settings - e.g. sender name/email for alert emails"""
    __tablename__ = "system_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid_lib.uuid4()))
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    updated_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


DEFAULT_SETTINGS = [
    {"key": "from_name", "value": "Inventory System", "description": "Sender name for low stock alert emails"},
    {"key": "from_email", "value": "inventory@localhost", "description": "Sender email for low stock alert emails"},
]
