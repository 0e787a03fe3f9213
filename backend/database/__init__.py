"""
Database package for PostgreSQL integration
"""
from .config import postgres_settings
from .connection import (
    Base,
    get_engine,
    get_session_maker,
    reset_engine,
    init_postgres_db,
    get_postgres_session,
    close_postgres_db
)
from .models import (
    UserRole,
    User,
    Supervisor,
    Category,
    Item,
    ItemOut,
    StockRequest,
    StockRequestItem,
    Approval,
    Rejection,
    AuditLog,
    SystemSetting,
    DEFAULT_SETTINGS
)
from .immutability import (
    ImmutableRecordError,
    register_immutability_listeners,
    unregister_immutability_listeners
)

__all__ = [
    # Config
    "postgres_settings",
    # Connection
    "Base",
    "get_engine",
    "get_session_maker",
    "reset_engine",
    "init_postgres_db",
    "get_postgres_session",
    "close_postgres_db",
    # Models
    "UserRole",
    "User",
    "Supervisor",
    "Category",
    "Item",
    "ItemOut",
    "StockRequest",
    "StockRequestItem",
    "Approval",
    "Rejection",
    "AuditLog",
    "SystemSetting",
    "DEFAULT_SETTINGS",
    # Append-only enforcement
    "ImmutableRecordError",
    "register_immutability_listeners",
    "unregister_immutability_listeners"
]
