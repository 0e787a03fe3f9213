"""
Audit trail helpers shared by the route modules
One AuditLog row per mutation, added to the caller's session before commit
"""
import json
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import AuditLog, User


def get_client_ip(request: Optional[Request]) -> str:
    """First X-Forwarded-For hop, else the peer address, else 'unknown'"""
    if request is None:
        return "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def log_audit(
    session: AsyncSession,
    action: str,
    user: Optional[User],
    ip_address: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    audit_log = AuditLog(
        id=str(uuid.uuid4()),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user.id if user else None,
        user_name=user.full_name if user else None,
        user_role=user.role if user else None,
        ip_address=ip_address,
        details=json.dumps(details, default=str) if details else None,
        timestamp=datetime.utcnow(),
    )
    session.add(audit_log)
    return audit_log
