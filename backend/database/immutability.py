"""
Append-only enforcement for audit logs, approvals and rejections.
ORM listeners fire before UPDATE/DELETE SQL reaches the database.
"""
import logging

from sqlalchemy import event

from .models import AuditLog, Approval, Rejection

logger = logging.getLogger(__name__)

APPEND_ONLY_MODELS = (AuditLog, Approval, Rejection)


class ImmutableRecordError(Exception):
    """Raised when code tries to modify or delete an append-only row"""

    def __init__(self, entity_type: str, entity_id: str, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(f"{entity_type} {entity_id} is append-only and cannot be {operation}")


def _block_update(mapper, connection, target):
    entity_type = type(target).__name__
    logger.error(f"Blocked UPDATE on append-only {entity_type} {target.id}")
    raise ImmutableRecordError(entity_type, str(target.id), "modified")


def _block_delete(mapper, connection, target):
    entity_type = type(target).__name__
    logger.error(f"Blocked DELETE on append-only {entity_type} {target.id}")
    raise ImmutableRecordError(entity_type, str(target.id), "deleted")


def register_immutability_listeners() -> None:
    """Register listeners once at import time; safe to call repeatedly"""
    for model in APPEND_ONLY_MODELS:
        if not event.contains(model, "before_update", _block_update):
            event.listen(model, "before_update", _block_update)
        if not event.contains(model, "before_delete", _block_delete):
            event.listen(model, "before_delete", _block_delete)


def unregister_immutability_listeners() -> None:
    """Only for tests that need to verify the listeners are what blocks writes"""
    for model in APPEND_ONLY_MODELS:
        if event.contains(model, "before_update", _block_update):
            event.remove(model, "before_update", _block_update)
        if event.contains(model, "before_delete", _block_delete):
            event.remove(model, "before_delete", _block_delete)


register_immutability_listeners()
