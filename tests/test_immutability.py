import asyncio
import uuid
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from database import (
    AuditLog,
    Base,
    ImmutableRecordError,
    register_immutability_listeners,
    unregister_immutability_listeners,
)


def run(coro):
    return asyncio.run(coro)


async def with_audit_row(tmp_path, mutate):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}", poolclass=NullPool)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        session_maker = async_sessionmaker(engine, expire_on_commit=False)
        row_id = str(uuid.uuid4())
        async with session_maker() as session:
            session.add(AuditLog(id=row_id, action="login", ip_address="127.0.0.1", timestamp=datetime.utcnow()))
            await session.commit()

        async with session_maker() as session:
            row = await session.get(AuditLog, row_id)
            await mutate(session, row)
    finally:
        await engine.dispose()


def test_audit_rows_cannot_be_modified(tmp_path):
    async def mutate(session, row):
        row.action = "tampered"
        await session.commit()

    with pytest.raises(ImmutableRecordError) as excinfo:
        run(with_audit_row(tmp_path, mutate))

    assert excinfo.value.operation == "modified"


def test_audit_rows_cannot_be_deleted(tmp_path):
    async def mutate(session, row):
        await session.delete(row)
        await session.commit()

    with pytest.raises(ImmutableRecordError) as excinfo:
        run(with_audit_row(tmp_path, mutate))

    assert excinfo.value.entity_type == "AuditLog"


def test_listeners_are_what_blocks_writes(tmp_path):
    async def mutate(session, row):
        row.action = "tampered"
        await session.commit()

    unregister_immutability_listeners()
    try:
        run(with_audit_row(tmp_path, mutate))
    finally:
        register_immutability_listeners()

    second = tmp_path / "again"
    second.mkdir()
    with pytest.raises(ImmutableRecordError):
        run(with_audit_row(second, mutate))
