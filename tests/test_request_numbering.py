import asyncio
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.requests.domain.errors import DuplicateRequestNumber
from app.requests.infrastructure.sqlalchemy_repository import SqlAlchemyStockRequestRepository
from database import Base, StockRequest


def run(coro):
    return asyncio.run(coro)


async def insert_requests(tmp_path, rows):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'requests.db'}", poolclass=NullPool)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with async_sessionmaker(engine, expire_on_commit=False)() as session:
            repository = SqlAlchemyStockRequestRepository(session)
            for request_id, request_type, seq in rows:
                session.add(StockRequest(
                    id=request_id,
                    request_number=f"REQ-{seq:05d}",
                    request_seq=seq,
                    type=request_type,
                    status="pending",
                    created_by="Rick Requester",
                    created_at=datetime(2026, 1, 17),
                ))
                await repository.commit()
            return await repository.get_next_request_number("material_request")
    finally:
        await engine.dispose()


def test_same_sequence_for_the_same_type_is_refused(tmp_path):
    rows = [("r-1", "material_request", 1), ("r-2", "material_request", 1)]

    with pytest.raises(DuplicateRequestNumber):
        run(insert_requests(tmp_path, rows))


def test_types_number_independently(tmp_path):
    rows = [("r-1", "material_request", 1), ("r-2", "item_return", 1)]

    assert run(insert_requests(tmp_path, rows)) == ("REQ-00002", 2)
