"""
Categories Routes
"""
from fastapi import APIRouter, HTTPException, Depends, Request
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, update
import uuid

from database import get_postgres_session, User, Category, Item
from routes.auth_routes import get_current_user, require_superadmin
from services.audit_service import get_client_ip, log_audit

categories_router = APIRouter(prefix="/api", tags=["Categories"])


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


def category_to_response(category: Category, item_count: int = 0) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "itemCount": item_count,
        "created_at": category.created_at.isoformat() if category.created_at else None,
        "updated_at": category.updated_at.isoformat() if category.updated_at else None,
    }


async def count_items(session: AsyncSession, category_id: str) -> int:
    result = await session.execute(
        select(func.count(Item.id)).where(Item.category_id == category_id)
    )
    return result.scalar() or 0


@categories_router.get("/categories")
async def get_categories(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Categories with the number of items in each"""
    result = await session.execute(
        select(Category, func.count(Item.id))
        .outerjoin(Item, Item.category_id == Category.id)
        .group_by(Category.id)
        .order_by(Category.name)
    )
    return [category_to_response(category, count) for category, count in result.all()]


@categories_router.post("/categories", status_code=201)
async def create_category(
    category_data: CategoryCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    name = category_data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Category name is required")

    category = Category(id=str(uuid.uuid4()), name=name, description=category_data.description)
    session.add(category)
    log_audit(
        session, "create_category", current_user, get_client_ip(request),
        entity_type="category", entity_id=category.id,
        details={"name": name}
    )
    await session.commit()
    return category_to_response(category)


@categories_router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    category_data: CategoryUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    category = await session.get(Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    if category_data.name is not None:
        if not category_data.name.strip():
            raise HTTPException(status_code=400, detail="Category name cannot be empty")
        category.name = category_data.name.strip()
    if category_data.description is not None:
        category.description = category_data.description
    category.updated_at = datetime.utcnow()

    log_audit(
        session, "update_category", current_user, get_client_ip(request),
        entity_type="category", entity_id=category.id,
        details=category_data.model_dump(exclude_none=True)
    )
    await session.commit()
    return category_to_response(category, await count_items(session, category.id))


@categories_router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete a category - its items become uncategorized"""
    require_superadmin(current_user)
    category = await session.get(Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    await session.execute(
        update(Item).where(Item.category_id == category_id).values(category_id=None)
    )
    name = category.name
    await session.delete(category)
    log_audit(
        session, "delete_category", current_user, get_client_ip(request),
        entity_type="category", entity_id=category_id,
        details={"name": name}
    )
    await session.commit()
    return {"message": "Category deleted successfully"}
