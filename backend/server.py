"""
Inventory & Request Approval System
FastAPI backend on PostgreSQL
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from dotenv import load_dotenv
from pathlib import Path
import logging

# Load environment variables before settings are read
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from core.config import app_settings

# ==================== Logging Configuration ====================
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create the main app
app = FastAPI(
    title="Inventory & Request Approval System",
    description="Items, stock issuance and the material request approval workflow",
    version="1.0.0"
)


# Health check endpoint at root level (for liveness/readiness probes)
@app.get("/health")
async def root_health_check():
    return {"status": "healthy", "database": "PostgreSQL"}


# ==================== Routes ====================
from routes.auth_routes import auth_router
from routes.users_routes import users_router
from routes.supervisors_routes import supervisors_router
from routes.categories_routes import categories_router
from routes.items_routes import items_router
from routes.items_out_routes import items_out_router
from routes.stock_routes import stock_router
from routes.requests_routes import requests_router
from routes.settings_routes import settings_router

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(supervisors_router)
app.include_router(categories_router)
app.include_router(items_router)
app.include_router(items_out_router)
app.include_router(stock_router)
app.include_router(requests_router)
app.include_router(settings_router)

# Receipt images
app_settings.uploads_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(app_settings.uploads_dir)), name="uploads")

# ==================== CORS Configuration ====================
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=app_settings.cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== Seed Data ====================
async def seed_defaults():
    """Create the default superadmin and settings when missing"""
    import uuid
    from sqlalchemy.future import select
    from database import get_session_maker, User, UserRole, SystemSetting, DEFAULT_SETTINGS
    from routes.auth_routes import get_password_hash

    async with get_session_maker()() as session:
        username = app_settings.default_admin_username.strip().lower()
        result = await session.execute(select(User).where(User.username == username))
        if result.scalar_one_or_none() is None:
            session.add(User(
                id=str(uuid.uuid4()),
                first_name="Admin",
                last_name="Super",
                username=username,
                email=app_settings.default_admin_email.strip().lower(),
                password=get_password_hash(app_settings.default_admin_password),
                role=UserRole.SUPERADMIN.value,
                is_active=True,
            ))
            logger.info(f"Default superadmin '{username}' created")

        result = await session.execute(select(SystemSetting.key))
        existing = set(result.scalars().all())
        for setting in DEFAULT_SETTINGS:
            if setting["key"] not in existing:
                session.add(SystemSetting(id=str(uuid.uuid4()), **setting))

        await session.commit()


# ==================== Startup & Shutdown Events ====================
@app.on_event("startup")
async def startup_db_client():
    """Initialize PostgreSQL database on startup"""
    logger.info("Starting Inventory & Request Approval System...")

    from database import init_postgres_db
    await init_postgres_db()
    await seed_defaults()

    logger.info("Database initialized successfully")


@app.on_event("shutdown")
async def shutdown_db_client():
    """Close database connections on shutdown"""
    logger.info("Shutting down...")

    from database import close_postgres_db
    await close_postgres_db()

    logger.info("Database connections closed")
