"""
FastAPI main application entry point.
"""

import json
import os
import uvicorn
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

# Import logging system first
from core.logging import setup_logging, get_logger, database_logger

# Setup logging early
setup_logging()
logger = get_logger("main")

from db_config import AsyncSessionLocal
from models.models import User, UserRoleEnum
from app import app
from core.security import get_password_hash
from core.config import settings

os.makedirs("cache", exist_ok=True)


async def seed_default_admin() -> None:
    """Create the configured admin account, or reset its password when asked to."""
    username = settings.default_admin_username
    password = settings.default_admin_password
    if not (username and password):
        return

    async with AsyncSessionLocal() as db:
        result = await db.execute(select(User).where(User.username == username))
        admin_user = result.scalar_one_or_none()

        if admin_user is None:
            logger.info("Creating default admin user", username=username)
            admin_user = User(
                username=username,
                email=settings.default_admin_email,
                password_hash=get_password_hash(password),
                role=UserRoleEnum.admin,
                is_active=True,
            )
            db.add(admin_user)
            await db.commit()
            logger.info("Default admin user created successfully", user_id=admin_user.id)
        elif admin_user.role != UserRoleEnum.admin or settings.force_reset_password_admin:
            admin_user.role = UserRoleEnum.admin
            if settings.force_reset_password_admin:
                logger.info("Resetting admin user password", username=username)
                admin_user.password_hash = get_password_hash(password)
            await db.commit()


@app.on_event("startup")
async def startup_db_client():
    """Seed the default admin once tables exist."""
    logger.info("Starting database initialization")
    try:
        await seed_default_admin()
        logger.info("Database initialization completed successfully")
    except SQLAlchemyError as e:
        logger.error("Error initializing database", error=str(e), exc_info=True)
        database_logger.error("Database initialization failed", error=str(e), exc_info=True)


# Run the application
if __name__ == "__main__":
    # Export OpenAPI schema to a JSON file
    try:
        logger.info("Exporting OpenAPI schema")
        output_path = "cache/openapi.json"
        with open(output_path, "w") as f:
            json.dump(app.openapi(), f, indent=2)
        logger.info("OpenAPI schema successfully exported", output_path=output_path)
    except OSError as e:
        logger.error("Error exporting OpenAPI schema", error=str(e), exc_info=True)

    logger.info("Starting uvicorn server", host="0.0.0.0", port=8000)
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
    )
