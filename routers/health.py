"""
Health check and system monitoring endpoints.
"""
import time
import psutil
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func, text
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from db_config import get_async_db
from core.config import settings
from core.exceptions import AIServiceException
from models.models import User
from services.ai_manager import AIManager

router = APIRouter(prefix="/health", tags=["Health"])
logger = structlog.get_logger("health")


class HealthChecker:
    """Service for performing various health checks."""

    def __init__(self, db: Optional[AsyncSession]):
        self.db = db

    async def check_database(self) -> Dict[str, Any]:
        """Check database connectivity and basic operations."""
        try:
            start_time = time.time()

            # Test basic connection
            await self.db.execute(text("SELECT 1"))

            # Test user count query
            user_count = (await self.db.execute(select(func.count()).select_from(User))).scalar_one()

            response_time = (time.time() - start_time) * 1000

            return {
                "status": "healthy",
                "response_time_ms": round(response_time, 2),
                "user_count": user_count,
                "details": "Database connection successful"
            }

        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
                "details": "Database connection failed"
            }

    async def check_ai_services(self) -> Dict[str, Any]:
        """Check AI service configuration; no request is sent upstream."""
        if not settings.openai_api_key:
            return {"openai": {"status": "not_configured", "details": "API key not configured"}}
        try:
            AIManager().ensure_configured()
        except AIServiceException as e:
            return {
                "openai": {
                    "status": "unhealthy",
                    "error": e.detail,
                    "details": "Failed to initialize OpenAI client"
                }
            }
        return {
            "openai": {
                "status": "healthy",
                "details": "API key configured and client initialized",
                "models": {
                    "lesson": settings.openai_lesson_model,
                    "fast": settings.openai_fast_model,
                    "tts": settings.openai_tts_model,
                },
            }
        }

    def check_system_resources(self) -> Dict[str, Any]:
        """Check system resource usage."""
        try:
            cpu_percent = psutil.cpu_percent(interval=0.1)
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')

            return {
                "status": "healthy",
                "cpu_percent": cpu_percent,
                "memory": {
                    "total_gb": round(memory.total / (1024**3), 2),
                    "available_gb": round(memory.available / (1024**3), 2),
                    "percent_used": memory.percent
                },
                "disk": {
                    "total_gb": round(disk.total / (1024**3), 2),
                    "free_gb": round(disk.free / (1024**3), 2),
                    "percent_used": round((disk.used / disk.total) * 100, 2)
                }
            }

        except Exception as e:
            logger.error("System resource check failed", error=str(e))
            return {
                "status": "error",
                "error": str(e)
            }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/detailed", summary="Detailed health check")
async def detailed_health_check(db: AsyncSession = Depends(get_async_db)):
    """
    Comprehensive health check including database, AI services, and system resources.
    """
    checker = HealthChecker(db)

    checks = {
        "timestamp": _now(),
        "service": settings.app_name,
        "version": settings.app_version,
        "database": await checker.check_database(),
        "ai_services": await checker.check_ai_services(),
        "system": checker.check_system_resources()
    }

    overall_status = "healthy"

    if checks["database"]["status"] != "healthy":
        overall_status = "unhealthy"

    if all(service.get("status") == "unhealthy" for service in checks["ai_services"].values()):
        overall_status = "degraded"

    system = checks["system"]
    if system["status"] == "healthy" and overall_status == "healthy":
        if (system.get("cpu_percent", 0) > 90 or
                system.get("memory", {}).get("percent_used", 0) > 90 or
                system.get("disk", {}).get("percent_used", 0) > 90):
            overall_status = "degraded"

    checks["overall_status"] = overall_status
    logger.info("Health check performed", status=overall_status)

    if overall_status == "unhealthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=checks)

    return checks


@router.get("/database", summary="Database health check")
async def database_health_check(db: AsyncSession = Depends(get_async_db)):
    """
    Check database connectivity and performance.
    """
    result = await HealthChecker(db).check_database()

    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)

    return result


@router.get("/ai-services", summary="AI services health check")
async def ai_services_health_check():
    """
    Check AI service availability and configuration.
    """
    return {
        "timestamp": _now(),
        "ai_services": await HealthChecker(None).check_ai_services()
    }


@router.get("/system", summary="System resources check")
async def system_health_check():
    """
    Check system resource usage (CPU, memory, disk).
    """
    return {
        "timestamp": _now(),
        "system": HealthChecker(None).check_system_resources()
    }
