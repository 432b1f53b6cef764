from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Import logging system
from core.config import settings
from core.logging import setup_logging, get_logger, app_logger

from core.exceptions import setup_exception_handlers
from core.middleware import setup_middleware
from db_config import init_models

# Import routers
from routers import (
    auth, subscription, subjects, subject_data, reviews, sharing, exam_snipe,
    promo_codes, admin, feedback, generation, quizzes, health
)

# Initialize logging system early
setup_logging()
logger = get_logger("fastapi")

# Create FastAPI app instance
app = FastAPI(
    title=settings.app_name,
    description="Backend API for Synapse: course material in, lessons, quizzes and flashcards out",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Setup global exception handlers
setup_exception_handlers(app)

# No request timeout: lesson streams can run for minutes
middleware_config = {
    "enable_security_headers": settings.enable_security_headers,
    "enable_request_logging": settings.enable_request_logging,
    "enable_size_limit": settings.enable_request_size_limit,
    "max_request_size": settings.max_request_size_bytes,
}
setup_middleware(app, middleware_config)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(subscription.router)
app.include_router(subjects.router)
app.include_router(subject_data.router)
app.include_router(reviews.router)
app.include_router(sharing.router)
app.include_router(exam_snipe.router)
app.include_router(promo_codes.router)
app.include_router(admin.router)
app.include_router(feedback.router)
app.include_router(generation.router)
app.include_router(quizzes.router)
app.include_router(health.router)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Basic health check endpoint to verify the API is running.
    """
    logger.info("Health check endpoint accessed")
    return {"status": "ok", "message": "Synapse API is running"}


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint providing basic API information.
    """
    return {
        "message": "Welcome to Synapse API",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
        "health_checks": {
            "basic": "/health",
            "detailed": "/health/detailed",
            "database": "/health/database",
            "ai_services": "/health/ai-services",
            "system": "/health/system"
        }
    }


# Application lifecycle events
@app.on_event("startup")
async def startup_event():
    """Create missing tables on startup."""
    app_logger.info("FastAPI application starting up", extra={"component": "startup"})
    await init_models()


@app.on_event("shutdown")
async def shutdown_event():
    """Handle application shutdown."""
    app_logger.info("FastAPI application shutting down", extra={"component": "shutdown"})
