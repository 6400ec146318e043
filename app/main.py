import logging
import uvicorn
from fastapi import FastAPI
from app.api import api_router
from app.core.exceptions import register_exception_handlers
from app.core.logging import setup_logging
from config.settings import settings

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("tasktrack.app")

# Create the main FastAPI application instance
app = FastAPI(
    title="Task Tracker",
    description="Multi-user task tracking API with a guarded status workflow.",
    version="1.0.0",
)

# Every failure leaves the API in the { success, message } envelope.
register_exception_handlers(app)

# All routes from /api/__init__.py, e.g. /api/tasks, /api/auth/login
app.include_router(api_router, prefix="/api")

# --- Root Endpoint ---
@app.get("/", tags=["Health Check"])
async def root():
    """
    A simple health check endpoint to confirm the API is running.
    """
    return {
        "success": True,
        "message": "Task Tracker API is running"
    }

# --- App Event Handlers ---

@app.on_event("startup")
async def startup_event():
    """
    Creates missing tables when AUTO_CREATE_TABLES is on.
    """
    logger.info(f"Starting Task Tracker API ({settings.ENVIRONMENT})")
    if settings.AUTO_CREATE_TABLES:
        from app.db.session import create_tables
        await create_tables()
        logger.info("Database tables verified.")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Releases pooled database connections.
    """
    from app.db.session import engine
    await engine.dispose()
    logger.info("Task Tracker API shut down.")


def run() -> None:
    """
    Serves the API with uvicorn (the `tasktrack-api` script).
    """
    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
