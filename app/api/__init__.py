from fastapi import APIRouter
from app.api.endpoints import auth, tasks, workflow

# This is the main API router for the entire application.
# Mounted under /api in app/main.py.
api_router = APIRouter()

api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentication"]
)

api_router.include_router(
    tasks.router,
    prefix="/tasks",
    tags=["Tasks"]
)

# Status transitions are addressed by task code at the top level
# (/task/{code}, /task-failed/{code}, /bulk-task-failed).
api_router.include_router(
    workflow.router,
    tags=["Task Workflow"]
)
