from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import envelope
from app.core.security import Identity, Principal, get_current_identity, get_fixing_principal
from app.db.session import get_db_session
from app.models.task import BulkTaskFailedRequest, serialize_task
from app.services import workflow

router = APIRouter()

@router.post("/task/{code}")
async def move_task_to_testing(
    code: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Guarded transition in_progress -> testing, addressed by task code.
    """
    task = await workflow.mark_testing(db, user_id=identity.user_id, code=code)
    return envelope(
        status.HTTP_200_OK,
        success=True,
        message="Task updated to testing",
        data={"task": serialize_task(task)},
    )

@router.post("/task-failed/{code}")
async def mark_task_failed(
    code: str,
    principal: Principal = Depends(get_fixing_principal),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Moves a task to 'fixing' from any status.
    Owner only, unless the automation API key is presented.
    """
    task = await workflow.mark_fixing(db, principal=principal, code=code)
    return envelope(
        status.HTTP_200_OK,
        success=True,
        message="Task status updated to fixing",
        data={"task": serialize_task(task)},
    )

@router.post("/bulk-task-failed")
async def bulk_mark_tasks_failed(
    payload: BulkTaskFailedRequest,
    principal: Principal = Depends(get_fixing_principal),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Moves every listed task (by code) that the caller owns to 'fixing'
    in a single transaction and reports how many were changed.
    """
    updated, tasks = await workflow.bulk_mark_fixing(db, principal=principal, codes=payload.ids)
    return envelope(
        status.HTTP_200_OK,
        success=True,
        message=f"{updated} tasks updated to fixing",
        data={"updated": updated, "tasks": [serialize_task(task) for task in tasks]},
    )
