from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.exceptions import envelope
from app.core.security import Identity, get_current_identity
from app.db.session import get_db_session
from app.models.task import TaskCreate, TaskStatus, TaskUpdate, serialize_task
from app.services import workflow

router = APIRouter()

@router.get("")
async def list_my_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Lists the caller's tasks, newest first.
    ?status=<enum> narrows to an exact status match.
    """
    tasks = await workflow.list_tasks(db, user_id=identity.user_id, status=status_filter)
    return envelope(
        status.HTTP_200_OK,
        success=True,
        data={"tasks": [serialize_task(task) for task in tasks]},
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_new_task(
    task_in: TaskCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Creates a task owned by the caller and allocates its code.
    """
    task = await workflow.create_task(db, user_id=identity.user_id, task_in=task_in)
    return envelope(
        status.HTTP_201_CREATED,
        success=True,
        message="Task created successfully",
        data={"task": serialize_task(task)},
    )

@router.get("/{task_ref}")
async def get_single_task(
    task_ref: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Fetches one task by internal id or by code. Owner only.
    """
    task = await workflow.get_task(db, user_id=identity.user_id, ref=task_ref)
    return envelope(status.HTTP_200_OK, success=True, data={"task": serialize_task(task)})

@router.put("/{task_ref}")
async def update_existing_task(
    task_ref: str,
    task_in: TaskUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Partial update of title, description and status. Owner only.
    """
    task = await workflow.update_task(
        db,
        user_id=identity.user_id,
        ref=task_ref,
        changes=task_in.model_dump(exclude_unset=True),
    )
    return envelope(
        status.HTTP_200_OK,
        success=True,
        message="Task updated successfully",
        data={"task": serialize_task(task)},
    )

@router.delete("/{task_ref}")
async def delete_existing_task(
    task_ref: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Hard delete. The task's code is not handed out again.
    """
    await workflow.delete_task(db, user_id=identity.user_id, ref=task_ref)
    return envelope(status.HTTP_200_OK, success=True, message="Task deleted successfully")
