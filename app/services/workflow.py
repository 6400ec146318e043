"""
Task workflow: CRUD plus the guarded status transitions.

Ownership is checked here rather than in the routers so that every entry
point (HTTP, seed script) gets the same rules. The automation bypass only
lifts the ownership check on the two "mark as fixing" operations.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from app.core.exceptions import Conflict, Forbidden, NotFound, ValidationFailed
from app.core.security import Bypass, Identity, Principal
from app.db import crud
from app.db.models import Task
from app.models.task import TaskCreate, TaskStatus
from app.services.task_codes import allocate_code

logger = logging.getLogger("tasktrack.workflow")


def _clean_description(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _ensure_owner(task: Optional[Task], user_id: UUID) -> Task:
    if task is None:
        raise NotFound("Task not found")
    if task.user_id != user_id:
        raise Forbidden("Forbidden")
    return task


async def _resolve(db: AsyncSession, ref: str) -> Optional[Task]:
    """A task reference is either its internal UUID or its code."""
    try:
        task_id = UUID(ref)
    except ValueError:
        return await crud.get_task_by_code(db, ref)
    return await crud.get_task(db, task_id)


# --- CRUD ---

async def create_task(db: AsyncSession, user_id: UUID, task_in: TaskCreate) -> Task:
    title = (task_in.title or "").strip()
    if not title:
        raise ValidationFailed("Title is required")

    user = await crud.get_user(db, user_id)
    if user is None:
        raise NotFound("User not found")

    # Read before the loop: a rollback expires every loaded instance.
    owner_name = user.name
    description = _clean_description(task_in.description)
    status = task_in.status or TaskStatus.TODO

    attempts = max(1, settings.CODE_ALLOCATION_MAX_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            code = await allocate_code(db, owner_name)
            task = await crud.insert_task(
                db,
                owner_id=user_id,
                code=code,
                title=title,
                description=description,
                status=status,
            )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            # An owner deleted mid-request fails the foreign key, not the code constraint.
            if await crud.get_user(db, user_id) is None:
                raise NotFound("User not found")
            logger.warning(f"Task code collision for '{owner_name}' (attempt {attempt}/{attempts}), retrying")
            continue

        await db.refresh(task)
        logger.info(f"Created task {task.code} for user {user_id}")
        return task

    raise Conflict("Could not allocate a unique task code, please retry")


async def list_tasks(db: AsyncSession, user_id: UUID, status: Optional[TaskStatus] = None) -> list[Task]:
    return await crud.get_tasks_for_user(db, user_id=user_id, status=status)


async def get_task(db: AsyncSession, user_id: UUID, ref: str) -> Task:
    return _ensure_owner(await _resolve(db, ref), user_id)


async def update_task(db: AsyncSession, user_id: UUID, ref: str, changes: dict) -> Task:
    """
    Free-form edit of title, description and status. No transition rules
    apply here; the guarded transitions have their own operations.
    """
    task = _ensure_owner(await _resolve(db, ref), user_id)

    cleaned: dict = {}
    if "title" in changes:
        title = (changes["title"] or "").strip()
        if not title:
            raise ValidationFailed("Title cannot be empty")
        cleaned["title"] = title
    if "description" in changes:
        cleaned["description"] = _clean_description(changes["description"])
    if "status" in changes:
        if changes["status"] is None:
            raise ValidationFailed("Status cannot be null")
        cleaned["status"] = changes["status"]

    if not cleaned:
        return task
    return await crud.update_task_fields(db, task, cleaned)


async def delete_task(db: AsyncSession, user_id: UUID, ref: str) -> None:
    task = _ensure_owner(await _resolve(db, ref), user_id)
    code = task.code
    await crud.delete_task(db, task)
    logger.info(f"Deleted task {code}")


# --- Guarded transitions ---

async def mark_testing(db: AsyncSession, user_id: UUID, code: str) -> Task:
    """in_progress -> testing. Any other current status is rejected."""
    task = _ensure_owner(await crud.get_task_by_code(db, code), user_id)

    if task.status != TaskStatus.IN_PROGRESS:
        raise ValidationFailed(
            f"Task status must be '{TaskStatus.IN_PROGRESS.value}' to update to testing. "
            f"Current status: {TaskStatus(task.status).value}"
        )

    task = await crud.update_task_fields(db, task, {"status": TaskStatus.TESTING})
    logger.info(f"Task {code}: in_progress -> testing")
    return task


async def mark_fixing(db: AsyncSession, principal: Principal, code: str) -> Task:
    """Any status -> fixing."""
    task = await crud.get_task_by_code(db, code)
    if task is None:
        raise NotFound("Task not found")
    if isinstance(principal, Identity) and task.user_id != principal.user_id:
        raise Forbidden("Forbidden")

    previous = TaskStatus(task.status).value
    task = await crud.update_task_fields(db, task, {"status": TaskStatus.FIXING})
    via = " (api key)" if isinstance(principal, Bypass) else ""
    logger.info(f"Task {code}: {previous} -> fixing{via}")
    return task


async def bulk_mark_fixing(db: AsyncSession, principal: Principal, codes) -> tuple[int, list[Task]]:
    """
    Moves every listed task the principal may touch to 'fixing' in one
    transaction. Codes that are unknown or owned by someone else are
    skipped, not reported.
    """
    if not isinstance(codes, list) or not codes:
        raise ValidationFailed("Task IDs array is required")

    owner_id = principal.user_id if isinstance(principal, Identity) else None

    try:
        tasks = await crud.get_tasks_by_codes(db, set(codes), owner_id=owner_id, lock=True)
        if not tasks:
            await db.rollback()
            return 0, []

        task_ids = [task.id for task in tasks]
        updated = await crud.set_status_for_tasks(db, task_ids, TaskStatus.FIXING)
        final_tasks = await crud.reload_tasks(db, task_ids)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Bulk fixing: {updated} of {len(codes)} requested task(s) updated")
    return updated, final_tasks
