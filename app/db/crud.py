from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from uuid import UUID
from typing import Iterable, Optional

from app.db.models import User, Task, TaskCodeCounter
from app.models.task import TaskStatus

# --- User CRUD Functions ---
async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()

async def get_user(db: AsyncSession, user_id: UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()

async def create_user(db: AsyncSession, name: str, email: str, hashed_password: str) -> User:
    db_user = User(name=name, email=email.lower(), hashed_password=hashed_password)
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)
    return db_user

# --- Task read functions ---
async def get_task(db: AsyncSession, task_id: UUID) -> Task | None:
    result = await db.execute(select(Task).where(Task.id == task_id))
    return result.scalar_one_or_none()

async def get_task_by_code(db: AsyncSession, code: str) -> Task | None:
    result = await db.execute(select(Task).where(Task.code == code))
    return result.scalar_one_or_none()

async def get_tasks_for_user(db: AsyncSession, user_id: UUID, status: Optional[TaskStatus] = None) -> list[Task]:
    query = select(Task).where(Task.user_id == user_id)
    if status is not None:
        query = query.where(Task.status == status)
    result = await db.execute(query.order_by(Task.created_at.desc()))
    return list(result.scalars().all())

# --- Task write functions ---
# These flush but do not commit; the caller owns the transaction.
async def get_codes_with_prefix(db: AsyncSession, prefix: str) -> list[str]:
    result = await db.execute(select(Task.code).where(Task.code.startswith(f"{prefix}-", autoescape=True)))
    return list(result.scalars().all())

async def bump_code_counter(db: AsyncSession, prefix: str, floor: int) -> int:
    """
    Atomically advances the counter for 'prefix' and returns the new value.

    The new value is at least floor + 1 and at least the previous value + 1.
    On PostgreSQL the upsert takes a row lock, so concurrent transactions
    using the same prefix queue behind each other until commit.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        greatest = func.greatest
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        greatest = func.max
    else:
        raise NotImplementedError(f"Task code counter is not supported on '{dialect}'")

    stmt = insert(TaskCodeCounter).values(prefix=prefix, last_value=floor + 1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[TaskCodeCounter.prefix],
        set_={"last_value": greatest(TaskCodeCounter.last_value + 1, stmt.excluded.last_value)},
    ).returning(TaskCodeCounter.last_value)

    result = await db.execute(stmt)
    return int(result.scalar_one())

async def insert_task(
    db: AsyncSession,
    owner_id: UUID,
    code: str,
    title: str,
    description: Optional[str],
    status: TaskStatus,
) -> Task:
    db_task = Task(code=code, title=title, description=description, status=status, user_id=owner_id)
    db.add(db_task)
    await db.flush()
    return db_task

async def get_tasks_by_codes(
    db: AsyncSession,
    codes: Iterable[str],
    owner_id: Optional[UUID] = None,
    lock: bool = False,
) -> list[Task]:
    query = select(Task).where(Task.code.in_(list(codes)))
    if owner_id is not None:
        query = query.where(Task.user_id == owner_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query.order_by(Task.code))
    return list(result.scalars().all())

async def set_status_for_tasks(db: AsyncSession, task_ids: list[UUID], status: TaskStatus) -> int:
    result = await db.execute(
        update(Task)
        .where(Task.id.in_(task_ids))
        .values(status=status)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount

async def reload_tasks(db: AsyncSession, task_ids: list[UUID]) -> list[Task]:
    result = await db.execute(
        select(Task)
        .where(Task.id.in_(task_ids))
        .order_by(Task.code)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())

# --- Single-task mutations (commit immediately) ---
async def update_task_fields(db: AsyncSession, db_task: Task, changes: dict) -> Task:
    for key, value in changes.items():
        setattr(db_task, key, value)
    await db.commit()
    await db.refresh(db_task)
    return db_task

async def delete_task(db: AsyncSession, db_task: Task) -> None:
    await db.delete(db_task)
    await db.commit()
