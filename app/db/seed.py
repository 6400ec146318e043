"""
Demo data for local development.

    python -m app.db.seed

Wipes users and tasks, then creates two demo accounts (password
"password123") with tasks in every workflow status. Codes are allocated
through the workflow service, so the counters end up consistent.
"""
import asyncio
import logging

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import setup_logging
from app.core.security import get_password_hash
from app.db import crud
from app.db.models import Task, TaskCodeCounter, User
from app.models.task import TaskCreate, TaskStatus
from app.services import workflow

logger = logging.getLogger("tasktrack.seed")

DEMO_PASSWORD = "password123"

DEMO_DATA = {
    ("John Doe", "john@example.com"): [
        ("Implement user authentication", "Add login and register functionality with JWT tokens", TaskStatus.DONE),
        ("Design database schema", "Create the User and Task tables", TaskStatus.DONE),
        ("Build task management UI", "Create dashboard with task list, filters, and CRUD operations", TaskStatus.IN_PROGRESS),
        ("Add task status workflow", "Implement custom API endpoints for status transitions", TaskStatus.TESTING),
        ("Write unit tests", "Add tests for API endpoints", TaskStatus.TODO),
        ("Fix login redirect", None, TaskStatus.FIXING),
    ],
    ("Jane Smith", "jane@example.com"): [
        ("Set up CI pipeline", "Run the test suite on every push", TaskStatus.IN_PROGRESS),
        ("Write API documentation", None, TaskStatus.TODO),
        ("Archive old sprint board", None, TaskStatus.CLOSED),
    ],
}


async def seed_demo_data(db: AsyncSession) -> dict[str, list[str]]:
    """
    Returns the created task codes per user email.
    """
    # Counters are wiped too, so a reseed starts again from -001.
    await db.execute(delete(Task))
    await db.execute(delete(User))
    await db.execute(delete(TaskCodeCounter))
    await db.commit()

    hashed_password = get_password_hash(DEMO_PASSWORD)
    created: dict[str, list[str]] = {}

    for (name, email), tasks in DEMO_DATA.items():
        user = await crud.create_user(db, name=name, email=email, hashed_password=hashed_password)
        user_id = user.id
        created[email] = []
        for title, description, status in tasks:
            task = await workflow.create_task(
                db,
                user_id=user_id,
                task_in=TaskCreate(title=title, description=description, status=status),
            )
            created[email].append(task.code)
        logger.info(f"Seeded {email} with {len(tasks)} tasks")

    return created


async def main() -> None:
    from app.db.session import AsyncSessionLocal, create_tables, engine

    setup_logging("INFO")
    await create_tables()
    async with AsyncSessionLocal() as session:
        created = await seed_demo_data(session)
    await engine.dispose()

    for email, codes in created.items():
        logger.info(f"{email}: {', '.join(codes)}")
    logger.info(f"Seed complete. Demo accounts log in with '{DEMO_PASSWORD}'.")


if __name__ == "__main__":
    asyncio.run(main())
