import asyncio
import uuid
import pytest

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import Conflict, Forbidden, NotFound, ValidationFailed
from app.core.security import Bypass, Identity
from app.db import crud
from app.models.task import TaskCreate, TaskStatus
from app.services import workflow


async def create(db, user, title="Task", **fields):
    return await workflow.create_task(db, user_id=user.id, task_in=TaskCreate(title=title, **fields))


async def test_create_task_allocates_sequential_codes(db, make_user):
    dimas = await make_user("Dimas Maulana")

    first = await create(db, dimas, "First")
    second = await create(db, dimas, "Second")

    assert first.code == "DM-001"
    assert second.code == "DM-002"
    assert first.status == TaskStatus.TODO
    assert first.user_id == dimas.id


async def test_create_task_trims_and_normalises_fields(db, alice):
    task = await create(db, alice, "  Write docs  ", description="  foo  ", status=TaskStatus.IN_PROGRESS)
    assert task.title == "Write docs"
    assert task.description == "foo"
    assert task.status == TaskStatus.IN_PROGRESS

    blank = await create(db, alice, "Other", description="   ")
    assert blank.description is None


@pytest.mark.parametrize("title", [None, "", "   "])
async def test_create_task_requires_title(db, alice, title):
    with pytest.raises(ValidationFailed, match="Title is required"):
        await workflow.create_task(db, user_id=alice.id, task_in=TaskCreate(title=title))


async def test_create_task_for_unknown_user(db):
    with pytest.raises(NotFound, match="User not found"):
        await workflow.create_task(db, user_id=uuid.uuid4(), task_in=TaskCreate(title="x"))


async def test_concurrent_creations_never_share_a_code(session_factory, make_user):
    dimas = await make_user("Dimas Maulana")
    # Same initials, different person
    dewi = await make_user("Dewi Mahesa")

    async def create_in_own_session(user, n):
        async with session_factory() as session:
            task = await workflow.create_task(session, user_id=user.id, task_in=TaskCreate(title=f"t{n}"))
            return task.code

    codes = await asyncio.gather(*[
        create_in_own_session(dimas if n % 2 else dewi, n) for n in range(8)
    ])

    assert len(set(codes)) == 8
    assert sorted(codes) == [f"DM-{n:03d}" for n in range(1, 9)]


async def test_list_tasks_filters_by_owner_and_status(db, alice, bob):
    a1 = await create(db, alice, "a1")
    a2 = await create(db, alice, "a2", status=TaskStatus.DONE)
    await create(db, bob, "b1")

    all_alice = await workflow.list_tasks(db, alice.id)
    assert [t.id for t in all_alice] == [a2.id, a1.id]

    done = await workflow.list_tasks(db, alice.id, status=TaskStatus.DONE)
    assert [t.id for t in done] == [a2.id]


async def test_get_task_by_id_or_code_and_ownership(db, alice, bob):
    task = await create(db, alice)

    assert (await workflow.get_task(db, alice.id, str(task.id))).id == task.id
    assert (await workflow.get_task(db, alice.id, task.code)).id == task.id

    with pytest.raises(Forbidden):
        await workflow.get_task(db, bob.id, task.code)
    with pytest.raises(NotFound):
        await workflow.get_task(db, alice.id, "ZZ-999")


async def test_update_task_free_form(db, alice):
    task = await create(db, alice, description="keep")

    # No transition rules on the generic update
    updated = await workflow.update_task(db, alice.id, str(task.id), {"status": TaskStatus.CLOSED})
    assert updated.status == TaskStatus.CLOSED
    assert updated.description == "keep"

    updated = await workflow.update_task(db, alice.id, str(task.id), {"title": "  New  ", "description": ""})
    assert updated.title == "New"
    assert updated.description is None


@pytest.mark.parametrize("changes, message", [
    ({"title": "   "}, "Title cannot be empty"),
    ({"title": None}, "Title cannot be empty"),
    ({"status": None}, "Status cannot be null"),
])
async def test_update_task_rejects_empty_required_fields(db, alice, changes, message):
    task = await create(db, alice)
    with pytest.raises(ValidationFailed, match=message):
        await workflow.update_task(db, alice.id, task.code, changes)


async def test_update_and_delete_require_owner(db, alice, bob):
    task = await create(db, alice)
    with pytest.raises(Forbidden):
        await workflow.update_task(db, bob.id, task.code, {"title": "mine now"})
    with pytest.raises(Forbidden):
        await workflow.delete_task(db, bob.id, task.code)

    await workflow.delete_task(db, alice.id, task.code)
    assert await crud.get_task_by_code(db, task.code) is None


async def test_mark_testing_requires_in_progress(db, alice):
    task = await create(db, alice)

    with pytest.raises(ValidationFailed) as exc_info:
        await workflow.mark_testing(db, alice.id, task.code)
    assert "must be 'in_progress'" in exc_info.value.message
    assert "Current status: todo" in exc_info.value.message
    assert (await crud.get_task_by_code(db, task.code)).status == TaskStatus.TODO


async def test_mark_testing_from_in_progress(db, alice):
    task = await create(db, alice, status=TaskStatus.IN_PROGRESS)
    moved = await workflow.mark_testing(db, alice.id, task.code)
    assert moved.status == TaskStatus.TESTING


async def test_mark_testing_checks_owner_before_precondition(db, alice, bob):
    task = await create(db, alice)
    with pytest.raises(Forbidden):
        await workflow.mark_testing(db, bob.id, task.code)


@pytest.mark.parametrize("start", list(TaskStatus))
async def test_mark_fixing_from_any_status(db, alice, start):
    task = await create(db, alice, status=start)
    moved = await workflow.mark_fixing(db, Identity(alice.id), task.code)
    assert moved.status == TaskStatus.FIXING


async def test_mark_fixing_other_users_task(db, alice, bob):
    task = await create(db, alice, status=TaskStatus.TESTING)

    with pytest.raises(Forbidden):
        await workflow.mark_fixing(db, Identity(bob.id), task.code)
    assert (await crud.get_task_by_code(db, task.code)).status == TaskStatus.TESTING

    moved = await workflow.mark_fixing(db, Bypass(), task.code)
    assert moved.status == TaskStatus.FIXING


async def test_bulk_mark_fixing_only_touches_owned_tasks(db, alice, bob):
    mine = [await create(db, alice, f"a{n}", status=TaskStatus.TESTING) for n in range(2)]
    theirs = await create(db, bob, "b", status=TaskStatus.TESTING)

    codes = [t.code for t in mine] + [theirs.code, "NOPE-001"]
    updated, tasks = await workflow.bulk_mark_fixing(db, Identity(alice.id), codes)

    assert updated == 2
    assert sorted(t.code for t in tasks) == sorted(t.code for t in mine)
    assert all(t.status == TaskStatus.FIXING for t in tasks)
    assert (await crud.get_task_by_code(db, theirs.code)).status == TaskStatus.TESTING


async def test_bulk_mark_fixing_with_bypass_ignores_ownership(db, alice, bob):
    a = await create(db, alice)
    b = await create(db, bob)

    updated, _ = await workflow.bulk_mark_fixing(db, Bypass(), [a.code, b.code, a.code])

    assert updated == 2


async def test_bulk_mark_fixing_nothing_matched(db, alice):
    assert await workflow.bulk_mark_fixing(db, Identity(alice.id), ["XX-001"]) == (0, [])


@pytest.mark.parametrize("codes", [[], None, "DM-001"])
async def test_bulk_mark_fixing_rejects_missing_ids(db, alice, codes):
    with pytest.raises(ValidationFailed, match="Task IDs array is required"):
        await workflow.bulk_mark_fixing(db, Identity(alice.id), codes)


# --- Code collisions ---

async def test_create_task_retries_after_code_collision(db, make_user, monkeypatch):
    dimas = await make_user("Dimas Maulana")
    await create(db, dimas, "First")

    real_allocate = workflow.allocate_code
    calls = []

    async def stale_then_real(session, owner_name):
        calls.append(owner_name)
        if len(calls) == 1:
            return "DM-001"
        return await real_allocate(session, owner_name)

    monkeypatch.setattr(workflow, "allocate_code", stale_then_real)

    task = await create(db, dimas, "Second")

    assert task.code == "DM-002"
    assert len(calls) == 2


async def test_create_task_gives_up_with_conflict(db, make_user, monkeypatch):
    dimas = await make_user("Dimas Maulana")
    await create(db, dimas, "First")

    async def always_taken(session, owner_name):
        return "DM-001"

    monkeypatch.setattr(workflow, "allocate_code", always_taken)

    with pytest.raises(Conflict):
        await create(db, dimas, "Second")

    codes = [task.code for task in await crud.get_tasks_for_user(db, dimas.id)]
    assert codes == ["DM-001"]


async def test_create_task_owner_deleted_mid_request_is_not_retried(db, alice, monkeypatch):
    inserts = []

    async def failing_insert(session, **fields):
        inserts.append(fields["code"])
        raise IntegrityError("INSERT INTO tasks", {}, Exception("FOREIGN KEY constraint failed"))

    lookups = []
    real_get_user = crud.get_user

    async def owner_vanishes(session, user_id):
        lookups.append(user_id)
        if len(lookups) > 1:
            return None
        return await real_get_user(session, user_id)

    monkeypatch.setattr(crud, "insert_task", failing_insert)
    monkeypatch.setattr(crud, "get_user", owner_vanishes)

    with pytest.raises(NotFound, match="User not found"):
        await create(db, alice, "Orphan")

    assert len(inserts) == 1
