import logging
from datetime import date, datetime, timezone

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from fastapi import HTTPException, status

from app.models.tasks import Task
from app.models.user import User
from app.models.project import Project
from app.schemas.task import TaskBase, ArchiveRequest
from app.services import clock, lifecycle

logger = logging.getLogger(__name__)


def project_is_live():
    # Legacy rows predate the is_deleted column and carry NULL
    return or_(Project.is_deleted == False, Project.is_deleted.is_(None))


def user_is_live():
    return or_(User.is_deleted == False, User.is_deleted.is_(None))


async def get_project(db: AsyncSession, project_id: int) -> Project:
    result = await db.execute(
        select(Project).filter(Project.id == project_id, project_is_live())
    )
    project = result.scalars().first()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def resolve_project_reference(db: AsyncSession, project_id: int | None) -> Project:
    """Like get_project, but a dangling reference in a request body is a client error."""
    if project_id is None:
        raise HTTPException(status_code=400, detail="Project is required")
    try:
        return await get_project(db, project_id)
    except HTTPException:
        raise HTTPException(status_code=400, detail=f"Project {project_id} does not exist")


async def list_projects(db: AsyncSession) -> list[Project]:
    result = await db.execute(
        select(Project).filter(project_is_live()).order_by(Project.created_at.desc(), Project.id.desc())
    )
    return result.scalars().all()


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).filter(User.id == user_id, user_is_live()))
    user = result.scalars().first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def users_by_id(db: AsyncSession, user_ids=None) -> dict[int, User]:
    query = select(User)
    if user_ids is not None:
        user_ids = list(set(user_ids))
        if not user_ids:
            return {}
        query = query.filter(User.id.in_(user_ids))
    result = await db.execute(query)
    return {u.id: u for u in result.scalars().all()}


async def team_members(db: AsyncSession, team: str) -> dict[int, User]:
    result = await db.execute(select(User).filter(User.team == team))
    return {u.id: u for u in result.scalars().all()}


async def get_task_by_id(db: AsyncSession, task_id: int) -> Task:
    result = await db.execute(select(Task).filter(Task.id == task_id))
    task = result.scalars().first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


async def query_tasks(
    db: AsyncSession,
    *,
    user_ids=None,
    project_id: int | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    include_archived: bool = False,
    is_co_work: bool | None = None,
) -> list[Task]:
    """
    Raw task set for a view. Narrows in SQL where it is cheap; the visibility
    filter applies the authoritative rules afterwards.
    """
    query = select(Task)
    if user_ids is not None:
        user_ids = list(user_ids)
        if not user_ids:
            return []
        query = query.filter(Task.user_id.in_(user_ids))
    if project_id is not None:
        query = query.filter(Task.project_id == project_id)
    if created_from is not None:
        query = query.filter(Task.created_at >= created_from)
    if created_to is not None:
        query = query.filter(Task.created_at <= created_to)
    if not include_archived:
        query = query.filter(Task.is_archived == False)
    if is_co_work is not None:
        query = query.filter(Task.is_co_work == is_co_work)
    result = await db.execute(query)
    return result.scalars().all()


async def tasks_created_on(db: AsyncSession, day: date, **filters) -> list[Task]:
    start, end = clock.day_bounds(day)
    return await query_tasks(db, created_from=start, created_to=end, **filters)


async def previous_tasks(db: AsyncSession, user: User, limit: int = 50, now: datetime | None = None) -> list[Task]:
    """The user's own tasks from before today, newest first, for copying into a new one."""
    start_of_today, _ = clock.day_bounds(clock.local_today(now))
    result = await db.execute(
        select(Task)
        .filter(
            Task.user_id == user.id,
            Task.created_at < start_of_today,
            Task.is_archived == False,
            Task.is_co_work == False,
        )
        .order_by(Task.created_at.desc(), Task.id.desc())
        .limit(limit)
    )
    return result.scalars().all()


async def create_task(db: AsyncSession, task_data: TaskBase, owner: User, *, co_work: bool = False) -> Task:
    project = await resolve_project_reference(db, task_data.project_id)
    new_task = lifecycle.new_task(task_data, owner, project, co_work=co_work)
    db.add(new_task)
    await db.commit()
    await db.refresh(new_task)
    return new_task


async def apply_changes(db: AsyncSession, task: Task, changes: dict, expected: dict | None = None) -> Task:
    """
    Write `changes` only if the row still matches `expected`. Zero affected
    rows means another request moved the task first.
    """
    guards = [getattr(Task, column) == value for column, value in (expected or {}).items()]
    result = await db.execute(
        update(Task)
        .where(Task.id == task.id, *guards)
        .values(**changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Task was changed by another request, reload and try again",
        )
    await db.commit()
    await db.refresh(task)
    return task


async def move_to_co_work(db: AsyncSession, task: Task, actor: User) -> Task:
    changes = lifecycle.move_to_co_work(task, actor)
    return await apply_changes(db, task, changes, expected={"user_id": actor.id, "is_co_work": False})


async def accept_co_work(db: AsyncSession, task: Task, actor: User) -> Task:
    project = None
    if task.project_id is not None:
        result = await db.execute(
            select(Project).filter(Project.id == task.project_id, project_is_live())
        )
        # A deleted project keeps the name frozen on the task
        project = result.scalars().first()
    changes = lifecycle.accept_co_work(task, actor, project)
    task = await apply_changes(db, task, changes, expected={"is_co_work": True})
    logger.info("[CO-WORK] Task %s accepted by user %s", task.id, actor.id)
    return task


async def delete_task(db: AsyncSession, task: Task) -> None:
    await db.delete(task)
    await db.commit()


def _archive_filter(query, filters: ArchiveRequest):
    if filters.before is not None:
        # Strictly before local midnight of the cutoff date
        cutoff, _ = clock.day_bounds(filters.before)
        query = query.filter(Task.created_at < cutoff)
    if filters.status is not None:
        query = query.filter(Task.status == filters.status)
    if filters.project_id is not None:
        query = query.filter(Task.project_id == filters.project_id)
    return query


async def archive_tasks(db: AsyncSession, filters: ArchiveRequest) -> list[Task]:
    query = _archive_filter(select(Task).filter(Task.is_archived == False), filters)
    result = await db.execute(query)
    tasks = result.scalars().all()
    for task in tasks:
        task.is_archived = True
    await db.commit()
    logger.info("[ARCHIVE] Archived %d tasks", len(tasks))
    return tasks


async def archived_tasks(db: AsyncSession, filters: ArchiveRequest) -> list[Task]:
    query = _archive_filter(select(Task).filter(Task.is_archived == True), filters)
    result = await db.execute(query)
    return result.scalars().all()


async def soft_delete_user(db: AsyncSession, user: User) -> None:
    # Freeze the name onto the user's tasks so history still reads correctly
    await db.execute(
        update(Task).where(Task.user_id == user.id).values(username=user.username)
        .execution_options(synchronize_session=False)
    )
    user.is_deleted = True
    user.deleted_at = datetime.now(timezone.utc)
    await db.commit()


async def soft_delete_project(db: AsyncSession, project: Project) -> None:
    await db.execute(
        update(Task).where(Task.project_id == project.id).values(project_name=project.name)
        .execution_options(synchronize_session=False)
    )
    project.is_deleted = True
    project.is_active = False
    project.deleted_at = datetime.now(timezone.utc)
    await db.commit()
