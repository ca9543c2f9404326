from typing import get_args

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_current_user, get_current_admin
from app.models.user import User as UserModel
from app.schemas.task import (
    ArchiveRequest,
    CoWorkTaskCreate,
    Task as TaskSchema,
    TaskCreate,
    TaskStatus,
    TaskStatusUpdate,
    TaskUpdate,
)
from app.schemas.user import Team
from app.services import clock, lifecycle, visibility
from app.services import tasks as task_service

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


# ── Views ───────────────────────────────────────────────

@router.post("", response_model=TaskSchema, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    return await task_service.create_task(db, task_data, current_user)


@router.get("/user", response_model=list[TaskSchema])
async def list_my_tasks(
    date: str | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    day = clock.parse_date_param(date) if date else clock.local_today()
    tasks = await task_service.tasks_created_on(db, day, user_ids=[current_user.id])
    visible = visibility.apply_view(visibility.PERSONAL, tasks, user_id=current_user.id, target_date=day)
    return visibility.to_response(visible)


@router.get("/previous", response_model=list[TaskSchema])
async def list_previous_tasks(
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    return visibility.to_response(await task_service.previous_tasks(db, current_user, limit=limit))


@router.get("/date", response_model=list[TaskSchema], dependencies=[Depends(get_current_user)])
async def list_tasks_for_date(date: str | None = None, db: AsyncSession = Depends(get_db)):
    if not date:
        raise HTTPException(status_code=400, detail="Query parameter 'date' is required")
    day = clock.parse_date_param(date)
    tasks = await task_service.tasks_created_on(db, day)
    users = await task_service.users_by_id(db, [t.user_id for t in tasks])
    visible = visibility.apply_view(visibility.SCHEDULER, tasks, target_date=day, users=users)
    return visibility.to_response(visible, users)


@router.get("/team/{team}", response_model=list[TaskSchema], dependencies=[Depends(get_current_user)])
async def list_team_tasks(team: str, db: AsyncSession = Depends(get_db)):
    if team not in get_args(Team):
        raise HTTPException(status_code=400, detail=f"Unknown team '{team}'")
    members = await task_service.team_members(db, team)
    tasks = await task_service.tasks_created_on(db, clock.local_today(), user_ids=members.keys())
    visible = visibility.apply_view(visibility.TEAM, tasks, team=team, users=members)
    return visibility.to_response(visible, members)


@router.get("/project", response_model=list[TaskSchema], dependencies=[Depends(get_current_user)])
async def list_all_project_tasks(db: AsyncSession = Depends(get_db)):
    tasks = await task_service.query_tasks(db)
    users = await task_service.users_by_id(db, [t.user_id for t in tasks])
    visible = visibility.apply_view(visibility.PROJECT_ALL, tasks, users=users)
    return visibility.to_response(visible, users)


@router.get("/project/{project_id}", response_model=list[TaskSchema], dependencies=[Depends(get_current_user)])
async def list_project_tasks(project_id: int, db: AsyncSession = Depends(get_db)):
    tasks = await task_service.query_tasks(db, project_id=project_id)
    visible = visibility.apply_view(visibility.PROJECT, tasks, project_id=project_id)
    return visibility.to_response(visible)


# ── Co-work pool ────────────────────────────────────────

@router.get("/co-work", response_model=list[TaskSchema], dependencies=[Depends(get_current_user)])
async def list_co_work_tasks(db: AsyncSession = Depends(get_db)):
    tasks = await task_service.query_tasks(db, is_co_work=True)
    users = await task_service.users_by_id(db, [t.user_id for t in tasks])
    visible = visibility.apply_view(visibility.CO_WORK, tasks, users=users)
    return visibility.to_response(visible, users)


@router.post("/co-work", response_model=TaskSchema, status_code=status.HTTP_201_CREATED)
async def create_co_work_task(
    task_data: CoWorkTaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    return await task_service.create_task(db, task_data, current_user, co_work=True)


@router.post("/co-work/{task_id}/accept", response_model=TaskSchema)
async def accept_co_work_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    task = await task_service.get_task_by_id(db, task_id)
    return await task_service.accept_co_work(db, task, current_user)


@router.delete("/co-work/{task_id}", status_code=status.HTTP_204_NO_CONTENT,
               dependencies=[Depends(get_current_user)])
async def delete_co_work_task(task_id: int, db: AsyncSession = Depends(get_db)):
    task = await task_service.get_task_by_id(db, task_id)
    if not task.is_co_work:
        raise HTTPException(status_code=400, detail="Task is not a co-work task")
    await task_service.delete_task(db, task)
    return None


# ── Archive (admin) ─────────────────────────────────────

@router.post("/archive", response_model=list[TaskSchema], dependencies=[Depends(get_current_admin)])
async def archive_tasks(filters: ArchiveRequest, db: AsyncSession = Depends(get_db)):
    archived = await task_service.archive_tasks(db, filters)
    return visibility.to_response(sorted(archived, key=visibility.by_newest))


@router.get("/archived", response_model=list[TaskSchema], dependencies=[Depends(get_current_admin)])
async def list_archived_tasks(
    before: str | None = None,
    status: TaskStatus | None = None,
    project_id: int | None = Query(None, alias="projectId"),
    db: AsyncSession = Depends(get_db),
):
    filters = ArchiveRequest(
        before=clock.parse_date_param(before) if before else None,
        status=status,
        project_id=project_id,
    )
    tasks = await task_service.archived_tasks(db, filters)
    users = await task_service.users_by_id(db, [t.user_id for t in tasks])
    visible = visibility.apply_view(visibility.ARCHIVE, tasks, users=users)
    return visibility.to_response(visible, users)


# ── Single task ─────────────────────────────────────────

@router.patch("/{task_id}", response_model=TaskSchema)
async def update_task(
    task_id: int,
    update_data: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    task = await task_service.get_task_by_id(db, task_id)
    lifecycle.ensure_owner(task, current_user)

    project = None
    if update_data.project_id is not None and update_data.project_id != task.project_id:
        project = await task_service.resolve_project_reference(db, update_data.project_id)

    changes = lifecycle.edit_changes(task, current_user, update_data, project)
    if not changes:
        return task
    return await task_service.apply_changes(db, task, changes, expected={"user_id": current_user.id})


@router.patch("/{task_id}/status", response_model=TaskSchema)
async def update_task_status(
    task_id: int,
    update_data: TaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    task = await task_service.get_task_by_id(db, task_id)
    changes = lifecycle.status_change(task, current_user, update_data.status)
    return await task_service.apply_changes(db, task, changes, expected={"user_id": current_user.id})


@router.post("/{task_id}/move-to-cowork", response_model=TaskSchema)
async def move_task_to_co_work(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    task = await task_service.get_task_by_id(db, task_id)
    return await task_service.move_to_co_work(db, task, current_user)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    task = await task_service.get_task_by_id(db, task_id)
    lifecycle.ensure_can_delete(task, current_user)
    await task_service.delete_task(db, task)
    return None
