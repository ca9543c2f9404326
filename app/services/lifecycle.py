"""
Task lifecycle rules.

A task is in one of three states:

    personal-active  --move-to-co-work-->  co-work-pending
    co-work-pending  --accept---------->  personal-active (new owner)
    either           --archive (admin)->  archived

The status field (not-started / in-progress / completed) moves independently
of these states. Transition functions validate the move and return the column
changes to write; the store applies them with a conditional update so that a
concurrent transition cannot silently overwrite this one.
"""
from fastapi import HTTPException, status

from app.models.tasks import Task as TaskModel, NOT_STARTED
from app.models.user import User as UserModel
from app.models.project import Project as ProjectModel
from app.schemas.task import TaskBase, TaskUpdate

PERSONAL_ACTIVE = "personal-active"
CO_WORK_PENDING = "co-work-pending"
ARCHIVED = "archived"


def state_of(task: TaskModel) -> str:
    if task.is_archived:
        return ARCHIVED
    if task.is_co_work:
        return CO_WORK_PENDING
    return PERSONAL_ACTIVE


def new_task(
    data: TaskBase,
    owner: UserModel,
    project: ProjectModel,
    *,
    co_work: bool = False,
) -> TaskModel:
    return TaskModel(
        title=data.title,
        description=data.description,
        status=NOT_STARTED if co_work else getattr(data, "status", NOT_STARTED),
        user_id=owner.id,
        username=owner.username,
        project_id=project.id,
        project_name=project.name,
        due_date=data.due_date,
        is_co_work=co_work,
        is_archived=False,
    )


def ensure_owner(task: TaskModel, actor: UserModel) -> None:
    if task.user_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the task owner can modify this task",
        )


def ensure_not_archived(task: TaskModel) -> None:
    if task.is_archived:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task is archived")


def move_to_co_work(task: TaskModel, actor: UserModel) -> dict:
    ensure_not_archived(task)
    ensure_owner(task, actor)
    if task.is_co_work:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task is already in co-work")
    return {
        "original_user_id": task.user_id,
        "original_username": task.username or actor.username,
        "is_co_work": True,
    }


def accept_co_work(task: TaskModel, actor: UserModel, project: ProjectModel | None = None) -> dict:
    ensure_not_archived(task)
    if not task.is_co_work:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task is not a co-work task")
    changes = {
        "user_id": actor.id,
        "username": actor.username,
        "is_co_work": False,
    }
    if project is not None:
        changes["project_name"] = project.name
    return changes


def ensure_can_delete(task: TaskModel, actor: UserModel) -> None:
    # The co-work pool is shared: anyone may clear an entry from it
    if task.is_co_work:
        return
    ensure_owner(task, actor)


def status_change(task: TaskModel, actor: UserModel, new_status: str) -> dict:
    ensure_owner(task, actor)
    return {"status": new_status}


def edit_changes(
    task: TaskModel,
    actor: UserModel,
    update: TaskUpdate,
    project: ProjectModel | None = None,
) -> dict:
    ensure_owner(task, actor)
    changes = update.model_dump(exclude_unset=True, exclude={"project_id"})
    if "title" in changes and not changes["title"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title cannot be empty")
    if "status" in changes and changes["status"] is None:
        del changes["status"]
    if project is not None:
        changes["project_id"] = project.id
        changes["project_name"] = project.name
    return changes
