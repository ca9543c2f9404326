"""
Decides which tasks a view may see and in what order.

The rules run in a fixed sequence: archive exclusion, co-work exclusion,
team membership, date window, then ordering. Everything here is pure: the
caller fetches the raw task set and the users needed to resolve ownership.
"""
from collections.abc import Iterable, Mapping
from datetime import date, datetime

from app.models.tasks import Task as TaskModel, NOT_STARTED, IN_PROGRESS, COMPLETED
from app.models.user import User as UserModel
from app.schemas.task import Task as TaskSchema
from app.services import clock

PERSONAL = "personal"
TEAM = "team"
PROJECT = "project"
PROJECT_ALL = "project-all"
CO_WORK = "co-work"
SCHEDULER = "scheduler"
ARCHIVE = "archive"

VIEWS = (PERSONAL, TEAM, PROJECT, PROJECT_ALL, CO_WORK, SCHEDULER, ARCHIVE)

STATUS_RANK = {NOT_STARTED: 0, IN_PROGRESS: 1, COMPLETED: 2}

# Views that group by status before recency
_STATUS_ORDERED = {PERSONAL, TEAM, SCHEDULER}
# Views that show other people's tasks and need the owner's name
ANNOTATED_VIEWS = {TEAM, SCHEDULER, CO_WORK, PROJECT_ALL}

UNKNOWN_USER = "Unknown"
UNKNOWN_PROJECT = "Unknown project"


def _timestamp(task: TaskModel) -> float:
    return clock.as_utc(task.created_at).timestamp()


def by_status_then_newest(task: TaskModel):
    return (STATUS_RANK.get(task.status, len(STATUS_RANK)), -_timestamp(task), -task.id)


def by_newest(task: TaskModel):
    return (-_timestamp(task), -task.id)


def apply_view(
    view: str,
    tasks: Iterable[TaskModel],
    *,
    user_id: int | None = None,
    team: str | None = None,
    project_id: int | None = None,
    target_date: date | None = None,
    users: Mapping[int, UserModel] | None = None,
    now: datetime | None = None,
) -> list[TaskModel]:
    if view not in VIEWS:
        return []

    users = users or {}
    selected = []
    for task in tasks:
        # 1. archived tasks only surface through the archive listing
        if bool(task.is_archived) != (view == ARCHIVE):
            continue
        # 2. the co-work pool is its own view
        if view != ARCHIVE and bool(task.is_co_work) != (view == CO_WORK):
            continue

        if view == PERSONAL and task.user_id != user_id:
            continue
        if view == PROJECT and task.project_id != project_id:
            continue

        # 3. team membership, limited to the current day
        if view == TEAM:
            owner = users.get(task.user_id)
            if owner is None or owner.team != team:
                continue
            if not clock.is_today(task.created_at, now):
                continue

        # 4. date window
        if view in (PERSONAL, SCHEDULER):
            day = target_date or clock.local_today(now)
            if not clock.same_local_day(task.created_at, day):
                continue

        selected.append(task)

    # 5. ordering
    key = by_status_then_newest if view in _STATUS_ORDERED else by_newest
    return sorted(selected, key=key)


def display_username(task: TaskModel, users: Mapping[int, UserModel]) -> str:
    owner = users.get(task.user_id)
    if owner is not None:
        return owner.username
    return task.username or UNKNOWN_USER


def to_response(
    tasks: Iterable[TaskModel],
    users: Mapping[int, UserModel] | None = None,
) -> list[TaskSchema]:
    """
    Serialize tasks for a list view. When a user map is given the owner's
    username is resolved through it; the write-time snapshot is the fallback.
    """
    results = []
    for task in tasks:
        item = TaskSchema.model_validate(task)
        update = {}
        if users is not None:
            update["username"] = display_username(task, users)
        if not item.project_name:
            update["project_name"] = UNKNOWN_PROJECT
        results.append(item.model_copy(update=update) if update else item)
    return results
