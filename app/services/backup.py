import io
import logging
from datetime import date

import pandas as pd
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select

from app import database
from app.models.tasks import Task as TaskModel
from app.models.user import User as UserModel
from app.models.project import Project as ProjectModel
from app.schemas.task import BackupSnapshot
from app.services import clock
from app.services.visibility import UNKNOWN_USER, UNKNOWN_PROJECT, by_newest
from app.utils.security import unusable_password_hash

logger = logging.getLogger(__name__)

# (header, column width) in export order
EXPORT_COLUMNS = [
    ("ID", 8),
    ("Title", 40),
    ("Description", 60),
    ("Status", 14),
    ("Author", 16),
    ("Team", 8),
    ("Project", 24),
    ("Created At", 18),
    ("Due Date", 18),
    ("Co-work", 10),
    ("Archived", 10),
]


def check_range(start: date, end: date) -> None:
    if start > end:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")


async def collect_tasks(db: AsyncSession, start: date, end: date) -> list[TaskModel]:
    """Every task created from local midnight of `start` through the end of `end`, any state."""
    check_range(start, end)
    range_start, _ = clock.day_bounds(start)
    _, range_end = clock.day_bounds(end)
    result = await db.execute(
        select(TaskModel).filter(
            TaskModel.created_at >= range_start,
            TaskModel.created_at <= range_end,
        )
    )
    return sorted(result.scalars().all(), key=by_newest)


def build_export_frame(tasks, users: dict, projects: dict) -> pd.DataFrame:
    rows = []
    for t in tasks:
        author = users.get(t.user_id)
        project = projects.get(t.project_id)
        rows.append([
            t.id,
            t.title,
            t.description or "",
            t.status,
            author.username if author else (t.username or UNKNOWN_USER),
            author.team if author else "",
            t.project_name or (project.name if project else UNKNOWN_PROJECT),
            clock.format_local(t.created_at),
            clock.format_local(t.due_date),
            "Y" if t.is_co_work else "N",
            "Y" if t.is_archived else "N",
        ])
    return pd.DataFrame(rows, columns=[name for name, _ in EXPORT_COLUMNS])


def render_xlsx(df: pd.DataFrame) -> io.BytesIO:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Tasks")
        sheet = writer.sheets["Tasks"]
        for idx, (_, width) in enumerate(EXPORT_COLUMNS):
            letter = chr(ord("A") + idx)
            sheet.column_dimensions[letter].width = width
    buf.seek(0)
    return buf


def render_csv(df: pd.DataFrame) -> str:
    return df.to_csv(index=False)


async def export_frame(db: AsyncSession, start: date, end: date) -> pd.DataFrame:
    tasks = await collect_tasks(db, start, end)
    users = await _all(db, UserModel)
    projects = await _all(db, ProjectModel)
    return build_export_frame(tasks, users, projects)


async def delete_range(db: AsyncSession, start: date, end: date) -> int:
    """
    Delete what collect_tasks selects for the same range. The set is computed
    once and each task is removed on its own; a failure on one task is logged
    and does not undo the others.
    """
    # Ids only: loaded rows expire on any rollback below
    task_ids = [t.id for t in await collect_tasks(db, start, end)]
    deleted = 0
    for task_id in task_ids:
        try:
            result = await db.execute(delete(TaskModel).where(TaskModel.id == task_id))
            await db.commit()
            deleted += result.rowcount
        except Exception as e:
            await db.rollback()
            logger.error("[BACKUP] Failed to delete task %s: %s", task_id, e)
    logger.info("[BACKUP] Deleted %d of %d tasks between %s and %s", deleted, len(task_ids), start, end)
    return deleted


async def snapshot(db: AsyncSession) -> dict:
    users = await _all(db, UserModel)
    projects = await _all(db, ProjectModel)
    result = await db.execute(select(TaskModel).order_by(TaskModel.id))
    return {
        "users": sorted(users.values(), key=lambda u: u.id),
        "projects": sorted(projects.values(), key=lambda p: p.id),
        "tasks": result.scalars().all(),
        "timestamp": clock.utcnow(),
    }


async def _all(db: AsyncSession, model) -> dict:
    result = await db.execute(select(model))
    return {row.id: row for row in result.scalars().all()}


async def restore(db: AsyncSession, backup: BackupSnapshot, actor: UserModel) -> dict:
    """
    Replace every user, project and task with the contents of `backup` in a
    single transaction.

    Snapshots carry no password hashes: a user that already exists keeps its
    current hash, and a user new to this database gets one nobody can log in
    with.
    """
    user_ids = {u.id for u in backup.users}
    project_ids = {p.id for p in backup.projects}
    if actor.id not in user_ids:
        raise HTTPException(status_code=400, detail="Backup does not contain your account")
    for t in backup.tasks:
        if t.user_id not in user_ids or (t.project_id is not None and t.project_id not in project_ids):
            raise HTTPException(status_code=400, detail=f"Task {t.id} references a missing user or project")

    hashes = {uid: u.hashed_password for uid, u in (await _all(db, UserModel)).items()}
    db.expunge_all()
    try:
        for model in (TaskModel, ProjectModel, UserModel):
            await db.execute(delete(model).execution_options(synchronize_session=False))

        db.add_all(
            UserModel(
                **u.model_dump(exclude_none=True),
                hashed_password=hashes.get(u.id) or unusable_password_hash(),
                is_deleted=False,
            )
            for u in backup.users
        )
        await db.flush()
        db.add_all(ProjectModel(**p.model_dump(exclude_none=True), is_deleted=False) for p in backup.projects)
        await db.flush()
        db.add_all(TaskModel(**t.model_dump(exclude_none=True)) for t in backup.tasks)
        await db.flush()

        if database.engine.dialect.name == "postgresql":
            # New rows must not collide with restored ids
            for table in ("users", "projects", "tasks"):
                await db.execute(text(
                    f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
                    f"COALESCE((SELECT MAX(id) FROM {table}), 0) + 1, false)"
                ))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("[BACKUP] Restore failed, nothing was changed: %s", e)
        raise HTTPException(status_code=400, detail="Backup could not be restored")

    new_users = len(user_ids - hashes.keys())
    if new_users:
        logger.warning("[BACKUP] %d restored users have no password and cannot log in", new_users)
    logger.info(
        "[BACKUP] Restored %d users, %d projects, %d tasks from snapshot taken %s",
        len(backup.users), len(backup.projects), len(backup.tasks), backup.timestamp,
    )
    return {"users": len(backup.users), "projects": len(backup.projects), "tasks": len(backup.tasks)}
