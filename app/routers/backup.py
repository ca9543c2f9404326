from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_current_admin
from app.models.user import User as UserModel
from app.schemas.task import BackupSnapshot, BulkDeleteResult, RestoreResult
from app.services import backup as backup_service
from app.services import clock

router = APIRouter(prefix="/api/backup", tags=["backup"], dependencies=[Depends(get_current_admin)])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("", response_model=BackupSnapshot)
async def get_backup(db: AsyncSession = Depends(get_db)):
    return await backup_service.snapshot(db)


@router.post("/restore", response_model=RestoreResult)
async def restore_backup(
    backup: BackupSnapshot,
    db: AsyncSession = Depends(get_db),
    current_admin: UserModel = Depends(get_current_admin),
):
    return await backup_service.restore(db, backup, current_admin)


@router.get("/tasks")
async def export_tasks(
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    format: str = Query("xlsx", pattern=r"^(xlsx|csv)$"),
    db: AsyncSession = Depends(get_db),
):
    start, end = clock.parse_date_param(start_date), clock.parse_date_param(end_date)
    df = await backup_service.export_frame(db, start, end)
    filename = f"tasks_{start.isoformat()}_{end.isoformat()}"
    headers = {"X-Task-Count": str(len(df))}

    if format == "csv":
        headers["Content-Disposition"] = f"attachment; filename={filename}.csv"
        return PlainTextResponse(
            content=backup_service.render_csv(df),
            media_type="text/csv",
            headers=headers,
        )

    buf = await run_in_threadpool(backup_service.render_xlsx, df)
    headers["Content-Disposition"] = f"attachment; filename={filename}.xlsx"
    return StreamingResponse(buf, media_type=XLSX_MEDIA_TYPE, headers=headers)


@router.delete("/tasks", response_model=BulkDeleteResult)
async def delete_tasks(
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    db: AsyncSession = Depends(get_db),
):
    start, end = clock.parse_date_param(start_date), clock.parse_date_param(end_date)
    deleted = await backup_service.delete_range(db, start, end)
    return {"deleted_count": deleted, "start_date": start, "end_date": end}
