from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from app.dependencies import get_db, get_current_user, get_current_admin
from app.models.project import Project as ProjectModel
from app.schemas.project import Project as ProjectSchema, ProjectCreate, ProjectUpdate
from app.services import tasks as task_service

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.post("", response_model=ProjectSchema, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(get_current_user)])
async def create_project(data: ProjectCreate, db: AsyncSession = Depends(get_db)):
    project = ProjectModel(name=data.name, is_active=data.is_active, is_deleted=False)
    db.add(project)
    await db.commit()
    await db.refresh(project)
    return project


@router.get("", response_model=list[ProjectSchema], dependencies=[Depends(get_current_user)])
async def list_projects(db: AsyncSession = Depends(get_db)):
    return await task_service.list_projects(db)


@router.patch("/{project_id}", response_model=ProjectSchema, dependencies=[Depends(get_current_admin)])
async def update_project(project_id: int, data: ProjectUpdate, db: AsyncSession = Depends(get_db)):
    project = await task_service.get_project(db, project_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(project, key, value)
    await db.commit()
    await db.refresh(project)
    return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT,
               dependencies=[Depends(get_current_admin)])
async def delete_project(project_id: int, db: AsyncSession = Depends(get_db)):
    project = await task_service.get_project(db, project_id)
    await task_service.soft_delete_project(db, project)
    return None
