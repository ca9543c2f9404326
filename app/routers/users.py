from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.dependencies import get_db, get_current_admin
from app.models.user import User as UserModel
from app.schemas.user import AdminUserCreate, UserResponse, UserUpdate
from app.routers.auth import _insert_user
from app.services import tasks as task_service

router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(get_current_admin)])

@router.get("", response_model=list[UserResponse])
async def list_users(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(UserModel).filter(task_service.user_is_live()).order_by(UserModel.id)
    )
    return result.scalars().all()

@router.get("/pending", response_model=list[UserResponse])
async def list_pending_users(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(UserModel)
        .filter(UserModel.is_approved == False, task_service.user_is_live())
        .order_by(UserModel.id)
    )
    return result.scalars().all()

@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(user: AdminUserCreate, db: AsyncSession = Depends(get_db)):
    # Accounts an admin creates need no separate approval
    return await _insert_user(db, user, is_admin=user.is_admin, is_approved=True)

@router.post("/{user_id}/approve", response_model=UserResponse)
async def approve_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await task_service.get_user(db, user_id)
    user.is_approved = True
    await db.commit()
    await db.refresh(user)
    return user

@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await task_service.get_user(db, user_id)

@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(user_id: int, user_update: UserUpdate, db: AsyncSession = Depends(get_db)):
    user = await task_service.get_user(db, user_id)

    update_data = user_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        if value is not None:
            setattr(user, key, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Username already registered")
    await db.refresh(user)
    return user

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: UserModel = Depends(get_current_admin),
):
    if user_id == current_admin.id:
        raise HTTPException(status_code=400, detail="Admins cannot delete their own account")
    user = await task_service.get_user(db, user_id)
    await task_service.soft_delete_user(db, user)
    return None
