from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from datetime import timedelta
from app.dependencies import get_db, get_current_user
from app.models.user import User as UserModel
from app.schemas.user import Token, UserCreate, UserExists, UserResponse
from app.utils.security import get_password_hash, verify_password, create_access_token
from app.config import settings

router = APIRouter(prefix="/api", tags=["auth"])


async def _count_users(db: AsyncSession, *, admins_only: bool = False) -> int:
    query = select(func.count(UserModel.id))
    if admins_only:
        query = query.filter(UserModel.is_admin == True, UserModel.is_deleted == False)
    return (await db.execute(query)).scalar() or 0


async def _insert_user(db: AsyncSession, user: UserCreate, *, is_admin: bool, is_approved: bool) -> UserModel:
    new_user = UserModel(
        **user.model_dump(exclude={"password", "is_admin"}),
        hashed_password=get_password_hash(user.password),
        is_admin=is_admin,
        is_approved=is_approved,
    )
    db.add(new_user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Username already registered")
    await db.refresh(new_user)
    return new_user


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user: UserCreate, db: AsyncSession = Depends(get_db)):
    # The very first account bootstraps the system as an approved admin
    first = await _count_users(db) == 0
    return await _insert_user(db, user, is_admin=first, is_approved=first)


@router.post("/web_admin/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_admin(user: UserCreate, db: AsyncSession = Depends(get_db)):
    if await _count_users(db, admins_only=True) > 0:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="An admin already exists; ask them to create your account",
        )
    return await _insert_user(db, user, is_admin=True, is_approved=True)


@router.post("/login", response_model=Token)
async def login_for_access_token(
    db: AsyncSession = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends()
):
    result = await db.execute(
        select(UserModel).filter(UserModel.username == form_data.username, UserModel.is_deleted == False)
    )
    user = result.scalars().first()

    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_approved:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is pending approval")

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username}, expires_delta=access_token_expires
    )
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/user", response_model=UserResponse)
async def get_me(current_user: UserModel = Depends(get_current_user)):
    return current_user


@router.get("/user/exists", response_model=UserExists)
async def user_exists(db: AsyncSession = Depends(get_db)):
    return {"exists": await _count_users(db) > 0}
