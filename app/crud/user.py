from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import Optional
from app.models import user as user_model
from app.utils.timezone import utc_now, to_naive_utc

async def create_user(db: AsyncSession, name: str, email: str,
                      role: user_model.RoleEnum = user_model.RoleEnum.USER,
                      designation: Optional[str] = "Employee",
                      is_blocked: bool = False):
    db_user = user_model.User(
        name=name,
        email=email.strip().lower(),
        role=role,
        designation=designation,
        is_blocked=is_blocked,
        created_at=to_naive_utc(utc_now())
    )
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)
    return db_user

async def get_user_by_id(db: AsyncSession, user_id: int):
    result = await db.execute(
        select(user_model.User).where(user_model.User.id == user_id)
    )
    return result.scalar_one_or_none()

async def get_user_by_email(db: AsyncSession, email: str):
    result = await db.execute(
        select(user_model.User).where(user_model.User.email == email.strip().lower())
    )
    return result.scalar_one_or_none()
