"""
Create (or look up) an administrator account and print a bearer token.

    python create_admin.py --name "Admin" --email admin@example.com
"""
import argparse
import asyncio
import logging

from app.core.database import AsyncSessionLocal, Base, engine
from app.core.logging import setup_logging
from app.core.security import create_access_token
from app.crud.user import create_user, get_user_by_email
from app.models.attendance import AttendanceRecord  # noqa: F401  (registers the mapper)
from app.models.user import RoleEnum

logger = logging.getLogger(__name__)


async def main(name: str, email: str):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        user = await get_user_by_email(db, email)
        if user:
            logger.info(f"User {email} already exists (id={user.id}, role={user.role.value})")
            if user.role != RoleEnum.ADMIN:
                user.role = RoleEnum.ADMIN
                await db.commit()
                logger.info(f"Promoted {email} to admin")
        else:
            user = await create_user(db, name=name, email=email, role=RoleEnum.ADMIN, designation="Administrator")
            logger.info(f"Created admin {email} (id={user.id})")

    await engine.dispose()
    print(create_access_token(user.id))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create an admin user and print an access token")
    parser.add_argument("--name", default="Admin")
    parser.add_argument("--email", required=True)
    args = parser.parse_args()

    setup_logging()
    asyncio.run(main(args.name, args.email))
