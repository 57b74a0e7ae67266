"""
Bearer token identity.

Tokens are HS256 JWTs whose "sub" claim is the user id. Every request
re-reads the user row so that blocking an account takes effect at once.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, SECRET_KEY
from app.core.database import get_db
from app.core.exceptions import AccountBlocked, Forbidden, Unauthorized
from app.crud.user import get_user_by_id
from app.models.user import RoleEnum
from app.utils.timezone import utc_now

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: RoleEnum
    is_blocked: bool

    @property
    def is_admin(self) -> bool:
        return self.role == RoleEnum.ADMIN


def create_access_token(user_id: int, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
                        secret_key: str = SECRET_KEY) -> str:
    now = utc_now()
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, secret_key, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, secret_key: str = SECRET_KEY) -> int:
    """Return the user id carried by a valid token"""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.info(f"JWT verification failed: {e}")
        raise Unauthorized("Token is not valid")

    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthorized("Token is not valid")


async def authenticate(credential: Optional[str], db: AsyncSession) -> Identity:
    if not credential:
        raise Unauthorized("No token, authorization denied")

    user_id = decode_access_token(credential)
    user = await get_user_by_id(db, user_id)
    if not user:
        raise Unauthorized("User not found")

    return Identity(user_id=user.id, role=user.role, is_blocked=bool(user.is_blocked))


def ensure_active(identity: Optional[Identity]) -> Identity:
    """Refuse every operation for anonymous or blocked callers"""
    if identity is None:
        raise Unauthorized("User not authenticated")
    if identity.is_blocked:
        raise AccountBlocked()
    return identity


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> Identity:
    """FastAPI dependency"""
    token = credentials.credentials if credentials else None
    return ensure_active(await authenticate(token, db))


async def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not identity.is_admin:
        raise Forbidden()
    return identity
