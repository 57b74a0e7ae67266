import pytest

from app.core.exceptions import AccountBlocked, Unauthorized
from app.core.security import (
    Identity,
    authenticate,
    create_access_token,
    decode_access_token,
    ensure_active,
)
from app.models.user import RoleEnum


def test_token_round_trip_carries_user_id():
    assert decode_access_token(create_access_token(42)) == 42


def test_expired_token():
    token = create_access_token(42, expires_minutes=-5)

    with pytest.raises(Unauthorized) as exc_info:
        decode_access_token(token)
    assert exc_info.value.message == "Token has expired"


def test_token_signed_with_other_key():
    token = create_access_token(42, secret_key="another-secret-key-of-decent-length")

    with pytest.raises(Unauthorized) as exc_info:
        decode_access_token(token)
    assert exc_info.value.message == "Token is not valid"


async def test_authenticate_loads_role_and_block_flag(db, admin_user, blocked_user):
    admin = await authenticate(create_access_token(admin_user.id), db)
    blocked = await authenticate(create_access_token(blocked_user.id), db)

    assert admin.is_admin and not admin.is_blocked
    assert blocked.is_blocked and not blocked.is_admin


async def test_authenticate_without_token(db):
    with pytest.raises(Unauthorized) as exc_info:
        await authenticate(None, db)
    assert exc_info.value.message == "No token, authorization denied"


async def test_authenticate_unknown_user(db):
    with pytest.raises(Unauthorized) as exc_info:
        await authenticate(create_access_token(9999), db)
    assert exc_info.value.message == "User not found"


def test_ensure_active():
    active = Identity(user_id=1, role=RoleEnum.USER, is_blocked=False)

    assert ensure_active(active) is active
    with pytest.raises(Unauthorized):
        ensure_active(None)
    with pytest.raises(AccountBlocked) as exc_info:
        ensure_active(Identity(user_id=2, role=RoleEnum.USER, is_blocked=True))
    assert exc_info.value.status_code == 403
