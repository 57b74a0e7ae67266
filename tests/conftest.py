import io
from datetime import date, datetime, timezone

import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.datastructures import Headers, UploadFile

from app.core.database import Base
from app.core.security import Identity
from app.crud.user import create_user
from app.models.attendance import AttendanceRecord  # noqa: F401  (registers the mapper)
from app.models.user import RoleEnum
from app.services.file_service import PhotoStore
from app.utils.timezone import day_window

WORK_DAY = date(2024, 1, 10)


def at(hour: int, minute: int = 0, second: int = 0, day: date = WORK_DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=timezone.utc)


def png_bytes(size=(64, 64), color=(200, 30, 30, 255), fmt="PNG") -> bytes:
    buffer = io.BytesIO()
    mode = "RGBA" if fmt == "PNG" else "RGB"
    Image.new(mode, size, color[:len(mode)]).save(buffer, fmt)
    return buffer.getvalue()


def make_upload(contents: bytes = None, filename: str = "selfie.png", content_type: str = "image/png") -> UploadFile:
    if contents is None:
        contents = png_bytes()
    return UploadFile(
        file=io.BytesIO(contents),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def identity_for(user) -> Identity:
    return Identity(user_id=user.id, role=user.role, is_blocked=bool(user.is_blocked))


class FixedGeocoder:
    def __init__(self, address: str = "MG Road, Bengaluru"):
        self.address = address
        self.calls = []

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        self.calls.append((latitude, longitude))
        return self.address


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    session_factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def user(db):
    return await create_user(db, name="Asha Rao", email="asha@example.com")


@pytest.fixture
async def other_user(db):
    return await create_user(db, name="Vikram Shah", email="vikram@example.com")


@pytest.fixture
async def admin_user(db):
    return await create_user(db, name="Admin", email="admin@example.com", role=RoleEnum.ADMIN)


@pytest.fixture
async def blocked_user(db):
    return await create_user(db, name="Blocked", email="blocked@example.com", is_blocked=True)


@pytest.fixture
def window():
    return day_window(WORK_DAY, "UTC")


@pytest.fixture
def photo_store(tmp_path):
    return PhotoStore(upload_path=str(tmp_path))


@pytest.fixture
def geocoder():
    return FixedGeocoder()


@pytest.fixture
def location():
    return {"coordinates": {"latitude": 12.34, "longitude": 56.78}}
