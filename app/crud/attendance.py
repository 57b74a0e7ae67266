from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy import and_, desc, update
from datetime import date, datetime
from typing import Optional, List
from app.models import attendance as attendance_model
from app.schemas import attendance as attendance_schema
from app.core.exceptions import CheckoutAlreadyApplied
from app.utils.timezone import DayWindow, to_naive_utc

Record = attendance_model.AttendanceRecord
Status = attendance_model.AttendanceStatus


def _in_window(window: DayWindow):
    return and_(
        Record.check_in_time >= window.start_utc,
        Record.check_in_time < window.end_utc
    )


async def insert_attendance(db: AsyncSession, *, user_id: int, photo: str, work_date: date,
                            check_in_time: datetime, latitude: float, longitude: float,
                            address: str) -> Record:
    """
    Persist a new check-in record

    Raises sqlalchemy IntegrityError when the user already has an active
    record for work_date; the caller owns the rollback and the refresh.
    """
    db_attendance = Record(
        user_id=user_id,
        photo=photo,
        status=Status.CHECKED_IN,
        work_date=work_date,
        check_in_time=to_naive_utc(check_in_time),
        check_in_latitude=latitude,
        check_in_longitude=longitude,
        check_in_address=address,
        check_in_location_updated=to_naive_utc(check_in_time),
        hours_worked=0
    )
    db.add(db_attendance)
    await db.commit()
    return db_attendance


async def get_attendance_by_id(db: AsyncSession, attendance_id: int) -> Optional[Record]:
    result = await db.execute(select(Record).where(Record.id == attendance_id))
    return result.scalar_one_or_none()


async def find_active_checkin(db: AsyncSession, user_id: int, window: DayWindow) -> Optional[Record]:
    """The active (checked-in) record inside the window"""
    result = await db.execute(
        select(Record)
        .where(
            and_(
                Record.user_id == user_id,
                _in_window(window),
                Record.status == Status.CHECKED_IN
            )
        )
        .order_by(desc(Record.check_in_time))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_open_record(db: AsyncSession, user_id: int, window: DayWindow) -> Optional[Record]:
    """Most recent record in the window that is not checked out"""
    result = await db.execute(
        select(Record)
        .where(
            and_(
                Record.user_id == user_id,
                _in_window(window),
                Record.status != Status.CHECKED_OUT
            )
        )
        .order_by(desc(Record.check_in_time))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_latest_record(db: AsyncSession, user_id: int, window: DayWindow) -> Optional[Record]:
    result = await db.execute(
        select(Record)
        .options(selectinload(Record.location_history))
        .where(and_(Record.user_id == user_id, _in_window(window)))
        .order_by(desc(Record.check_in_time))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_user_attendance(db: AsyncSession, user_id: int, window: DayWindow) -> List[Record]:
    result = await db.execute(
        select(Record)
        .where(and_(Record.user_id == user_id, _in_window(window)))
        .order_by(desc(Record.check_in_time))
    )
    return result.scalars().all()


async def get_attendance_between(db: AsyncSession, start: datetime, end: datetime) -> List[Record]:
    """All users' records checked in within [start, end), owner loaded"""
    result = await db.execute(
        select(Record)
        .options(selectinload(Record.user))
        .where(
            and_(
                Record.check_in_time >= to_naive_utc(start),
                Record.check_in_time < to_naive_utc(end)
            )
        )
        .order_by(desc(Record.check_in_time))
    )
    return result.scalars().all()


async def get_daily_attendance(db: AsyncSession, window: DayWindow) -> List[Record]:
    return await get_attendance_between(db, window.start, window.end)


async def apply_checkout(db: AsyncSession, attendance_id: int,
                         patch: attendance_schema.CheckoutPatch) -> Record:
    """
    Set the checkout fields, exactly once

    The update only matches a record that is still checked in, so a second
    patch for the same record changes nothing and raises CheckoutAlreadyApplied.
    """
    checked_out_at = to_naive_utc(patch.check_out_time)
    result = await db.execute(
        update(Record)
        .where(and_(Record.id == attendance_id, Record.status == Status.CHECKED_IN))
        .values(
            status=Status.CHECKED_OUT,
            check_out_time=checked_out_at,
            check_out_latitude=patch.latitude,
            check_out_longitude=patch.longitude,
            check_out_address=patch.address,
            check_out_location_updated=checked_out_at,
            hours_worked=patch.hours_worked
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise CheckoutAlreadyApplied()
    await db.commit()

    db_attendance = await get_attendance_by_id(db, attendance_id)
    await db.refresh(db_attendance)
    return db_attendance


async def append_location(db: AsyncSession, attendance_id: int, latitude: float, longitude: float,
                          address: str, recorded_at: datetime) -> attendance_model.LocationSnapshot:
    snapshot = attendance_model.LocationSnapshot(
        attendance_id=attendance_id,
        latitude=latitude,
        longitude=longitude,
        address=address,
        recorded_at=to_naive_utc(recorded_at)
    )
    db.add(snapshot)
    await db.commit()
    await db.refresh(snapshot)
    return snapshot


async def get_location_history(db: AsyncSession, attendance_id: int) -> List[attendance_model.LocationSnapshot]:
    result = await db.execute(
        select(attendance_model.LocationSnapshot)
        .where(attendance_model.LocationSnapshot.attendance_id == attendance_id)
        .order_by(attendance_model.LocationSnapshot.recorded_at)
    )
    return result.scalars().all()
