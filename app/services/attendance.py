"""
Attendance lifecycle: check-in, check-out and the read paths around them.

A record is created by check_in in status "checked-in" and closed exactly
once by check_out. The day a record belongs to is always taken from the
DayWindow passed in by the caller.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import MIN_WORK_HOURS
from app.core.exceptions import (
    AlreadyCheckedIn,
    NoActiveCheckIn,
    RecordNotFound,
    StorageError,
    ValidationError,
)
from app.core.security import Identity, ensure_active
from app.crud import attendance as crud_attendance
from app.models.attendance import AttendanceRecord
from app.schemas import attendance as schema_attendance
from app.services.file_service import PhotoStore
from app.services.geocoding import Geocoder
from app.utils.location import parse_raw_location
from app.utils.timezone import DayWindow, as_aware_utc, utc_now

logger = logging.getLogger(__name__)

ENRICHMENT_ERROR_NOTE = "Error processing location data"


@dataclass
class CheckoutResult:
    record: AttendanceRecord
    hours_worked: float
    is_early_checkout: bool


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours, rounded to 2 decimals"""
    seconds = (as_aware_utc(end) - as_aware_utc(start)).total_seconds()
    return round(max(seconds, 0) / 3600, 2)


def _resolve_now(now: Optional[datetime], window: DayWindow) -> datetime:
    now = as_aware_utc(now) if now is not None else utc_now()
    if not window.contains(now):
        raise ValidationError({"date": f"Current time is outside {window.day.isoformat()} ({window.tz_name})"})
    return now


async def check_in(
    db: AsyncSession,
    identity: Optional[Identity],
    photo_file: Optional[UploadFile],
    raw_location,
    window: DayWindow,
    *,
    photo_store: PhotoStore,
    geocoder: Geocoder,
    now: Optional[datetime] = None,
) -> AttendanceRecord:
    """
    Create today's attendance record.

    Validation order: caller, photo, coordinates, existing active record.
    The photo is written only after all checks pass and is removed again if
    the record itself cannot be stored.
    """
    identity = ensure_active(identity)
    photo = await photo_store.read_and_validate(photo_file)
    latitude, longitude = parse_raw_location(raw_location)
    now = _resolve_now(now, window)

    existing = await crud_attendance.find_active_checkin(db, identity.user_id, window)
    if existing:
        logger.info(f"User {identity.user_id} already checked in on {window.day} (record {existing.id})")
        raise AlreadyCheckedIn(schema_attendance.AttendanceRecord.model_validate(existing))

    photo_ref = await photo_store.save(photo, identity.user_id)
    address = await geocoder.reverse_geocode(latitude, longitude)

    try:
        record = await crud_attendance.insert_attendance(
            db,
            user_id=identity.user_id,
            photo=photo_ref,
            work_date=window.day,
            check_in_time=now,
            latitude=latitude,
            longitude=longitude,
            address=address,
        )
    except IntegrityError:
        # Lost a race against a concurrent check-in for the same day
        await db.rollback()
        await photo_store.delete(photo_ref)
        existing = await crud_attendance.find_active_checkin(db, identity.user_id, window)
        logger.info(f"Concurrent check-in rejected for user {identity.user_id} on {window.day}")
        raise AlreadyCheckedIn(
            schema_attendance.AttendanceRecord.model_validate(existing) if existing else None
        )
    except SQLAlchemyError as e:
        await db.rollback()
        await photo_store.delete(photo_ref)
        logger.exception(f"Could not store check-in for user {identity.user_id}")
        raise StorageError(detail=str(e))

    # committed: from here on the photo belongs to the record
    await db.refresh(record)
    logger.info(f"User {identity.user_id} checked in at {now.isoformat()} (record {record.id})")
    return record


async def check_out(
    db: AsyncSession,
    identity: Optional[Identity],
    raw_location,
    window: DayWindow,
    *,
    geocoder: Geocoder,
    now: Optional[datetime] = None,
    min_work_hours: float = MIN_WORK_HOURS,
) -> CheckoutResult:
    """
    Close the caller's open record for the day.

    is_early_checkout is advisory only: checkout is never refused for
    having worked too few hours.
    """
    identity = ensure_active(identity)
    latitude, longitude = parse_raw_location(raw_location)
    now = _resolve_now(now, window)

    record = await crud_attendance.find_open_record(db, identity.user_id, window)
    if not record:
        logger.info(f"No active check-in for user {identity.user_id} on {window.day}")
        raise NoActiveCheckIn()

    address = await geocoder.reverse_geocode(latitude, longitude)

    check_in_time = as_aware_utc(record.check_in_time)
    check_out_time = max(now, check_in_time)
    patch = schema_attendance.CheckoutPatch(
        check_out_time=check_out_time,
        latitude=latitude,
        longitude=longitude,
        address=address,
        hours_worked=hours_between(check_in_time, check_out_time),
    )

    try:
        record = await crud_attendance.apply_checkout(db, record.id, patch)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Could not store checkout for record {record.id}")
        raise StorageError(detail=str(e))

    is_early = patch.hours_worked < min_work_hours
    logger.info(
        f"User {identity.user_id} checked out (record {record.id}), "
        f"{patch.hours_worked}h worked{' - early checkout' if is_early else ''}"
    )
    return CheckoutResult(record=record, hours_worked=patch.hours_worked, is_early_checkout=is_early)


async def get_today_status(db: AsyncSession, identity: Optional[Identity], window: DayWindow) -> List[AttendanceRecord]:
    identity = ensure_active(identity)
    return await crud_attendance.get_user_attendance(db, identity.user_id, window)


def _display_history(record: AttendanceRecord) -> List[schema_attendance.LocationHistoryEntry]:
    """Single entry built from the latest stored location"""
    if record.check_out_time is not None:
        entry = {
            "time": record.check_out_location_updated,
            "address": record.check_out_address,
            "coordinates": {"latitude": record.check_out_latitude, "longitude": record.check_out_longitude},
        }
    else:
        entry = {
            "time": record.check_in_location_updated,
            "address": record.check_in_address,
            "coordinates": {"latitude": record.check_in_latitude, "longitude": record.check_in_longitude},
        }
    return [schema_attendance.LocationHistoryEntry(**entry)]


async def get_by_date(db: AsyncSession, window: DayWindow) -> List[schema_attendance.AttendanceLog]:
    """Admin: every user's records for the day, each with a display location history"""
    records = await crud_attendance.get_daily_attendance(db, window)

    logs = []
    for record in records:
        try:
            base = schema_attendance.AttendanceRecord.model_validate(record).model_dump()
            owner = None
            if record.user is not None:
                owner = schema_attendance.AttendanceUser.model_validate(record.user)
        except (ValueError, TypeError, AttributeError):
            logger.exception(f"Skipping unreadable attendance record {record.id}")
            continue

        try:
            history = _display_history(record)
            note = None
        except (ValueError, TypeError, AttributeError):
            logger.exception(f"Error transforming attendance record {record.id}")
            history = []
            note = ENRICHMENT_ERROR_NOTE
        logs.append(schema_attendance.AttendanceLog(**base, user=owner, location_history=history, note=note))

    logger.info(f"Found {len(logs)} attendance logs for {window.day} ({window.tz_name})")
    return logs


async def update_location(
    db: AsyncSession,
    identity: Optional[Identity],
    raw_location,
    window: DayWindow,
    *,
    geocoder: Geocoder,
    now: Optional[datetime] = None,
):
    """Append a location snapshot to the caller's active record"""
    identity = ensure_active(identity)
    latitude, longitude = parse_raw_location(raw_location)
    now = _resolve_now(now, window)

    record = await crud_attendance.find_active_checkin(db, identity.user_id, window)
    if not record:
        raise NoActiveCheckIn()

    address = await geocoder.reverse_geocode(latitude, longitude)
    try:
        await crud_attendance.append_location(db, record.id, latitude, longitude, address, now)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Could not store location for record {record.id}")
        raise StorageError(detail=str(e))

    history = await crud_attendance.get_location_history(db, record.id)
    return record, history


async def get_location_history(db: AsyncSession, user_id: int, window: DayWindow) -> schema_attendance.UserLocationHistory:
    """Admin: location trail of the user's latest record for the day"""
    record = await crud_attendance.find_latest_record(db, user_id, window)
    if not record:
        raise RecordNotFound("No attendance record found for today.")

    return schema_attendance.UserLocationHistory(
        user_id=user_id,
        attendance_id=record.id,
        location_history=[snapshot_entry(snapshot) for snapshot in record.location_history],
    )


def snapshot_entry(snapshot) -> schema_attendance.LocationHistoryEntry:
    return schema_attendance.LocationHistoryEntry(
        time=snapshot.recorded_at,
        address=snapshot.address,
        coordinates={"latitude": snapshot.latitude, "longitude": snapshot.longitude},
    )
