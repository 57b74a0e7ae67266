import asyncio
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import ATTENDANCE_TIMEZONE, MIN_WORK_HOURS
from app.core.database import get_db
from app.core.security import Identity, get_current_identity, require_admin
from app.schemas import attendance as schema_attendance
from app.services import attendance as attendance_service
from app.services.file_service import PhotoStore, get_photo_store
from app.services.geocoding import Geocoder, get_geocoder
from app.services.reports import delete_file_after_delay, export_filename, generate_attendance_export
from app.utils.timezone import DayWindow, day_window, get_zone, parse_day, utc_now, window_for

router = APIRouter(prefix="/attendance", tags=["Attendance"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Pending report cleanups, held until they finish
cleanup_tasks = set()


def get_now() -> datetime:
    """Request clock"""
    return utc_now()


def get_timezone(tz: Optional[str] = Query(None, description="IANA timezone defining the day")) -> str:
    tz_name = tz or ATTENDANCE_TIMEZONE
    get_zone(tz_name)
    return tz_name


def get_today_window(tz_name: str = Depends(get_timezone), now: datetime = Depends(get_now)) -> DayWindow:
    return window_for(now, tz_name)


def get_attendance_window(now: datetime = Depends(get_now)) -> DayWindow:
    """Day window for writes: always the configured zone, never the caller's"""
    return window_for(now, ATTENDANCE_TIMEZONE)


@router.post("/check-in", status_code=201, response_model=schema_attendance.CheckInResponse)
async def check_in(
    image: Optional[UploadFile] = File(None),
    location: Optional[str] = Form(None),
    latitude: Optional[str] = Form(None),
    longitude: Optional[str] = Form(None),
    identity: Identity = Depends(get_current_identity),
    window: DayWindow = Depends(get_attendance_window),
    now: datetime = Depends(get_now),
    photo_store: PhotoStore = Depends(get_photo_store),
    geocoder: Geocoder = Depends(get_geocoder),
    db: AsyncSession = Depends(get_db)
):
    """Check in with a photo and the current location"""
    raw_location = location if location is not None else {"latitude": latitude, "longitude": longitude}
    record = await attendance_service.check_in(
        db, identity, image, raw_location, window,
        photo_store=photo_store, geocoder=geocoder, now=now
    )
    return schema_attendance.CheckInResponse(
        attendance=schema_attendance.AttendanceRecord.model_validate(record)
    )


@router.post("/check-out", response_model=schema_attendance.CheckOutResponse)
async def check_out(
    payload: schema_attendance.CheckOutRequest,
    identity: Identity = Depends(get_current_identity),
    window: DayWindow = Depends(get_attendance_window),
    now: datetime = Depends(get_now),
    geocoder: Geocoder = Depends(get_geocoder),
    db: AsyncSession = Depends(get_db)
):
    """Check out of the active record for today"""
    result = await attendance_service.check_out(
        db, identity, payload.location, window, geocoder=geocoder, now=now
    )
    return schema_attendance.CheckOutResponse(
        attendance=schema_attendance.AttendanceRecord.model_validate(result.record),
        hours_worked=result.hours_worked,
        is_early_checkout=result.is_early_checkout,
        min_work_hours=MIN_WORK_HOURS
    )


@router.get("/today", response_model=List[schema_attendance.AttendanceRecord])
async def get_today_attendance(
    identity: Identity = Depends(get_current_identity),
    window: DayWindow = Depends(get_today_window),
    db: AsyncSession = Depends(get_db)
):
    """Caller's attendance records for today"""
    records = await attendance_service.get_today_status(db, identity, window)
    return [schema_attendance.AttendanceRecord.model_validate(record) for record in records]


@router.put("/location", response_model=schema_attendance.LocationUpdateResponse)
async def update_location(
    payload: schema_attendance.LocationUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    window: DayWindow = Depends(get_attendance_window),
    now: datetime = Depends(get_now),
    geocoder: Geocoder = Depends(get_geocoder),
    db: AsyncSession = Depends(get_db)
):
    """Record the current location while checked in"""
    record, history = await attendance_service.update_location(
        db, identity, payload.location, window, geocoder=geocoder, now=now
    )
    return schema_attendance.LocationUpdateResponse(
        attendance=schema_attendance.AttendanceRecord.model_validate(record),
        location_history=[attendance_service.snapshot_entry(snapshot) for snapshot in history]
    )


@router.get("/export")
async def export_attendance(
    start_date: str = Query(...),
    end_date: Optional[str] = Query(None),
    tz_name: str = Depends(get_timezone),
    _admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Download attendance for a date range as an Excel file (admin)"""
    start = parse_day(start_date, "start_date")
    end = parse_day(end_date, "end_date") if end_date else None
    file_path = await generate_attendance_export(db, start, end, tz_name, MIN_WORK_HOURS)

    # Remove the file 5 minutes after serving
    task = asyncio.create_task(delete_file_after_delay(file_path, 300))
    cleanup_tasks.add(task)
    task.add_done_callback(cleanup_tasks.discard)

    return FileResponse(
        file_path,
        media_type=XLSX_MEDIA_TYPE,
        filename=export_filename(start, end)
    )


@router.get("/date/{target_date}", response_model=List[schema_attendance.AttendanceLog])
async def get_attendance_by_date(
    target_date: str,
    tz_name: str = Depends(get_timezone),
    _admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """All users' attendance for one day (admin)"""
    window = day_window(parse_day(target_date), tz_name)
    return await attendance_service.get_by_date(db, window)


@router.get("/{user_id}/location-history", response_model=schema_attendance.UserLocationHistory)
async def get_user_location_history(
    user_id: int,
    window: DayWindow = Depends(get_today_window),
    _admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """A user's location trail for today (admin)"""
    return await attendance_service.get_location_history(db, user_id, window)
