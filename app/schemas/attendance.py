from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime, timezone
from typing import Any, Optional, List
from app.models.attendance import AttendanceStatus


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Stored timestamps are naive UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Location(BaseModel):
    coordinates: Coordinates
    address: str
    last_updated: datetime

    @field_validator("last_updated")
    @classmethod
    def assume_utc(cls, value):
        return _as_utc(value)


class LocationHistoryEntry(BaseModel):
    time: datetime
    address: str
    coordinates: Coordinates

    @field_validator("time")
    @classmethod
    def assume_utc(cls, value):
        return _as_utc(value)


class AttendanceRecord(BaseModel):
    id: int
    user_id: int
    photo: str
    status: AttendanceStatus
    check_in_time: datetime
    check_in_location: Location
    check_out_time: Optional[datetime] = None
    check_out_location: Optional[Location] = None
    hours_worked: float = 0

    @field_validator("check_in_time", "check_out_time")
    @classmethod
    def assume_utc(cls, value):
        return _as_utc(value)

    @model_validator(mode="before")
    @classmethod
    def nest_locations(cls, data: Any) -> Any:
        """Fold the flat ORM columns into nested location objects"""
        if isinstance(data, dict):
            return data
        values = {
            "id": data.id,
            "user_id": data.user_id,
            "photo": data.photo,
            "status": data.status,
            "check_in_time": data.check_in_time,
            "check_in_location": {
                "coordinates": {
                    "latitude": data.check_in_latitude,
                    "longitude": data.check_in_longitude
                },
                "address": data.check_in_address,
                "last_updated": data.check_in_location_updated
            },
            "check_out_time": data.check_out_time,
            "check_out_location": None,
            "hours_worked": data.hours_worked or 0
        }
        if data.check_out_time is not None:
            values["check_out_location"] = {
                "coordinates": {
                    "latitude": data.check_out_latitude,
                    "longitude": data.check_out_longitude
                },
                "address": data.check_out_address,
                "last_updated": data.check_out_location_updated
            }
        return values

    class Config:
        from_attributes = True


class AttendanceUser(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class AttendanceLog(AttendanceRecord):
    """Admin view: record with owner and display location history"""
    user: Optional[AttendanceUser] = None
    location_history: List[LocationHistoryEntry] = []
    note: Optional[str] = None


class CheckInResponse(BaseModel):
    message: str = "Attendance marked successfully"
    attendance: AttendanceRecord


class CheckOutRequest(BaseModel):
    location: Optional[Any] = None


class CheckOutResponse(BaseModel):
    message: str = "Checkout successful"
    attendance: AttendanceRecord
    hours_worked: float
    is_early_checkout: bool
    min_work_hours: float


class LocationUpdateRequest(BaseModel):
    location: Optional[Any] = None


class LocationUpdateResponse(BaseModel):
    message: str = "Location updated successfully"
    attendance: AttendanceRecord
    location_history: List[LocationHistoryEntry]


class UserLocationHistory(BaseModel):
    user_id: int
    attendance_id: int
    location_history: List[LocationHistoryEntry]


class CheckoutPatch(BaseModel):
    """The only mutation an attendance record ever receives"""
    check_out_time: datetime
    latitude: float
    longitude: float
    address: str
    hours_worked: float = Field(..., ge=0)
