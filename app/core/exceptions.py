from typing import Any, Dict, Optional


class AttendanceError(Exception):
    """Base exception for attendance business rule violations."""

    status_code = 500
    message = "Attendance error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


class Unauthorized(AttendanceError):
    """Missing or invalid credential."""

    status_code = 401
    message = "Not authorized"


class AccountBlocked(Unauthorized):
    status_code = 403
    message = "Your account has been blocked. Please contact the administrator."


class Forbidden(AttendanceError):
    status_code = 403
    message = "Access denied, admin only"


class ValidationError(AttendanceError):
    """Raised when input data is invalid; carries the failing fields."""

    status_code = 400
    message = "Validation error"

    def __init__(self, fields: Dict[str, str], message: Optional[str] = None):
        self.fields = dict(fields)
        super().__init__(message or self._default_message())

    def _default_message(self) -> str:
        if "photo" in self.fields and len(self.fields) == 1:
            return "Please upload an image"
        if set(self.fields) <= {"location", "latitude", "longitude"}:
            return "Invalid location data"
        return "Validation error"

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "details": self.fields}


class AlreadyCheckedIn(AttendanceError):
    """An active check-in already exists for the day; carries that record."""

    status_code = 400
    message = "Already checked in for today"

    def __init__(self, record=None, message: Optional[str] = None):
        self.record = record
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        from app.schemas.attendance import AttendanceRecord

        body: Dict[str, Any] = {"message": self.message}
        if self.record is not None:
            record = self.record
            if not isinstance(record, AttendanceRecord):
                record = AttendanceRecord.model_validate(record)
            body["attendance"] = record.model_dump(mode="json")
        return body


class NoActiveCheckIn(AttendanceError):
    status_code = 400
    message = "No active check-in found for today"


class RecordNotFound(AttendanceError):
    status_code = 404
    message = "No attendance record found"


class CheckoutAlreadyApplied(AttendanceError):
    """A checkout patch hit a record that is no longer checked in."""

    status_code = 409
    message = "Attendance record is already checked out"


class StorageError(AttendanceError):
    """Photo or record persistence failed."""

    status_code = 500
    message = "Could not save attendance data. Please try again."

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(message)
