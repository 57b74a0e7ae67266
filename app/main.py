import logging
import os
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqladmin import Admin, ModelView
from app.core.config import UPLOAD_PATH, get_cors_origins, is_development
from app.core.database import Base, engine
from app.core.exceptions import AttendanceError, StorageError
from app.core.logging import setup_logging
from app.models.user import User
from app.models.attendance import AttendanceRecord, LocationSnapshot
from app.routers import attendance as attendance_router

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Attendance Tracker",
    description="Photo and geolocation based check-in / check-out",
    version="1.0.0"
)

# SQLAdmin: read-only views for administrators
admin = Admin(app, engine)

class UserAdmin(ModelView, model=User):
    column_list = [User.id, User.name, User.email, User.role, User.designation, User.is_blocked]
    column_searchable_list = [User.name, User.email]
    column_sortable_list = [User.id, User.name, User.email]
    column_default_sort = [(User.created_at, True)]
    can_create = False
    can_edit = False
    can_delete = False
    name = "User"
    name_plural = "Users"
    icon = "fa-solid fa-user"

class AttendanceAdmin(ModelView, model=AttendanceRecord):
    column_list = [
        AttendanceRecord.id, AttendanceRecord.user_id, AttendanceRecord.status,
        AttendanceRecord.check_in_time, AttendanceRecord.check_out_time,
        AttendanceRecord.hours_worked, AttendanceRecord.check_in_address
    ]
    column_sortable_list = [AttendanceRecord.id, AttendanceRecord.user_id, AttendanceRecord.check_in_time]
    column_default_sort = [(AttendanceRecord.check_in_time, True)]  # newest first
    column_labels = {
        AttendanceRecord.user_id: "User ID",
        AttendanceRecord.check_in_time: "Check in (UTC)",
        AttendanceRecord.check_out_time: "Check out (UTC)",
        AttendanceRecord.hours_worked: "Hours worked",
        AttendanceRecord.check_in_address: "Check-in address"
    }
    can_create = False
    can_edit = False
    can_delete = False
    name = "Attendance"
    name_plural = "Attendance records"
    icon = "fa-solid fa-clock"

class LocationSnapshotAdmin(ModelView, model=LocationSnapshot):
    column_list = [
        LocationSnapshot.id, LocationSnapshot.attendance_id, LocationSnapshot.recorded_at,
        LocationSnapshot.latitude, LocationSnapshot.longitude, LocationSnapshot.address
    ]
    column_default_sort = [(LocationSnapshot.recorded_at, True)]
    can_create = False
    can_edit = False
    can_delete = False
    name = "Location"
    name_plural = "Location history"
    icon = "fa-solid fa-location-dot"

admin.add_view(UserAdmin)
admin.add_view(AttendanceAdmin)
admin.add_view(LocationSnapshotAdmin)

# Uploaded photos are served back by reference
os.makedirs(UPLOAD_PATH, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOAD_PATH), name="uploads")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AttendanceError)
async def attendance_error_handler(request: Request, exc: AttendanceError):
    body = exc.to_dict()
    if isinstance(exc, StorageError):
        logger.error(f"Storage error on {request.method} {request.url.path}: {exc.detail}")
        if is_development() and exc.detail:
            body["error"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = {}
    for error in exc.errors():
        loc = error.get("loc") or ("request",)
        details.setdefault(str(loc[-1]), error.get("msg", "Invalid value"))
    return JSONResponse(status_code=400, content={"message": "Validation error", "details": details})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    body = {"message": "Something went wrong. Please try again."}
    if is_development():
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


# Startup event -> create tables
@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")

# Routers
app.include_router(attendance_router.router)

@app.get("/")
async def root():
    return {
        "message": "Attendance Tracker API",
        "docs": "/docs",
        "version": "1.0.0"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "attendance-tracker"}
