from sqlalchemy import Column, Integer, ForeignKey, DateTime, Date, Enum, Float, Numeric, String, Index, text
from sqlalchemy.orm import relationship
import enum
from app.core.database import Base

class AttendanceStatus(enum.Enum):
    CHECKED_IN = "checked-in"
    CHECKED_OUT = "checked-out"

class AttendanceRecord(Base):
    __tablename__ = "attendance"
    __table_args__ = (
        # At most one active check-in per user per day
        Index(
            "uq_attendance_active_per_day",
            "user_id",
            "work_date",
            unique=True,
            sqlite_where=text("status = 'checked-in'"),
            postgresql_where=text("status = 'checked-in'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    photo = Column(String, nullable=False)
    status = Column(
        Enum(AttendanceStatus, values_callable=lambda e: [m.value for m in e], name="attendance_status"),
        nullable=False,
        default=AttendanceStatus.CHECKED_IN
    )
    work_date = Column(Date, nullable=False)

    # Check-in (naive UTC)
    check_in_time = Column(DateTime, nullable=False, index=True)
    check_in_latitude = Column(Float, nullable=False)
    check_in_longitude = Column(Float, nullable=False)
    check_in_address = Column(String, nullable=False)
    check_in_location_updated = Column(DateTime, nullable=False)

    # Check-out, set once
    check_out_time = Column(DateTime, nullable=True)
    check_out_latitude = Column(Float, nullable=True)
    check_out_longitude = Column(Float, nullable=True)
    check_out_address = Column(String, nullable=True)
    check_out_location_updated = Column(DateTime, nullable=True)

    hours_worked = Column(Numeric(6, 2, asdecimal=False), nullable=False, default=0)

    # Relationships
    user = relationship("User", back_populates="attendance_records")
    location_history = relationship(
        "LocationSnapshot",
        back_populates="attendance",
        order_by="LocationSnapshot.recorded_at",
        cascade="all, delete-orphan"
    )

class LocationSnapshot(Base):
    """Append-only location trail recorded while checked in"""
    __tablename__ = "attendance_locations"

    id = Column(Integer, primary_key=True, index=True)
    attendance_id = Column(Integer, ForeignKey("attendance.id", ondelete="CASCADE"), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String, nullable=False)
    recorded_at = Column(DateTime, nullable=False)

    attendance = relationship("AttendanceRecord", back_populates="location_history")
