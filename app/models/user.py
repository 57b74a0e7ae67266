from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum
from sqlalchemy.orm import relationship
import enum
from app.core.database import Base

class RoleEnum(enum.Enum):
    USER = "user"
    ADMIN = "admin"

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(
        Enum(RoleEnum, values_callable=lambda e: [m.value for m in e], name="user_role"),
        nullable=False,
        default=RoleEnum.USER
    )
    is_blocked = Column(Boolean, nullable=False, default=False)
    designation = Column(String, nullable=True, default="Employee")
    created_at = Column(DateTime, nullable=False)  # naive UTC

    # Relationship
    attendance_records = relationship("AttendanceRecord", back_populates="user")

    def __str__(self):
        return f"{self.name} <{self.email}>"
