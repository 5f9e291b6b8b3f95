import uuid
from datetime import datetime, date as date_type
from typing import Optional, List

from sqlalchemy import (
    String,
    DateTime,
    Date,
    ForeignKey,
    Integer,
    JSON,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[str]:
    return mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))


class AuthUser(Base):
    """Identity record held by the auth side; its metadata carries role and shift."""
    __tablename__ = "auth_users"

    id: Mapped[str] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    user_metadata: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)  # {role, shift, name, username}
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_sign_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class User(Base):
    """Application row for a user. Shares its id with AuthUser."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    role: Mapped[Optional[str]] = mapped_column(String(50), default="viewer")  # admin|shift_leader|engineer|technician|viewer
    shift: Mapped[Optional[str]] = mapped_column(String(20))  # A|B|C|D|Regular
    avatar: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    permissions = relationship("Permission", back_populates="user", cascade="all, delete-orphan")


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    permission: Mapped[str] = mapped_column(String(100), nullable=False)

    user = relationship("User", back_populates="permissions")

    __table_args__ = (UniqueConstraint("user_id", "permission", name="uq_user_permission"),)


class UserShift(Base):
    __tablename__ = "user_shifts"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    shift: Mapped[str] = mapped_column(String(20), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    avatar: Mapped[Optional[str]] = mapped_column(Text)  # storage key (avatars/<id>.png) or absolute URL
    avatar_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Shift(Base):
    """Work shift (morning / night), not the A-D crew assignment."""
    __tablename__ = "shifts"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_time: Mapped[Optional[str]] = mapped_column(String(5), default="00:00")
    end_time: Mapped[Optional[str]] = mapped_column(String(5), default="12:00")


class Area(Base):
    __tablename__ = "areas"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    area_id: Mapped[str] = mapped_column(String(50), ForeignKey("areas.id", ondelete="CASCADE"), nullable=False, index=True)


class Fitting(Base):
    __tablename__ = "fittings"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    area_id: Mapped[str] = mapped_column(String(50), ForeignKey("areas.id", ondelete="CASCADE"), nullable=False, index=True)


class MaintenanceTask(Base):
    __tablename__ = "maintenance_tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(50), default="corrective")  # corrective|preventive|predictive|safety|regulatory
    area: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    location: Mapped[Optional[str]] = mapped_column(String(100))
    fitting: Mapped[Optional[str]] = mapped_column(String(100))
    fitting_number: Mapped[Optional[str]] = mapped_column(String(50))
    description: Mapped[Optional[str]] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(30), default="Pending", index=True)  # Pending|In Progress|Scheduled|Completed
    priority: Mapped[str] = mapped_column(String(20), default="medium")  # low|medium|high|critical
    date_reported: Mapped[Optional[date_type]] = mapped_column(Date, index=True)
    scheduled_date: Mapped[Optional[date_type]] = mapped_column(Date)
    completed_date: Mapped[Optional[date_type]] = mapped_column(Date)
    reported_by: Mapped[Optional[str]] = mapped_column(String(255))
    reported_by_name: Mapped[Optional[str]] = mapped_column(String(255))
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class HandoverNote(Base):
    __tablename__ = "handover_notes"

    id: Mapped[str] = uuid_pk()
    shift: Mapped[str] = mapped_column(String(50), nullable=False)
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    tasks: Mapped[List["HandoverTask"]] = relationship(
        "HandoverTask", back_populates="handover", cascade="all, delete-orphan", order_by="HandoverTask.id"
    )

    __table_args__ = (Index("idx_handover_shift_date", "shift", "date"),)


class HandoverTask(Base):
    """Maintenance ticket status as referenced from a handover note."""
    __tablename__ = "handover_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    handover_id: Mapped[str] = mapped_column(String(36), ForeignKey("handover_notes.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[Optional[str]] = mapped_column(String(30))
    description: Mapped[Optional[str]] = mapped_column(Text)

    handover = relationship("HandoverNote", back_populates="tasks")


class MaintenanceReport(Base):
    __tablename__ = "maintenance_reports"

    id: Mapped[str] = uuid_pk()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    report_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)  # maintenance|equipment|safety
    date_range: Mapped[Optional[str]] = mapped_column(String(20))
    area: Mapped[Optional[str]] = mapped_column(String(50))
    user_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    report_data: Mapped[Optional[dict]] = mapped_column(JSON)
    csv_data: Mapped[Optional[str]] = mapped_column(Text)
    date_generated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id: Mapped[str] = uuid_pk()
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), index=True)
    jti: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
