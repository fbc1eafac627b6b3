from datetime import datetime, date as date_type
from enum import Enum as PyEnum

from flask_login import UserMixin
from sqlalchemy import ForeignKey, UniqueConstraint, Index, Boolean, Date, DateTime, Integer, String, Text, JSON
from sqlalchemy.orm import relationship, Mapped, mapped_column

from extensions import db


# ---------- Enums ----------
class Role(str, PyEnum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"


# ---------- Auth ----------
class User(UserMixin, db.Model):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    # строковое поле, чтобы не зависеть от конкретного типа БД
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=Role.STAFF.value, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<User {self.email}>"


# ---------- Roster ----------
class Teacher(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    subject: Mapped[str | None] = mapped_column(String(255))
    post: Mapped[str | None] = mapped_column(String(255))
    contact_number: Mapped[str | None] = mapped_column(String(50))
    photo_url: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Teacher {self.name}>"


# ---------- Timetable ----------
class ClassSchedule(db.Model):
    __tablename__ = "class_schedule"

    id: Mapped[int] = mapped_column(primary_key=True)
    class_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    entries = relationship("PeriodEntry", back_populates="class_schedule",
                           cascade="all, delete-orphan", order_by="PeriodEntry.id")

    def __repr__(self):
        return f"<ClassSchedule {self.class_name}>"


class PeriodEntry(db.Model):
    __tablename__ = "period_entry"

    id: Mapped[int] = mapped_column(primary_key=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("class_schedule.id", ondelete="CASCADE"), nullable=False)
    day: Mapped[str] = mapped_column(String(16), nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    teacher_id: Mapped[int | None] = mapped_column(ForeignKey("teacher.id", ondelete="SET NULL"), nullable=True)
    time_label: Mapped[str] = mapped_column(String(32), nullable=False, default="")

    class_schedule = relationship("ClassSchedule", back_populates="entries")
    teacher = relationship("Teacher")

    __table_args__ = (
        UniqueConstraint("class_id", "day", "period", name="uq_period_entry_cell"),
        Index("ix_period_entry_teacher_day", "teacher_id", "day"),
    )


class SchoolSettings(db.Model):
    __tablename__ = "school_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    periods: Mapped[list] = mapped_column(JSON, nullable=False)
    time_slots: Mapped[list] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


# ---------- Ledger ----------
class SubstitutionRecord(db.Model):
    __tablename__ = "substitution_record"

    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    absent_teacher_id: Mapped[int | None] = mapped_column(ForeignKey("teacher.id", ondelete="SET NULL"))
    # снимок имени: нужен только если преподаватель уже удалён
    absent_teacher_name: Mapped[str] = mapped_column(String(255), nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    original_class: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    original_subject: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    substitute_teacher_id: Mapped[int | None] = mapped_column(ForeignKey("teacher.id", ondelete="SET NULL"))
    substitute_teacher_name: Mapped[str] = mapped_column(String(255), nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    absent_teacher = relationship("Teacher", foreign_keys=[absent_teacher_id])
    substitute_teacher = relationship("Teacher", foreign_keys=[substitute_teacher_id])

    __table_args__ = (
        UniqueConstraint("date", "absent_teacher_id", "period", name="uq_substitution_date_absent_period"),
        Index("ix_substitution_substitute_date", "substitute_teacher_id", "date"),
    )

    @property
    def absent_display_name(self) -> str:
        return self.absent_teacher.name if self.absent_teacher else self.absent_teacher_name

    @property
    def substitute_display_name(self) -> str:
        return self.substitute_teacher.name if self.substitute_teacher else self.substitute_teacher_name


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
