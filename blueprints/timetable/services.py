# blueprints/timetable/services.py
"""
Class timetables and school settings.

Every class carries a full day x period grid of PeriodEntry rows; the
teacher-side view is never stored and is derived on read by the
substitution engine.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select

from extensions import db
from models import AuditLog, ClassSchedule, PeriodEntry, Teacher
from blueprints.substitution import services as sub_svc
from blueprints.substitution.engine import ScheduleConfig

log = logging.getLogger(__name__)

SUBJECT_TEACHER_RE = re.compile(r"^([^(]+)\(([^)]+)\)$")


@dataclass(eq=False)
class TimetableError(Exception):
    code: str
    details: dict[str, Any] | None = None

    def as_dict(self) -> dict:
        out: dict[str, Any] = {"code": self.code}
        if self.details:
            out["details"] = self.details
        return out


def _audit(action: str, entity_id: Optional[int], payload: dict | None = None, user_id: Optional[int] = None):
    db.session.add(AuditLog(user_id=user_id, action=action, entity="timetable",
                            entity_id=entity_id, payload=payload or {}))


# ---------- сериализация ----------
def class_dict(cls: ClassSchedule, config: ScheduleConfig, names: Dict[int, str] | None = None) -> dict:
    if names is None:
        names = dict(db.session.execute(select(Teacher.id, Teacher.name)).tuples().all())
    grid: Dict[str, Dict[str, dict]] = {day: {} for day in config.days}
    for e in cls.entries:
        grid.setdefault(e.day, {})[e.period] = {
            "subject": e.subject or "",
            "teacher_id": e.teacher_id,
            "teacher": names.get(e.teacher_id, "") if e.teacher_id else "",
            "time": e.time_label or "",
        }
    return {"id": cls.id, "class_name": cls.class_name, "schedule": grid}


# ---------- классы ----------
def _materialize(cls: ClassSchedule, config: ScheduleConfig) -> int:
    """Add missing cells for every day x period; returns how many were added."""
    have = {(e.day, e.period) for e in cls.entries}
    added = 0
    for day in config.days:
        for period in config.periods:
            if (day, period) in have:
                continue
            cls.entries.append(PeriodEntry(day=day, period=period, subject="", teacher_id=None,
                                           time_label=config.time_slot_for(period)))
            added += 1
    return added


def create_class(class_name: str, user_id: Optional[int] = None) -> ClassSchedule:
    config = sub_svc.load_config()
    cls = ClassSchedule(class_name=class_name.strip())
    db.session.add(cls)
    _materialize(cls, config)
    db.session.flush()
    _audit("create", cls.id, {"class_name": cls.class_name}, user_id)
    db.session.commit()
    return cls


def rename_class(cls: ClassSchedule, class_name: str, user_id: Optional[int] = None) -> None:
    old = cls.class_name
    cls.class_name = class_name.strip()
    _audit("rename", cls.id, {"from": old, "to": cls.class_name}, user_id)
    db.session.commit()


def delete_class(cls: ClassSchedule, user_id: Optional[int] = None) -> None:
    _audit("delete", cls.id, {"class_name": cls.class_name}, user_id)
    db.session.delete(cls)
    db.session.commit()


def _entry(cls: ClassSchedule, day: str, period: str) -> Optional[PeriodEntry]:
    return next((e for e in cls.entries if e.day == day and e.period == period), None)


def update_cell(cls: ClassSchedule, day: str, period: str, subject: str, teacher_id: Optional[int],
                time_label: Optional[str] = None, user_id: Optional[int] = None) -> PeriodEntry:
    config = sub_svc.load_config()
    if day not in config.days:
        raise TimetableError("UNKNOWN_DAY", {"day": day})
    if period not in config.periods:
        raise TimetableError("UNKNOWN_PERIOD", {"period": period})
    if teacher_id is not None and db.session.get(Teacher, teacher_id) is None:
        raise TimetableError("UNKNOWN_TEACHER", {"teacher_id": teacher_id})

    e = _entry(cls, day, period)
    if e is None:
        e = PeriodEntry(day=day, period=period, time_label=config.time_slot_for(period))
        cls.entries.append(e)
    e.subject = subject or ""
    e.teacher_id = teacher_id
    if time_label is not None:
        e.time_label = time_label
    _audit("update_cell", cls.id, {"day": day, "period": period, "subject": e.subject,
                                   "teacher_id": teacher_id}, user_id)
    db.session.commit()
    return e


def copy_monday_to_all(cls: ClassSchedule, user_id: Optional[int] = None) -> int:
    config = sub_svc.load_config()
    source_day = config.days[0]
    _materialize(cls, config)
    source = {e.period: e for e in cls.entries if e.day == source_day}
    copied = 0
    for e in cls.entries:
        if e.day == source_day or e.day not in config.days:
            continue
        src = source.get(e.period)
        if src is None:
            continue
        e.subject = src.subject
        e.teacher_id = src.teacher_id
        e.time_label = src.time_label
        copied += 1
    _audit("copy_day", cls.id, {"from": source_day, "cells": copied}, user_id)
    db.session.commit()
    return copied


# ---------- настройки ----------
def update_settings(periods: Sequence[str], time_slots: Sequence[str], user_id: Optional[int] = None):
    periods = [str(p).strip() for p in periods]
    if any(not p for p in periods):
        raise TimetableError("BLANK_PERIOD")
    if len(set(periods)) != len(periods):
        raise TimetableError("DUPLICATE_PERIOD")
    if len(periods) != len(time_slots):
        raise TimetableError("LENGTH_MISMATCH", {"periods": len(periods), "time_slots": len(time_slots)})
    row = sub_svc.get_or_create_settings()
    row.periods = list(periods)
    row.time_slots = [s.strip() for s in time_slots]
    _audit("settings", row.id, {"periods": row.periods, "time_slots": row.time_slots}, user_id)
    db.session.flush()
    _rematerialize_all(refresh_labels=True)
    db.session.commit()
    return row


def add_period(period: Optional[str] = None, time_slot: str = "", user_id: Optional[int] = None):
    row = sub_svc.get_or_create_settings()
    periods = list(row.periods)
    new = (period or "").strip() or _next_period_name(periods)
    if new in periods:
        raise TimetableError("DUPLICATE_PERIOD", {"period": new})
    row.periods = periods + [new]
    row.time_slots = list(row.time_slots) + [time_slot.strip()]
    _audit("add_period", row.id, {"period": new}, user_id)
    db.session.flush()
    _rematerialize_all()
    db.session.commit()
    return row


def _next_period_name(periods: List[str]) -> str:
    nums = [int(p) for p in periods if p.isdigit()]
    return str(max(nums) + 1 if nums else len(periods) + 1)


def _rematerialize_all(refresh_labels: bool = False) -> None:
    config = sub_svc.load_config()
    for cls in db.session.execute(select(ClassSchedule)).scalars():
        _materialize(cls, config)
        if refresh_labels:
            for e in cls.entries:
                e.time_label = config.time_slot_for(e.period)


# ---------- импорт CSV ----------
def parse_subject_teacher(cell: str) -> Tuple[str, str]:
    """ "MATHS(PRIYA)" -> ("MATHS", "PRIYA"); plain text is a subject with no teacher."""
    value = (cell or "").strip()
    m = SUBJECT_TEACHER_RE.match(value)
    if m:
        return m.group(1).strip(), m.group(2).strip()
    return value, ""


def _norm(name: str) -> str:
    return re.sub(r"[\s.]+", " ", name).strip().lower()


class TeacherResolver:
    """Exact name first, then case/space/dot-insensitive match."""

    def __init__(self, teachers: Iterable[Teacher]):
        self.exact: Dict[str, int] = {}
        self.loose: Dict[str, int] = {}
        for t in teachers:
            self.exact.setdefault(t.name, t.id)
            self.loose.setdefault(_norm(t.name), t.id)

    def resolve(self, name: str) -> Optional[int]:
        if not name:
            return None
        if name in self.exact:
            return self.exact[name]
        return self.loose.get(_norm(name))


def period_columns(header: Sequence[str], config: ScheduleConfig) -> Dict[str, int]:
    """Map configured periods to CSV columns ("Period 1" or bare "1")."""
    cols: Dict[str, int] = {}
    for idx, h in enumerate(header):
        label = h.strip()
        m = re.match(r"^period\s*(.+?)(\s*\(.*\))?$", label, flags=re.IGNORECASE)
        key = m.group(1).strip() if m else label
        if key in config.periods and key not in cols:
            cols[key] = idx
    return cols


def import_timetable(header: List[str], rows: List[List[str]], dry_run: bool,
                     user_id: Optional[int] = None) -> Tuple[bool, Dict[str, Any]]:
    """
    Rows: Class Name, Period 1..N (optional Day column: otherwise the row
    fills every school day). Existing classes are updated, new ones created.
    """
    config = sub_svc.load_config()
    lower = [h.strip().lower() for h in header]
    if "class name" in lower:
        class_col = lower.index("class name")
    elif "class" in lower:
        class_col = lower.index("class")
    else:
        return False, {"entity": "timetable", "errors": [{"row": 1, "code": "MISSING_CLASS_COLUMN"}]}
    day_col = lower.index("day") if "day" in lower else None
    pcols = period_columns(header, config)
    if not pcols:
        return False, {"entity": "timetable", "errors": [{"row": 1, "code": "NO_PERIOD_COLUMNS"}]}

    resolver = TeacherResolver(db.session.execute(select(Teacher)).scalars())
    errors: List[dict] = []
    unresolved: List[dict] = []
    planned: List[Tuple[str, List[str], Dict[str, Tuple[str, Optional[int]]]]] = []

    for idx, r in enumerate(rows, start=2):
        class_name = r[class_col].strip() if class_col < len(r) else ""
        if not class_name:
            errors.append({"row": idx, "code": "REQUIRED", "field": "class_name"})
            continue
        days = list(config.days)
        if day_col is not None and day_col < len(r) and r[day_col].strip():
            day = r[day_col].strip().capitalize()
            if day not in config.days:
                errors.append({"row": idx, "code": "UNKNOWN_DAY", "value": r[day_col]})
                continue
            days = [day]
        cells: Dict[str, Tuple[str, Optional[int]]] = {}
        for period, col in pcols.items():
            raw = r[col] if col < len(r) else ""
            subject, teacher_name = parse_subject_teacher(raw)
            tid = resolver.resolve(teacher_name)
            if teacher_name and tid is None:
                unresolved.append({"row": idx, "period": period, "teacher": teacher_name})
            cells[period] = (subject, tid)
        planned.append((class_name, days, cells))

    payload: Dict[str, Any] = {"entity": "timetable", "errors": errors, "unresolved_teachers": unresolved,
                               "rows": len(rows)}
    if dry_run or errors:
        return len(errors) == 0, payload

    existing = {c.class_name: c for c in db.session.execute(select(ClassSchedule)).scalars()}
    created = updated = 0
    for class_name, days, cells in planned:
        cls = existing.get(class_name)
        if cls is None:
            cls = ClassSchedule(class_name=class_name)
            db.session.add(cls)
            existing[class_name] = cls
            created += 1
        else:
            updated += 1
        _materialize(cls, config)
        for e in cls.entries:
            if e.day in days and e.period in cells:
                e.subject, e.teacher_id = cells[e.period]
    db.session.flush()
    _audit("import", None, {"created": created, "updated": updated}, user_id)
    db.session.commit()
    log.info("timetable imported", extra={"event": "timetable_import", "count": created + updated})
    payload.update({"created": created, "updated": updated})
    return True, payload
