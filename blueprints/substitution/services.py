# blueprints/substitution/services.py
"""
DB side of the substitution desk: load a roster/timetable snapshot into the
pure engine, persist commits, and read the ledger back as engine rows.
"""
from __future__ import annotations
import csv
import logging
from dataclasses import dataclass
from datetime import date
from io import StringIO
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from flask import current_app
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from extensions import db
from models import AuditLog, ClassSchedule, SchoolSettings, SubstitutionRecord, Teacher
from . import engine as eng
from .engine import (
    AbsentTeacher, ClassTimetable, CommitRejected, PeriodCell, ScheduleConfig,
    SubstitutionRow, TeacherRef,
)

log = logging.getLogger(__name__)


# ---------- settings ----------
def load_config() -> ScheduleConfig:
    cfg = current_app.config
    row = db.session.execute(select(SchoolSettings).limit(1)).scalar_one_or_none()
    periods = row.periods if row else cfg["DEFAULT_PERIODS"]
    time_slots = row.time_slots if row else cfg["DEFAULT_TIME_SLOTS"]
    return ScheduleConfig(
        periods=tuple(str(p) for p in periods),
        time_slots=tuple(time_slots),
        days=tuple(cfg["SCHOOL_DAYS"]),
        default_minutes=cfg["DEFAULT_PERIOD_MINUTES"],
    )


def get_or_create_settings() -> SchoolSettings:
    row = db.session.execute(select(SchoolSettings).limit(1)).scalar_one_or_none()
    if row is None:
        cfg = current_app.config
        row = SchoolSettings(periods=list(cfg["DEFAULT_PERIODS"]), time_slots=list(cfg["DEFAULT_TIME_SLOTS"]))
        db.session.add(row)
        db.session.flush()
    return row


# ---------- snapshot ----------
@dataclass
class Snapshot:
    config: ScheduleConfig
    teachers: List[TeacherRef]
    classes: List[ClassTimetable]
    schedules: eng.TeacherSchedules

    def teacher(self, teacher_id: int) -> Optional[TeacherRef]:
        return next((t for t in self.teachers if t.id == teacher_id), None)


def roster_refs() -> List[TeacherRef]:
    # порядок ростера: по имени, затем по id
    rows = db.session.execute(select(Teacher.id, Teacher.name).order_by(Teacher.name.asc(), Teacher.id.asc())).all()
    return [TeacherRef(id=r.id, name=r.name) for r in rows]


def class_timetables() -> List[ClassTimetable]:
    out: List[ClassTimetable] = []
    q = select(ClassSchedule).options(selectinload(ClassSchedule.entries)).order_by(ClassSchedule.id.asc())
    for cls in db.session.execute(q).scalars():
        tt = ClassTimetable(id=cls.id, class_name=cls.class_name)
        for e in cls.entries:
            tt.schedule.setdefault(e.day, {})[e.period] = PeriodCell(
                subject=e.subject or "", teacher_id=e.teacher_id, time=e.time_label or "",
            )
        out.append(tt)
    return out


def load_snapshot() -> Snapshot:
    config = load_config()
    teachers = roster_refs()
    classes = class_timetables()
    return Snapshot(
        config=config,
        teachers=teachers,
        classes=classes,
        schedules=eng.sync_teacher_schedules(teachers, classes, config),
    )


# ---------- planning ----------
def resolve_absent(snap: Snapshot, day: str, absent_ids: Sequence[int]) -> List[AbsentTeacher]:
    out: List[AbsentTeacher] = []
    seen: set[int] = set()
    for tid in absent_ids:
        if tid in seen:
            continue
        seen.add(tid)
        t = snap.teacher(tid)
        if t is None:
            raise CommitRejected("UNKNOWN_TEACHER", "Absent teacher is not in the roster", {"teacher_id": tid})
        out.append(eng.register_absence(t, day, snap.schedules, snap.config))
    return out


def build_plan(snap: Snapshot, on: date, absent: Sequence[AbsentTeacher],
               assignments: eng.AssignmentMatrix,
               all_absent: Sequence[AbsentTeacher] | None = None) -> List[dict]:
    """
    Per absent teacher: each period with original class, current choice and candidate list.
    all_absent (default: absent) is the full set of teachers off that day, used to filter candidates.
    """
    day = eng.weekday_name(on)
    everyone = absent if all_absent is None else all_absent
    plan = []
    for a in absent:
        chosen = assignments.get(a.teacher_id, {})
        periods = []
        for p in a.periods:
            candidates = eng.available_teachers(p, day, snap.teachers, snap.schedules, everyone,
                                                assignments, for_absent_id=a.teacher_id)
            periods.append({
                "period": p,
                "time_slot": snap.config.time_slot_for(p),
                "original_class": snap.schedules.get(a.teacher_id, {}).get(day, {}).get(p, ""),
                "substitute_teacher_id": chosen.get(p),
                "candidates": [{"id": t.id, "name": t.name} for t in candidates],
            })
        plan.append({"teacher_id": a.teacher_id, "name": a.name, "periods": periods})
    return plan


def existing_plan(on: date) -> Tuple[List[int], Dict[int, Dict[str, Optional[int]]], Dict[int, Dict[str, str]]]:
    """Ledger rows for a date reloaded as absent ids + assignment matrix + remarks."""
    q = (select(SubstitutionRecord)
         .where(SubstitutionRecord.date == on)
         .order_by(SubstitutionRecord.id.asc()))
    absent_ids: List[int] = []
    matrix: Dict[int, Dict[str, Optional[int]]] = {}
    remarks: Dict[int, Dict[str, str]] = {}
    for rec in db.session.execute(q).scalars():
        if rec.absent_teacher_id is None:
            # преподаватель удалён: в планировщик такую строку не вернуть
            continue
        if rec.absent_teacher_id not in matrix:
            absent_ids.append(rec.absent_teacher_id)
            matrix[rec.absent_teacher_id] = {}
        matrix[rec.absent_teacher_id][rec.period] = rec.substitute_teacher_id
        if rec.remarks:
            remarks.setdefault(rec.absent_teacher_id, {})[rec.period] = rec.remarks
    return absent_ids, matrix, remarks


def committed_elsewhere(on: date, exclude_ids: Sequence[int]
                        ) -> Tuple[List[int], Dict[Tuple[str, int], Optional[int]]]:
    """
    Rows already saved for the date under absent teachers not in exclude_ids:
    their absent ids, and (period, substitute) -> absent teacher for each row.
    """
    skip = set(exclude_ids)
    q = (select(SubstitutionRecord.absent_teacher_id, SubstitutionRecord.period,
                SubstitutionRecord.substitute_teacher_id)
         .where(SubstitutionRecord.date == on)
         .order_by(SubstitutionRecord.id.asc()))
    absent_ids: List[int] = []
    taken: Dict[Tuple[str, int], Optional[int]] = {}
    for absent_id, period, sub_id in db.session.execute(q):
        if absent_id is not None and absent_id in skip:
            continue
        if absent_id is not None and absent_id not in absent_ids:
            absent_ids.append(absent_id)
        if sub_id is not None:
            taken[(period, sub_id)] = absent_id
    return absent_ids, taken


def with_committed(snap: Snapshot, on: date, absent: Sequence[AbsentTeacher],
                   assignments: eng.AssignmentMatrix
                   ) -> Tuple[List[AbsentTeacher], Dict[int, Dict[str, Optional[int]]]]:
    """Client-side plan merged with what is already saved for the date under other absent teachers."""
    own = {a.teacher_id for a in absent}
    other_ids, matrix, _ = existing_plan(on)
    day = eng.weekday_name(on)
    others = [eng.register_absence(t, day, snap.schedules, snap.config)
              for t in (snap.teacher(i) for i in other_ids if i not in own) if t is not None]
    merged: Dict[int, Dict[str, Optional[int]]] = {
        tid: dict(row) for tid, row in matrix.items() if tid not in own
    }
    merged.update({tid: dict(row) for tid, row in assignments.items()})
    return list(absent) + others, merged


# ---------- commit ----------
def commit_substitutions(on: Optional[date], absent_ids: Sequence[int], assignments: eng.AssignmentMatrix,
                         remarks: Mapping[int, Mapping[str, str]] | None = None,
                         user_id: Optional[int] = None) -> List[SubstitutionRecord]:
    """
    Validate through the engine, then replace the date's rows for the named
    absent teachers in one transaction. Raises CommitRejected before touching
    the DB; IntegrityError/SQLAlchemyError after a rollback.
    """
    if on is None:
        raise CommitRejected("NO_DATE", "Please select a date")
    snap = load_snapshot()
    day = eng.weekday_name(on)
    absent = resolve_absent(snap, day, absent_ids)
    flat_remarks = {(tid, p): text for tid, per in (remarks or {}).items() for p, text in per.items() if text}
    other_ids, other_taken = committed_elsewhere(on, [a.teacher_id for a in absent])
    try:
        rows = eng.build_substitution_records(on, absent, assignments, snap.teachers, snap.schedules,
                                              snap.classes, snap.config, flat_remarks,
                                              extra_absent_ids=other_ids, extra_taken=other_taken)
    except CommitRejected as ex:
        log.info("commit rejected", extra={"event": "substitution_rejected", "code": ex.code,
                                           "date": on.isoformat()})
        raise

    ids = [a.teacher_id for a in absent]
    try:
        db.session.execute(
            delete(SubstitutionRecord).where(
                SubstitutionRecord.date == on,
                SubstitutionRecord.absent_teacher_id.in_(ids),
            )
        )
        records = [
            SubstitutionRecord(
                date=r.date,
                absent_teacher_id=r.absent_teacher_id,
                absent_teacher_name=r.absent_teacher,
                period=r.period,
                original_class=r.original_class,
                original_subject=r.original_subject,
                substitute_teacher_id=r.substitute_teacher_id,
                substitute_teacher_name=r.substitute_teacher,
                remarks=r.remarks or None,
                created_by_id=user_id,
            )
            for r in rows
        ]
        db.session.add_all(records)
        db.session.add(AuditLog(user_id=user_id, action="commit", entity="substitution", entity_id=None,
                                payload={"date": on.isoformat(), "absent_teacher_ids": ids, "count": len(records)}))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        log.warning("substitution commit conflict", extra={"event": "substitution_conflict", "date": on.isoformat()})
        raise
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("substitution commit failed", extra={"event": "substitution_db_error", "date": on.isoformat()})
        raise

    log.info("substitutions saved", extra={"event": "substitution_commit", "date": on.isoformat(),
                                           "count": len(records), "user_id": user_id})
    return records


# ---------- ledger ----------
def record_to_row(rec: SubstitutionRecord) -> SubstitutionRow:
    # имена берём из ростера, снимок только если преподаватель удалён
    return SubstitutionRow(
        date=rec.date,
        absent_teacher_id=rec.absent_teacher_id,
        absent_teacher=rec.absent_display_name,
        period=rec.period,
        original_class=rec.original_class or "",
        original_subject=rec.original_subject or "",
        substitute_teacher_id=rec.substitute_teacher_id,
        substitute_teacher=rec.substitute_display_name,
        remarks=rec.remarks or "",
    )


def ledger_rows(date_from: Optional[date] = None, date_to: Optional[date] = None,
                month: Optional[str] = None) -> List[SubstitutionRow]:
    q = (select(SubstitutionRecord)
         .options(selectinload(SubstitutionRecord.absent_teacher),
                  selectinload(SubstitutionRecord.substitute_teacher)))
    if date_from:
        q = q.where(SubstitutionRecord.date >= date_from)
    if date_to:
        q = q.where(SubstitutionRecord.date <= date_to)
    q = q.order_by(SubstitutionRecord.date.desc(), SubstitutionRecord.id.asc())
    rows = [record_to_row(r) for r in db.session.execute(q).scalars()]
    return eng.filter_records(rows, month=month) if month else rows


# ---------- substitution sheet ----------
NO_CLASS = "---"
UNASSIGNED = "___"


def sheet_rows(snap: Snapshot, on: date, absent: Sequence[AbsentTeacher],
               assignments: eng.AssignmentMatrix) -> List[dict]:
    """One row per absent teacher, a cell per configured period."""
    day = eng.weekday_name(on)
    by_id = {t.id: t.name for t in snap.teachers}
    out = []
    for i, a in enumerate(absent, start=1):
        own = snap.schedules.get(a.teacher_id, {}).get(day, {})
        chosen = assignments.get(a.teacher_id, {})
        classes: List[str] = []
        cells: List[str] = []
        for p in snap.config.periods:
            cls = own.get(p, eng.FREE)
            if cls in (eng.FREE, ""):
                cells.append(NO_CLASS)
                continue
            for name in cls.split("+"):
                if name not in classes:
                    classes.append(name)
            sub = chosen.get(p)
            cells.append(by_id.get(sub, UNASSIGNED) if sub is not None else UNASSIGNED)
        out.append({"sno": i, "teacher": a.name, "classes": ", ".join(classes), "cells": cells})
    return out


def sheet_csv(snap: Snapshot, rows: Sequence[dict]) -> str:
    buf = StringIO()
    w = csv.writer(buf)
    header = ["S.No", "Teachers on Leave", "Classes"]
    header += [f"Period {p} ({snap.config.time_slot_for(p)})" for p in snap.config.periods]
    w.writerow(header)
    for r in rows:
        w.writerow([r["sno"], r["teacher"], r["classes"], *r["cells"]])
    return buf.getvalue()
