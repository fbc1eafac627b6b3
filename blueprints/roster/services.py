# blueprints/roster/services.py
from __future__ import annotations
import csv
import logging
from io import StringIO
from typing import Dict, List, Optional

from sqlalchemy import select, update

from extensions import db
from models import AuditLog, PeriodEntry, SubstitutionRecord, Teacher
from blueprints.substitution import services as sub_svc
from blueprints.substitution.engine import scheduled_periods

log = logging.getLogger(__name__)

TEACHER_CSV_HEADER = ["Name", "Subject", "Post", "Contact Number"]

def teacher_dict(t: Teacher) -> Dict[str, object]:
    return {
        "id": t.id,
        "name": t.name,
        "subject": t.subject,
        "post": t.post,
        "contact_number": t.contact_number,
        "photo_url": t.photo_url,
    }

def delete_teacher(t: Teacher, user_id: Optional[int] = None) -> None:
    """
    Ячейки расписания освобождаются, строки журнала остаются со снимком имени.
    На SQLite внешние ключи не проверяются, поэтому обнуляем ссылки явно.
    """
    tid = t.id
    freed = db.session.execute(
        update(PeriodEntry).where(PeriodEntry.teacher_id == tid).values(teacher_id=None)
    ).rowcount
    db.session.execute(
        update(SubstitutionRecord).where(SubstitutionRecord.absent_teacher_id == tid).values(absent_teacher_id=None)
    )
    db.session.execute(
        update(SubstitutionRecord).where(SubstitutionRecord.substitute_teacher_id == tid).values(substitute_teacher_id=None)
    )
    db.session.delete(t)
    db.session.add(AuditLog(user_id=user_id, action="delete", entity="teacher", entity_id=tid,
                            payload={"name": t.name, "freed_cells": freed}))
    db.session.commit()
    log.info("teacher deleted", extra={"event": "teacher_delete", "count": freed, "user_id": user_id})

def schedule_for(teacher_id: int) -> Optional[dict]:
    snap = sub_svc.load_snapshot()
    ref = snap.teacher(teacher_id)
    if ref is None:
        return None
    sched = snap.schedules[teacher_id]
    return {
        "teacher_id": ref.id,
        "name": ref.name,
        "periods": list(snap.config.periods),
        "schedule": sched,
        "busy": {day: scheduled_periods(sched, day, snap.config) for day in snap.config.days},
    }

def all_schedules() -> List[dict]:
    snap = sub_svc.load_snapshot()
    return [
        {"teacher_id": t.id, "name": t.name, "schedule": snap.schedules[t.id]}
        for t in snap.teachers
    ]

def teachers_csv() -> str:
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(TEACHER_CSV_HEADER)
    for t in db.session.execute(select(Teacher).order_by(Teacher.name.asc(), Teacher.id.asc())).scalars():
        w.writerow([t.name, t.subject or "", t.post or "", t.contact_number or ""])
    return buf.getvalue()
