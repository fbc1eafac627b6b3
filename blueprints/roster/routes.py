# blueprints/roster/routes.py
from __future__ import annotations
import logging

from flask import Blueprint, abort, request, url_for
from flask_login import current_user, login_required
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from blueprints.auth.routes import admin_required
from blueprints.core.http import created, csv_resp, handle_integrity_error, ok, validation_error
from extensions import db
from models import Teacher
from . import services as svc
from .schemas import TeacherIn, TeacherOut

api_bp = Blueprint("roster_api", __name__)

log = logging.getLogger(__name__)

def _out(t: Teacher) -> dict:
    return TeacherOut.model_validate(svc.teacher_dict(t)).model_dump(mode="json")

@api_bp.get("/teachers")
@login_required
def api_teachers_list():
    q = (request.args.get("q") or "").strip()
    page = max(1, int(request.args.get("page", 1)))
    per_page = min(200, int(request.args.get("per_page", 100)))
    s = select(Teacher)
    if q:
        s = s.where(Teacher.name.ilike(f"%{q}%"))
    total = db.session.execute(select(func.count()).select_from(s.subquery())).scalar_one()
    rows = db.session.execute(
        s.order_by(Teacher.name.asc(), Teacher.id.asc()).offset((page - 1) * per_page).limit(per_page)
    ).scalars()
    return ok({"items": [_out(t) for t in rows], "meta": {"page": page, "per_page": per_page, "total": total}})

@api_bp.post("/teachers")
@admin_required
def api_teachers_create():
    try:
        parsed = TeacherIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    t = Teacher(**parsed.model_dump())
    db.session.add(t)
    try:
        db.session.commit()
    except IntegrityError as ex:
        db.session.rollback()
        return handle_integrity_error(ex)
    log.info("teacher created", extra={"event": "teacher_create", "user_id": current_user.id})
    return created(url_for("roster_api.api_teachers_get", id=t.id), _out(t))

@api_bp.get("/teachers/<int:id>")
@login_required
def api_teachers_get(id: int):
    t = db.session.get(Teacher, id) or abort(404)
    return ok(_out(t))

@api_bp.put("/teachers/<int:id>")
@admin_required
def api_teachers_update(id: int):
    try:
        parsed = TeacherIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    t = db.session.get(Teacher, id) or abort(404)
    # переименование сразу видно в журнале: имена там берутся по id
    for field, value in parsed.model_dump().items():
        setattr(t, field, value)
    try:
        db.session.commit()
    except IntegrityError as ex:
        db.session.rollback()
        return handle_integrity_error(ex)
    return ok(_out(t))

@api_bp.delete("/teachers/<int:id>")
@admin_required
def api_teachers_delete(id: int):
    t = db.session.get(Teacher, id) or abort(404)
    svc.delete_teacher(t, user_id=current_user.id)
    return "", 204

# ---------- производное расписание ----------
@api_bp.get("/teachers/<int:id>/schedule")
@login_required
def api_teacher_schedule(id: int):
    data = svc.schedule_for(id)
    if data is None:
        abort(404)
    return ok(data)

@api_bp.get("/teachers/schedules")
@login_required
def api_teacher_schedules():
    return ok({"items": svc.all_schedules()})

@api_bp.get("/teachers.csv")
@login_required
def api_teachers_csv():
    return csv_resp(svc.teachers_csv(), "teachers.csv")
