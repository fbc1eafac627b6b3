# blueprints/timetable/routes.py
from __future__ import annotations

from flask import Blueprint, abort, jsonify, request, url_for
from flask_login import current_user, login_required
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from blueprints.auth.routes import admin_required
from blueprints.core.http import created, handle_integrity_error, ok, validation_error
from blueprints.substitution import services as sub_svc
from extensions import db
from models import ClassSchedule
from . import services as svc
from .schemas import CellIn, ClassIn, PeriodIn, SettingsIn

api_bp = Blueprint("timetable_api", __name__)

def _tt_error(ex: svc.TimetableError, status: int = 400):
    return jsonify({"ok": False, "errors": [ex.as_dict()]}), status

def _get_class(id: int) -> ClassSchedule:
    return db.session.get(ClassSchedule, id) or abort(404)

# ---------- классы ----------
@api_bp.get("/classes")
@login_required
def api_classes_list():
    config = sub_svc.load_config()
    classes = db.session.execute(select(ClassSchedule).order_by(ClassSchedule.id.asc())).scalars().all()
    if request.args.get("full") in ("1", "true"):
        return ok({"items": [svc.class_dict(c, config) for c in classes]})
    return ok({"items": [{"id": c.id, "class_name": c.class_name} for c in classes]})

@api_bp.post("/classes")
@admin_required
def api_classes_create():
    try:
        parsed = ClassIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    try:
        cls = svc.create_class(parsed.class_name, user_id=current_user.id)
    except IntegrityError as ex:
        db.session.rollback()
        return handle_integrity_error(ex)
    return created(url_for("timetable_api.api_classes_get", id=cls.id),
                   svc.class_dict(cls, sub_svc.load_config()))

@api_bp.get("/classes/<int:id>")
@login_required
def api_classes_get(id: int):
    return ok(svc.class_dict(_get_class(id), sub_svc.load_config()))

@api_bp.put("/classes/<int:id>")
@admin_required
def api_classes_rename(id: int):
    try:
        parsed = ClassIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    cls = _get_class(id)
    try:
        svc.rename_class(cls, parsed.class_name, user_id=current_user.id)
    except IntegrityError as ex:
        db.session.rollback()
        return handle_integrity_error(ex)
    return ok({"ok": True})

@api_bp.delete("/classes/<int:id>")
@admin_required
def api_classes_delete(id: int):
    svc.delete_class(_get_class(id), user_id=current_user.id)
    return "", 204

@api_bp.put("/classes/<int:id>/cells/<day>/<period>")
@admin_required
def api_cell_update(id: int, day: str, period: str):
    try:
        parsed = CellIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    cls = _get_class(id)
    try:
        e = svc.update_cell(cls, day, period, parsed.subject, parsed.teacher_id, parsed.time,
                            user_id=current_user.id)
    except svc.TimetableError as ex:
        return _tt_error(ex)
    return ok({"day": e.day, "period": e.period, "subject": e.subject,
               "teacher_id": e.teacher_id, "time": e.time_label})

@api_bp.post("/classes/<int:id>/copy-monday")
@admin_required
def api_copy_monday(id: int):
    copied = svc.copy_monday_to_all(_get_class(id), user_id=current_user.id)
    return ok({"ok": True, "copied": copied})

# ---------- настройки ----------
@api_bp.get("/settings")
@login_required
def api_settings_get():
    config = sub_svc.load_config()
    return ok({"periods": list(config.periods), "time_slots": list(config.time_slots),
               "days": list(config.days)})

@api_bp.put("/settings")
@admin_required
def api_settings_put():
    try:
        parsed = SettingsIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    try:
        row = svc.update_settings(parsed.periods, parsed.time_slots, user_id=current_user.id)
    except svc.TimetableError as ex:
        return _tt_error(ex)
    return ok({"periods": row.periods, "time_slots": row.time_slots})

@api_bp.post("/settings/periods")
@admin_required
def api_settings_add_period():
    try:
        parsed = PeriodIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    try:
        row = svc.add_period(parsed.period, parsed.time_slot, user_id=current_user.id)
    except svc.TimetableError as ex:
        return _tt_error(ex, 409)
    return ok({"periods": row.periods, "time_slots": row.time_slots}, 201)
