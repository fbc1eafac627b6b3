# blueprints/substitution/routes.py
from __future__ import annotations
import re
from datetime import date

from flask import Blueprint, abort, current_app, render_template, request, url_for
from flask_login import current_user, login_required
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from blueprints.auth.routes import admin_required
from blueprints.core.http import (
    created, csv_resp, db_error, handle_integrity_error, ok, rejected, validation_error,
)
from . import engine as eng
from . import services as svc
from .engine import CommitRejected
from .schemas import AvailableIn, CommitIn, PlanIn, SubstitutionOut

api_bp = Blueprint("substitution_api", __name__)

MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

def _parse_date_arg(name: str, required: bool = False) -> date | None:
    raw = request.args.get(name)
    if not raw:
        if required:
            abort(400, description=f"{name} is required")
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        abort(400, description="Bad date")

def _month_arg() -> str | None:
    month = request.args.get("month")
    if month and not MONTH_RE.match(month):
        abort(400, description="Bad month")
    return month or None

def _row_out(r: eng.SubstitutionRow) -> dict:
    return SubstitutionOut.model_validate(r, from_attributes=True).model_dump(mode="json")

# ---------- планирование ----------
@api_bp.get("/substitutions/day")
@login_required
def api_day():
    on = _parse_date_arg("date", required=True)
    snap = svc.load_snapshot()
    day = eng.weekday_name(on)
    absent_ids, matrix, remarks = svc.existing_plan(on)
    absent = svc.resolve_absent(snap, day, absent_ids)
    teaching = eng.teaching_teachers(day, snap.teachers, snap.schedules, snap.config)
    return ok({
        "date": on.isoformat(),
        "day": day,
        "periods": list(snap.config.periods),
        "time_slots": list(snap.config.time_slots),
        "teachers": [{"id": t.id, "name": t.name} for t in teaching],
        "absent_teacher_ids": absent_ids,
        "assignments": {str(k): v for k, v in matrix.items()},
        "remarks": {str(k): v for k, v in remarks.items()},
        "plan": svc.build_plan(snap, on, absent, matrix),
    })

@api_bp.post("/substitutions/plan")
@login_required
def api_plan():
    try:
        data = PlanIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    snap = svc.load_snapshot()
    try:
        absent = svc.resolve_absent(snap, eng.weekday_name(data.date), data.absent_teacher_ids)
    except CommitRejected as ex:
        return rejected(ex)
    all_absent, merged = svc.with_committed(snap, data.date, absent, data.assignments)
    return ok({
        "date": data.date.isoformat(),
        "day": eng.weekday_name(data.date),
        "plan": svc.build_plan(snap, data.date, absent, merged, all_absent=all_absent),
    })

@api_bp.post("/substitutions/available")
@login_required
def api_available():
    try:
        data = AvailableIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    snap = svc.load_snapshot()
    day = eng.weekday_name(data.date)
    try:
        absent = svc.resolve_absent(snap, day, data.absent_teacher_ids)
    except CommitRejected as ex:
        return rejected(ex)
    all_absent, merged = svc.with_committed(snap, data.date, absent, data.assignments)
    teachers = eng.available_teachers(data.period, day, snap.teachers, snap.schedules, all_absent,
                                      merged, for_absent_id=data.for_absent_id)
    return ok({"period": data.period, "teachers": [{"id": t.id, "name": t.name} for t in teachers]})

# ---------- фиксация ----------
@api_bp.post("/substitutions")
@admin_required
def api_commit():
    try:
        data = CommitIn.model_validate(request.get_json(silent=True) or {})
    except ValidationError as ve:
        return validation_error(ve)
    try:
        records = svc.commit_substitutions(data.date, data.absent_teacher_ids, data.assignments,
                                           data.remarks, user_id=getattr(current_user, "id", None))
    except CommitRejected as ex:
        return rejected(ex)
    except IntegrityError as ex:
        return handle_integrity_error(ex)
    except SQLAlchemyError:
        return db_error()
    location = url_for("substitution_api.api_list", date_from=data.date.isoformat(), date_to=data.date.isoformat())
    return created(location, {"ok": True, "date": data.date.isoformat(), "count": len(records)})

@api_bp.get("/substitutions")
@login_required
def api_list():
    d_from = _parse_date_arg("date_from")
    d_to = _parse_date_arg("date_to")
    rows = svc.ledger_rows(d_from, d_to, _month_arg())
    return ok({"items": [_row_out(r) for r in rows], "meta": {"total": len(rows)}})

# ---------- лист замен ----------
def _sheet_context():
    try:
        data = PlanIn.model_validate(request.get_json(silent=True) or request.form.to_dict() or {})
    except ValidationError as ve:
        return None, validation_error(ve)
    snap = svc.load_snapshot()
    try:
        absent = svc.resolve_absent(snap, eng.weekday_name(data.date), data.absent_teacher_ids)
    except CommitRejected as ex:
        return None, rejected(ex)
    rows = svc.sheet_rows(snap, data.date, absent, data.assignments)
    return (snap, data.date, rows), None

@api_bp.post("/substitutions/sheet.csv")
@login_required
def api_sheet_csv():
    ctx, err = _sheet_context()
    if err:
        return err
    snap, on, rows = ctx
    return csv_resp(svc.sheet_csv(snap, rows), f"substitutions_{on.isoformat()}.csv")

@api_bp.post("/substitutions/sheet.html")
@login_required
def api_sheet_html():
    ctx, err = _sheet_context()
    if err:
        return err
    snap, on, rows = ctx
    return render_template(
        "substitution/sheet.html",
        school_name=current_app.config.get("SCHOOL_NAME"),
        on=on,
        periods=[(p, snap.config.time_slot_for(p)) for p in snap.config.periods],
        rows=rows,
    )
