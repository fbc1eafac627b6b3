# blueprints/import_export/routes.py
from __future__ import annotations
import json
from typing import Dict, Optional, Tuple

from flask import Blueprint, request, jsonify
from flask_login import current_user
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from blueprints.auth.routes import admin_required
from blueprints.core.http import db_error, handle_integrity_error
from extensions import db
from . import services as svc

api_bp = Blueprint("import_export_api", __name__)

ENTITIES = ("teachers", "timetable", "substitutions")

def _read_text_and_mapping() -> Tuple[str, Optional[Dict[str, str]]]:
    f = request.files.get("file")
    # читаем CSV в UTF-8-sig, чтобы с BOM всё было ок
    text = f.read().decode("utf-8-sig", errors="replace") if f else (request.get_data(as_text=True) or "")
    raw = request.form.get("mapping")
    if not raw:
        return text, None
    try:
        mapping = json.loads(raw)
    except ValueError:
        return text, None
    return text, mapping if isinstance(mapping, dict) else None

def _entity() -> str:
    return (request.args.get("entity") or "").strip().lower()

def _unknown():
    return jsonify({"ok": False, "errors": [{"code": "UNKNOWN_ENTITY"}]}), 400

@api_bp.post("/admin/import/preview")
@admin_required
def preview():
    entity = _entity()
    if entity not in ENTITIES:
        return _unknown()
    text, _ = _read_text_and_mapping()
    return jsonify(svc.preview(text, entity)), 200

@api_bp.post("/admin/import/validate")
@admin_required
def validate():
    entity = _entity()
    if entity not in ENTITIES:
        return _unknown()
    text, mapping = _read_text_and_mapping()
    ok, payload = svc.validate_or_commit(text, entity, mapping, dry_run=True)
    return jsonify({"ok": ok, **payload}), 200

@api_bp.post("/admin/import/commit")
@admin_required
def commit():
    entity = _entity()
    if entity not in ENTITIES:
        return _unknown()
    text, mapping = _read_text_and_mapping()
    try:
        ok, payload = svc.validate_or_commit(text, entity, mapping, dry_run=False, user_id=current_user.id)
    except IntegrityError as ex:
        db.session.rollback()
        return handle_integrity_error(ex)
    except SQLAlchemyError:
        db.session.rollback()
        svc.log.exception("import failed", extra={"event": f"{entity}_import_error"})
        return db_error()
    return jsonify({"ok": ok, **payload}), (200 if ok else 422)
