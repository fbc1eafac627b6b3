# blueprints/core/http.py
# Общие JSON/CSV-ответы для всех API-блюпринтов
from __future__ import annotations
from typing import Any

from flask import Response, jsonify
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from blueprints.substitution.engine import CommitRejected

def ok(data: Any, status: int = 200):
    return jsonify(data), status

def created(location: str, data: Any):
    resp = jsonify(data)
    resp.status_code = 201
    resp.headers["Location"] = location
    return resp

def error(msg: str, status: int = 400, code: str | None = None, field: str | None = None):
    payload = {"error": msg}
    if code: payload["code"] = code
    if field: payload["field"] = field
    return jsonify(payload), status

def pydantic_errors_safe(ve: ValidationError):
    errs = ve.errors()
    for e in errs:
        # ctx может содержать исключения, которые не сериализуются в JSON
        if "ctx" in e and isinstance(e["ctx"], dict):
            e["ctx"] = {k: str(v) for k, v in e["ctx"].items()}
        e.pop("url", None)
        if "input" in e and not isinstance(e["input"], (str, int, float, bool, type(None), list, dict)):
            e["input"] = str(e["input"])
    return errs

def validation_error(ve: ValidationError):
    return jsonify({"error": "validation_error", "detail": pydantic_errors_safe(ve)}), 422

def rejected(ex: CommitRejected, status: int = 400):
    return jsonify({"ok": False, "errors": [ex.as_dict()]}), status

def handle_integrity_error(ex: IntegrityError):
    return error("Unique constraint violation", status=409, code="UNIQUE_CONSTRAINT")

def db_error():
    return jsonify({"error": "db_error"}), 500

def csv_resp(content: str, filename: str) -> Response:
    return Response(
        content,
        mimetype="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
