# blueprints/import_export/services.py
from __future__ import annotations
import csv
import logging
from dataclasses import asdict, dataclass
from io import StringIO
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select

from extensions import db
from models import AuditLog, SubstitutionRecord, Teacher

log = logging.getLogger(__name__)

# ---------- util: CSV чтение с автоопределением разделителя
def read_csv_text(text: str) -> tuple[list[str], list[list[str]]]:
    text = text.lstrip("\ufeff")
    lines = text.splitlines()
    if not lines:
        return [], []
    # угадываем разделитель по заголовку; запасной вариант ',' или ';'
    try:
        delim = csv.Sniffer().sniff(lines[0], delimiters=",;\t").delimiter
    except csv.Error:
        delim = ";" if lines[0].count(";") > lines[0].count(",") else ","
    rows = [r for r in csv.reader(StringIO(text), delimiter=delim) if r]
    if not rows:
        return [], []
    header, data = rows[0], rows[1:]
    return [h.strip() for h in header], [list(map(str.strip, r)) for r in data]

# ---------- детектирование маппинга по заголовкам
HEADER_SYNONYMS: dict[str, list[str]] = {
    # teachers
    "name": ["name", "teacher", "teacher name", "full name"],
    "subject": ["subject", "subjects"],
    "post": ["post", "designation", "position"],
    "contact_number": ["contact_number", "contact number", "contact", "phone", "mobile"],
    # ledger
    "date": ["date", "day"],
    "absent_teacher": ["absent_teacher", "absent teacher", "teacher on leave", "teachers on leave"],
    "period": ["period", "period no"],
    "time_slot": ["time_slot", "time slot", "time"],
    "original_class": ["original_class", "original class", "class"],
    "original_subject": ["original_subject", "original subject"],
    "substitute_teacher": ["substitute_teacher", "substitute teacher", "substitute"],
    "remarks": ["remarks", "remark", "note", "notes"],
}

def detect_mapping(header: list[str], required_keys: list[str]) -> dict[str, str]:
    h_lower = [h.strip().lower() for h in header]
    mapping: dict[str, str] = {}
    for field in required_keys:
        cands = HEADER_SYNONYMS.get(field, [field])
        for c in cands:
            if c.lower() in h_lower:
                mapping[field] = header[h_lower.index(c.lower())]
                break
    return mapping

def apply_mapping(header: list[str], rows: list[list[str]], mapping: dict[str, str]) -> list[dict[str, str]]:
    # mapping: field -> column_name
    idx = {col: i for i, col in enumerate(header)}
    out: list[dict[str, str]] = []
    for r in rows:
        item: dict[str, str] = {}
        for field, col in mapping.items():
            if col in idx and idx[col] < len(r):
                item[field] = r[idx[col]]
            else:
                item[field] = ""
        out.append(item)
    return out

# ---------- контракты для ошибок
@dataclass
class RowError:
    row_index: int   # 1-based по данным (без хедера)
    code: str
    details: dict[str, Any] | None = None

# ---------- преподаватели
TEACHER_FIELDS = ["name", "subject", "post", "contact_number"]

def validate_teachers(rows: list[dict[str, str]]) -> tuple[list[Teacher], list[RowError], list[dict]]:
    errors: list[RowError] = []
    dups: list[dict] = []
    objs: list[Teacher] = []
    seen: set[str] = set()
    existing = {n.lower() for n in db.session.execute(select(Teacher.name)).scalars()}

    for i, r in enumerate(rows, start=1):
        name = (r.get("name") or "").strip()
        if not name:
            errors.append(RowError(i, "MISSING_REQUIRED", {"fields": ["name"]}))
            continue
        key = name.lower()
        if key in seen or key in existing:
            dups.append({"row": i, "unique_key": name})
            continue
        seen.add(key)
        objs.append(Teacher(
            name=name,
            subject=(r.get("subject") or "").strip() or None,
            post=(r.get("post") or "").strip() or None,
            contact_number=(r.get("contact_number") or "").strip() or None,
        ))
    return objs, errors, dups

# ---------- журнал замен
def validate_ledger(text: str) -> tuple[list[SubstitutionRecord], list[RowError], list[dict]]:
    """Ledger CSV -> records with teacher ids resolved by exact name (the snapshot keeps the CSV name)."""
    from blueprints.reports.services import parse_ledger_csv

    lines, errors = parse_ledger_csv(text)
    by_name: Dict[str, int] = {}
    for tid, name in db.session.execute(select(Teacher.id, Teacher.name).order_by(Teacher.id.asc())):
        by_name.setdefault(name, tid)

    dups: list[dict] = []
    objs: list[SubstitutionRecord] = []
    seen: set[tuple] = set()
    for ln in lines:
        absent_id = by_name.get(ln.absent_teacher)
        sub_id = by_name.get(ln.substitute_teacher)
        key = (ln.date, absent_id if absent_id is not None else ln.absent_teacher, ln.period)
        if key in seen:
            dups.append({"row": ln.row_index, "unique_key": f"{ln.date.isoformat()}:{ln.absent_teacher}:{ln.period}"})
            continue
        seen.add(key)
        if absent_id is not None and db.session.execute(
            select(SubstitutionRecord.id).where(
                SubstitutionRecord.date == ln.date,
                SubstitutionRecord.absent_teacher_id == absent_id,
                SubstitutionRecord.period == ln.period,
            )
        ).first():
            dups.append({"row": ln.row_index, "unique_key": f"{ln.date.isoformat()}:{ln.absent_teacher}:{ln.period}"})
            continue
        objs.append(SubstitutionRecord(
            date=ln.date,
            absent_teacher_id=absent_id,
            absent_teacher_name=ln.absent_teacher,
            period=ln.period,
            original_class=ln.original_class,
            original_subject=ln.original_subject,
            substitute_teacher_id=sub_id,
            substitute_teacher_name=ln.substitute_teacher,
            remarks=ln.remarks or None,
        ))
    return objs, errors, dups

# ---------- фасад
ENTITY_FIELDS = {
    "teachers": TEACHER_FIELDS,
    "substitutions": ["date", "absent_teacher", "period", "time_slot", "original_class",
                      "original_subject", "substitute_teacher", "remarks"],
    "timetable": [],
}

def preview(text: str, entity: str) -> dict[str, Any]:
    fields = ENTITY_FIELDS.get(entity)
    if fields is None:
        return {"ok": False, "errors": [{"code": "UNKNOWN_ENTITY"}]}
    header, data = read_csv_text(text)
    mapping = detect_mapping(header, fields)
    return {"ok": True, "columns": header, "sample": data[:5], "detected_mapping": mapping}

def _errors_json(errors: List[RowError]) -> List[dict]:
    return [asdict(e) for e in errors]

def validate_or_commit(text: str, entity: str, mapping: Optional[Dict[str, str]], dry_run: bool,
                       user_id: Optional[int] = None) -> Tuple[bool, Dict[str, Any]]:
    """
    Возвращает (ok, payload). На dry_run всегда статус 200 в роуте.
    На commit: ok==False -> роут отдаёт 422.
    """
    if entity == "timetable":
        from blueprints.timetable.services import import_timetable
        header, data = read_csv_text(text)
        return import_timetable(header, data, dry_run, user_id=user_id)

    if entity == "teachers":
        header, data = read_csv_text(text)
        mapping = mapping or detect_mapping(header, TEACHER_FIELDS)
        objs, errors, dups = validate_teachers(apply_mapping(header, data, mapping))
    elif entity == "substitutions":
        objs, errors, dups = validate_ledger(text)
    else:
        return False, {"ok": False, "errors": [{"code": "UNKNOWN_ENTITY"}]}

    payload: Dict[str, Any] = {"entity": entity, "errors": _errors_json(errors), "duplicates": dups,
                               "rows": len(objs) + len(errors) + len(dups)}
    if dry_run:
        return len(errors) == 0 and len(dups) == 0, payload
    if errors or dups:
        return False, payload

    db.session.add_all(objs)
    db.session.add(AuditLog(user_id=user_id, action="import", entity=entity, entity_id=None,
                            payload={"inserted": len(objs)}))
    db.session.commit()
    log.info("csv imported", extra={"event": f"{entity}_import", "count": len(objs), "user_id": user_id})
    payload["inserted"] = len(objs)
    return True, payload
