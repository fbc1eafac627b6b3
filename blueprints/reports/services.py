# blueprints/reports/services.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from io import StringIO
import csv
from typing import Dict, Iterable, List, Optional, Tuple

from blueprints.import_export.services import RowError, detect_mapping, read_csv_text
from blueprints.substitution.engine import (
    ScheduleConfig, SubstituteStats, SubstitutionRow,
    aggregate_substitute_stats, group_by_date,
)

LEDGER_HEADER = ["date", "absent_teacher", "period", "time_slot", "original_class",
                 "original_subject", "substitute_teacher", "remarks"]
STATS_HEADER = ["S.No", "Teacher Name", "Total Periods", "Total Hours", "Days Worked"]
DAILY_HEADER = ["S.No", "Date", "Absent Teacher", "Period", "Original Class",
                "Original Subject", "Substitute Teacher"]

def _writer(buf: StringIO):
    return csv.writer(buf, delimiter=";")

def substitute_stats_csv(rows: Iterable[SubstitutionRow], config: ScheduleConfig) -> str:
    """
    CSV: S.No;Teacher Name;Total Periods;Total Hours;Days Worked
    """
    buf = StringIO()
    w = _writer(buf)
    w.writerow(STATS_HEADER)
    for i, s in enumerate(aggregate_substitute_stats(rows, config), start=1):
        w.writerow([i, s.teacher, s.periods, f"{s.hours:.2f}", s.days])
    return buf.getvalue()

def daily_csv(rows: Iterable[SubstitutionRow]) -> str:
    """
    CSV: S.No;Date;Absent Teacher;Period;Original Class;Original Subject;Substitute Teacher
    newest date first, then absent teacher, then period
    """
    buf = StringIO()
    w = _writer(buf)
    w.writerow(DAILY_HEADER)
    i = 0
    for d, day_rows in group_by_date(rows):
        for r in day_rows:
            i += 1
            w.writerow([i, d.isoformat(), r.absent_teacher, r.period, r.original_class,
                        r.original_subject, r.substitute_teacher])
    return buf.getvalue()

def ledger_csv(rows: Iterable[SubstitutionRow], config: ScheduleConfig) -> str:
    """
    CSV: date;absent_teacher;period;time_slot;original_class;original_subject;substitute_teacher;remarks
    """
    buf = StringIO()
    w = _writer(buf)
    w.writerow(LEDGER_HEADER)
    ordered = sorted(rows, key=lambda r: (r.date, r.absent_teacher, _period_key(r.period, config)))
    for r in ordered:
        w.writerow([r.date.isoformat(), r.absent_teacher, r.period, config.time_slot_for(r.period),
                    r.original_class, r.original_subject, r.substitute_teacher, r.remarks])
    return buf.getvalue()

def _period_key(period: str, config: ScheduleConfig) -> Tuple[int, str]:
    try:
        return config.periods.index(period), period
    except ValueError:
        return len(config.periods), period

# ---------- разбор журнала ----------
@dataclass
class LedgerLine:
    row_index: int
    date: date
    absent_teacher: str
    period: str
    original_class: str
    original_subject: str
    substitute_teacher: str
    remarks: str

def parse_ledger_csv(text: str) -> Tuple[List[LedgerLine], List[RowError]]:
    header, data = read_csv_text(text)
    mapping = detect_mapping(header, LEDGER_HEADER)
    missing = [k for k in ("date", "absent_teacher", "period", "substitute_teacher") if k not in mapping]
    if missing:
        return [], [RowError(1, "MISSING_COLUMNS", {"columns": missing})]
    idx = {k: header.index(v) for k, v in mapping.items()}

    def cell(r: List[str], key: str) -> str:
        i = idx.get(key)
        return r[i].strip() if i is not None and i < len(r) else ""

    lines: List[LedgerLine] = []
    errors: List[RowError] = []
    for n, r in enumerate(data, start=1):
        if not any(x.strip() for x in r):
            continue
        raw_date = cell(r, "date")
        try:
            d = date.fromisoformat(raw_date)
        except ValueError:
            errors.append(RowError(n, "BAD_DATE", {"value": raw_date}))
            continue
        absent, period, sub = cell(r, "absent_teacher"), cell(r, "period"), cell(r, "substitute_teacher")
        if not (absent and period and sub):
            errors.append(RowError(n, "MISSING_REQUIRED", {"fields": ["absent_teacher", "period", "substitute_teacher"]}))
            continue
        lines.append(LedgerLine(
            row_index=n, date=d, absent_teacher=absent, period=period,
            original_class=cell(r, "original_class"), original_subject=cell(r, "original_subject"),
            substitute_teacher=sub, remarks=cell(r, "remarks"),
        ))
    return lines, errors

# ---------- сводки для печатных страниц ----------
def summary(rows: List[SubstitutionRow], config: ScheduleConfig) -> Dict[str, object]:
    stats: List[SubstituteStats] = aggregate_substitute_stats(rows, config)
    return {
        "total_substitutions": len(rows),
        "absent_teachers": len({r.absent_teacher_id or r.absent_teacher for r in rows}),
        "substitute_teachers": len(stats),
        "days": len({r.date for r in rows}),
        "total_hours": round(sum(s.hours for s in stats), 2),
        "stats": stats,
        "by_date": group_by_date(rows),
    }

def stats_json(rows: Iterable[SubstitutionRow], config: ScheduleConfig) -> List[dict]:
    return [
        {"teacher": s.teacher, "teacher_id": s.teacher_id, "periods": s.periods,
         "hours": s.hours, "days": s.days, "periods_per_day": s.periods_per_day}
        for s in aggregate_substitute_stats(rows, config)
    ]

def period_label(period: str, config: ScheduleConfig) -> Optional[str]:
    slot = config.time_slot_for(period)
    return f"{period} ({slot})" if slot else period
