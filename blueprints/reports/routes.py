# blueprints/reports/routes.py
from __future__ import annotations
import re
from datetime import date
from flask import Blueprint, abort, current_app, render_template, request
from flask_login import login_required

from blueprints.core.http import csv_resp, ok
from blueprints.substitution import services as sub_svc

from .services import (
    daily_csv, ledger_csv, period_label, stats_json, substitute_stats_csv, summary,
)

bp = Blueprint("reports", __name__, template_folder="../../templates")
api_bp = Blueprint("reports_api", __name__)

MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

def _opt_date(name: str) -> date | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        abort(400, description="Bad date")

def _range_filter():
    """?date=… (один день) | ?date_from&date_to | ?month=YYYY-MM"""
    single = _opt_date("date")
    d_from = single or _opt_date("date_from")
    d_to = single or _opt_date("date_to")
    if d_from and d_to and d_to < d_from:
        d_from, d_to = d_to, d_from
    month = request.args.get("month") or None
    if month and not MONTH_RE.match(month):
        abort(400, description="Bad month")
    return d_from, d_to, month

def _suffix(d_from, d_to, month) -> str:
    if month:
        return f"_{month}"
    if d_from and d_to and d_from == d_to:
        return f"_{d_from.isoformat()}"
    if d_from or d_to:
        return f"_{d_from.isoformat() if d_from else ''}_{d_to.isoformat() if d_to else ''}"
    return ""

# ---------- API / CSV ----------
@api_bp.get("/reports/substitute-stats")
@login_required
def substitute_stats():
    rng = _range_filter()
    rows = sub_svc.ledger_rows(*rng)
    return ok({"items": stats_json(rows, sub_svc.load_config())})

@api_bp.get("/reports/substitute-stats.csv")
@login_required
def substitute_stats_download():
    rng = _range_filter()
    rows = sub_svc.ledger_rows(*rng)
    return csv_resp(substitute_stats_csv(rows, sub_svc.load_config()), f"substitute_stats{_suffix(*rng)}.csv")

@api_bp.get("/reports/daily.csv")
@login_required
def daily_download():
    rng = _range_filter()
    rows = sub_svc.ledger_rows(*rng)
    return csv_resp(daily_csv(rows), f"substitutions_daily{_suffix(*rng)}.csv")

@api_bp.get("/reports/ledger.csv")
@login_required
def ledger_download():
    rng = _range_filter()
    rows = sub_svc.ledger_rows(*rng)
    return csv_resp(ledger_csv(rows, sub_svc.load_config()), f"substitution_ledger{_suffix(*rng)}.csv")

# ---------- печатные страницы ----------
@bp.get("/daily.html")
@login_required
def daily_page():
    on = _opt_date("date") or date.today()
    config = sub_svc.load_config()
    rows = sub_svc.ledger_rows(on, on)
    return render_template(
        "reports/daily.html",
        school_name=current_app.config.get("SCHOOL_NAME"),
        on=on,
        rows=sorted(rows, key=lambda r: (r.absent_teacher, config.periods.index(r.period)
                                         if r.period in config.periods else len(config.periods))),
        label=lambda p: period_label(p, config),
    )

@bp.get("/monthly.html")
@login_required
def monthly_page():
    month = request.args.get("month") or date.today().strftime("%Y-%m")
    if not MONTH_RE.match(month):
        abort(400, description="Bad month")
    config = sub_svc.load_config()
    rows = sub_svc.ledger_rows(month=month)
    return render_template(
        "reports/monthly.html",
        school_name=current_app.config.get("SCHOOL_NAME"),
        month=month,
        data=summary(rows, config),
        label=lambda p: period_label(p, config),
    )
