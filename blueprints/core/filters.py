from __future__ import annotations
from datetime import date

from blueprints.substitution.engine import WEEKDAYS

def fmt_date(value: date | None) -> str:
    if not value:
        return ""
    return value.strftime("%d-%m-%Y")

def fmt_long_date(value: date | None) -> str:
    # "Monday, 2 June 2025", заголовок печатного листа
    if not value:
        return ""
    return f"{WEEKDAYS[value.weekday()]}, {value.day} {value.strftime('%B %Y')}"

def weekday(value: date | int | None) -> str:
    if value is None:
        return ""
    idx = value if isinstance(value, int) else value.weekday()
    return WEEKDAYS[idx % 7]

def fmt_hours(value: float | None) -> str:
    if value is None:
        return ""
    return f"{value:.2f}"

def register_filters(app):
    app.add_template_filter(fmt_date, "fmt_date")
    app.add_template_filter(fmt_long_date, "fmt_long_date")
    app.add_template_filter(weekday, "weekday")
    app.add_template_filter(fmt_hours, "fmt_hours")
