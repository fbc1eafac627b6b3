# tests/test_substitution_api.py
import csv
from io import StringIO

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import AuditLog, ClassSchedule, PeriodEntry, SubstitutionRecord, Teacher, User
from blueprints.auth import routes as auth_routes

MONDAY = "2025-06-02"
DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

def _login(client, email="admin@example.com", password="pass"):
    r = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200

@pytest.fixture()
def ctx():
    app = create_app("test")
    auth_routes._login_attempts.clear()
    with app.app_context():
        db.create_all()
        db.session.add_all([
            User(email="admin@example.com", role="ADMIN", password_hash=generate_password_hash("pass")),
            User(email="staff@example.com", role="STAFF", password_hash=generate_password_hash("pass")),
        ])
        priya, raj, meena = Teacher(name="Priya"), Teacher(name="Raj"), Teacher(name="Meena")
        db.session.add_all([priya, raj, meena])
        db.session.flush()

        # 10-A: Priya ведёт 1-3 по понедельникам, Meena ведёт 10-B в период 1
        a = ClassSchedule(class_name="10-A")
        b = ClassSchedule(class_name="10-B")
        for day in DAYS:
            for p in ("1", "2", "3"):
                a.entries.append(PeriodEntry(day=day, period=p, subject="MATHS",
                                             teacher_id=priya.id if day == "Monday" else None))
            b.entries.append(PeriodEntry(day=day, period="1", subject="ENGLISH",
                                         teacher_id=meena.id if day == "Monday" else None))
        db.session.add_all([a, b])
        db.session.commit()
        ids = {"priya": priya.id, "raj": raj.id, "meena": meena.id}
        client = app.test_client()
        _login(client)
        yield client, ids

def _commit(client, ids, matrix, absent=None, **extra):
    body = {"date": MONDAY, "absent_teacher_ids": absent or [ids["priya"]], "assignments": matrix}
    body.update(extra)
    return client.post("/api/v1/substitutions", json=body)

def test_day_lists_teaching_teachers_only(ctx):
    client, ids = ctx
    r = client.get(f"/api/v1/substitutions/day?date={MONDAY}")
    assert r.status_code == 200
    js = r.get_json()
    assert js["day"] == "Monday"
    assert [t["name"] for t in js["teachers"]] == ["Meena", "Priya"]
    assert js["absent_teacher_ids"] == [] and js["plan"] == []

def test_day_requires_date(ctx):
    client, _ = ctx
    assert client.get("/api/v1/substitutions/day").status_code == 400
    assert client.get("/api/v1/substitutions/day?date=02-06-2025").status_code == 400

def test_plan_candidates_exclude_absent_and_busy(ctx):
    client, ids = ctx
    r = client.post("/api/v1/substitutions/plan",
                    json={"date": MONDAY, "absent_teacher_ids": [ids["priya"]]})
    assert r.status_code == 200
    plan = r.get_json()["plan"]
    assert len(plan) == 1 and plan[0]["name"] == "Priya"
    periods = {p["period"]: p for p in plan[0]["periods"]}
    assert list(periods) == ["1", "2", "3"]
    assert periods["1"]["original_class"] == "10-A"
    assert [c["name"] for c in periods["1"]["candidates"]] == ["Raj"]
    assert [c["name"] for c in periods["2"]["candidates"]] == ["Meena", "Raj"]

def test_available_hides_teacher_taken_by_other_absent(ctx):
    client, ids = ctx
    body = {"date": MONDAY, "absent_teacher_ids": [ids["priya"], ids["meena"]],
            "assignments": {str(ids["priya"]): {"1": ids["raj"]}}, "period": "1",
            "for_absent_id": ids["meena"]}
    r = client.post("/api/v1/substitutions/available", json=body)
    assert r.status_code == 200
    assert r.get_json()["teachers"] == []

def test_plan_unknown_absent_teacher(ctx):
    client, _ = ctx
    r = client.post("/api/v1/substitutions/plan", json={"date": MONDAY, "absent_teacher_ids": [999]})
    assert r.status_code == 400
    assert r.get_json()["errors"][0]["code"] == "UNKNOWN_TEACHER"

def test_plan_validation_error(ctx):
    client, _ = ctx
    r = client.post("/api/v1/substitutions/plan", json={"date": "not-a-date"})
    assert r.status_code == 422
    assert r.get_json()["error"] == "validation_error"

def test_commit_writes_rows_and_audit(ctx):
    client, ids = ctx
    r = _commit(client, ids, {str(ids["priya"]): {"1": ids["raj"], "2": ids["meena"], "3": None}},
                remarks={str(ids["priya"]): {"1": "lab"}})
    assert r.status_code == 201
    js = r.get_json()
    assert js == {"ok": True, "date": MONDAY, "count": 2}
    assert "/api/v1/substitutions" in r.headers["Location"]

    recs = SubstitutionRecord.query.order_by(SubstitutionRecord.period).all()
    assert [(x.period, x.substitute_teacher_name) for x in recs] == [("1", "Raj"), ("2", "Meena")]
    assert recs[0].original_class == "10-A" and recs[0].original_subject == "MATHS"
    assert recs[0].remarks == "lab"
    assert AuditLog.query.filter_by(entity="substitution").count() == 1

def test_recommit_replaces_rows_for_same_absent_teacher(ctx):
    client, ids = ctx
    assert _commit(client, ids, {str(ids["priya"]): {"1": ids["raj"], "2": ids["raj"]}}).status_code == 201
    assert _commit(client, ids, {str(ids["priya"]): {"3": ids["meena"]}}).status_code == 201
    recs = SubstitutionRecord.query.all()
    assert [(x.period, x.substitute_teacher_name) for x in recs] == [("3", "Meena")]

    # день перезагружается в ту же матрицу
    js = client.get(f"/api/v1/substitutions/day?date={MONDAY}").get_json()
    assert js["absent_teacher_ids"] == [ids["priya"]]
    assert js["assignments"] == {str(ids["priya"]): {"3": ids["meena"]}}
    assert js["plan"][0]["periods"][2]["substitute_teacher_id"] == ids["meena"]

@pytest.mark.parametrize("case, code", [
    ("no_date", "NO_DATE"),
    ("no_absent", "NO_ABSENT_TEACHERS"),
    ("empty", "NO_SUBSTITUTIONS"),
    ("busy", "SUBSTITUTE_BUSY"),
    ("double", "DOUBLE_BOOKED"),
])
def test_commit_rejections_write_nothing(ctx, case, code):
    client, ids = ctx
    p, raj, meena = str(ids["priya"]), ids["raj"], ids["meena"]
    if case == "no_date":
        r = _commit(client, ids, {p: {"1": raj}}, date="")
    elif case == "no_absent":
        r = client.post("/api/v1/substitutions", json={"date": MONDAY, "absent_teacher_ids": []})
    elif case == "empty":
        r = _commit(client, ids, {p: {"1": None}})
    elif case == "busy":
        r = _commit(client, ids, {p: {"1": meena}})
    else:
        r = _commit(client, ids, {p: {"1": raj}, str(meena): {"1": raj}}, absent=[ids["priya"], meena])
    assert r.status_code == 400
    js = r.get_json()
    assert js["ok"] is False and js["errors"][0]["code"] == code
    assert SubstitutionRecord.query.count() == 0

@pytest.mark.parametrize("saved, meena_matrix, code", [
    # Raj уже закрывает период 1 у Priya
    ({"1": "raj"}, {"1": "raj"}, "DOUBLE_BOOKED"),
    # Meena уже закрывает период 2 у Priya, а теперь сама отсутствует
    ({"2": "meena"}, {"1": "raj"}, "SUBSTITUTE_ABSENT"),
    # Priya сохранена как отсутствующая
    ({"1": "raj"}, {"1": "priya"}, "SUBSTITUTE_ABSENT"),
])
def test_second_commit_checked_against_saved_rows(ctx, saved, meena_matrix, code):
    client, ids = ctx
    first = {str(ids["priya"]): {p: ids[who] for p, who in saved.items()}}
    assert _commit(client, ids, first).status_code == 201

    r = _commit(client, ids, {str(ids["meena"]): {p: ids[who] for p, who in meena_matrix.items()}},
                absent=[ids["meena"]])
    assert r.status_code == 400
    assert r.get_json()["errors"][0]["code"] == code
    recs = SubstitutionRecord.query.all()
    assert [(x.absent_teacher_id, x.period) for x in recs] == [(ids["priya"], p) for p in saved]

def test_second_commit_with_free_substitute_is_kept_alongside(ctx):
    client, ids = ctx
    assert _commit(client, ids, {str(ids["priya"]): {"2": ids["raj"]}}).status_code == 201
    assert _commit(client, ids, {str(ids["meena"]): {"1": ids["raj"]}}, absent=[ids["meena"]]).status_code == 201
    recs = SubstitutionRecord.query.order_by(SubstitutionRecord.period).all()
    assert [(x.absent_teacher_name, x.period) for x in recs] == [("Meena", "1"), ("Priya", "2")]

def test_available_and_plan_see_saved_rows(ctx):
    client, ids = ctx
    assert _commit(client, ids, {str(ids["priya"]): {"1": ids["raj"]}}).status_code == 201

    body = {"date": MONDAY, "absent_teacher_ids": [ids["meena"]], "period": "1",
            "for_absent_id": ids["meena"]}
    r = client.post("/api/v1/substitutions/available", json=body)
    assert r.status_code == 200
    assert r.get_json()["teachers"] == []

    r = client.post("/api/v1/substitutions/plan", json={"date": MONDAY, "absent_teacher_ids": [ids["meena"]]})
    plan = r.get_json()["plan"]
    assert [a["name"] for a in plan] == ["Meena"]
    assert plan[0]["periods"][0]["candidates"] == []

def test_commit_db_failure_returns_500_and_writes_nothing(ctx, monkeypatch):
    client, ids = ctx

    def boom():
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db.session, "commit", boom)
    r = _commit(client, ids, {str(ids["priya"]): {"1": ids["raj"]}})
    assert r.status_code == 500
    assert r.get_json() == {"error": "db_error"}
    monkeypatch.undo()
    assert SubstitutionRecord.query.count() == 0
    assert AuditLog.query.filter_by(entity="substitution").count() == 0

def test_commit_unique_violation_returns_409(ctx, monkeypatch):
    client, ids = ctx

    def boom():
        raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(db.session, "commit", boom)
    r = _commit(client, ids, {str(ids["priya"]): {"1": ids["raj"]}})
    assert r.status_code == 409
    assert r.get_json()["code"] == "UNIQUE_CONSTRAINT"
    monkeypatch.undo()
    assert SubstitutionRecord.query.count() == 0


def test_staff_cannot_commit(ctx):
    client, ids = ctx
    client.post("/api/v1/auth/logout")
    _login(client, "staff@example.com")
    assert _commit(client, ids, {str(ids["priya"]): {"1": ids["raj"]}}).status_code == 403

def test_list_filters_and_shape(ctx):
    client, ids = ctx
    _commit(client, ids, {str(ids["priya"]): {"1": ids["raj"]}})
    r = client.get("/api/v1/substitutions?month=2025-06")
    js = r.get_json()
    assert js["meta"]["total"] == 1
    item = js["items"][0]
    assert item["date"] == MONDAY and item["absent_teacher"] == "Priya" and item["substitute_teacher"] == "Raj"
    assert client.get("/api/v1/substitutions?month=2025-07").get_json()["meta"]["total"] == 0
    assert client.get("/api/v1/substitutions?date_from=2025-06-03").get_json()["meta"]["total"] == 0
    assert client.get("/api/v1/substitutions?month=2025-13").status_code == 400

def test_ledger_shows_current_roster_name(ctx):
    client, ids = ctx
    _commit(client, ids, {str(ids["priya"]): {"1": ids["raj"]}})
    client.put(f"/api/v1/teachers/{ids['raj']}", json={"name": "Raj Kumar"})
    item = client.get("/api/v1/substitutions").get_json()["items"][0]
    assert item["substitute_teacher"] == "Raj Kumar"

def test_sheet_csv(ctx):
    client, ids = ctx
    r = client.post("/api/v1/substitutions/sheet.csv",
                    json={"date": MONDAY, "absent_teacher_ids": [ids["priya"]],
                          "assignments": {str(ids["priya"]): {"1": ids["raj"]}}})
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert f"substitutions_{MONDAY}.csv" in r.headers["Content-Disposition"]
    rows = list(csv.reader(StringIO(r.data.decode("utf-8"))))
    assert rows[0][:4] == ["S.No", "Teachers on Leave", "Classes", "Period 1 (8:15-9:00)"]
    assert rows[1][:7] == ["1", "Priya", "10-A", "Raj", "___", "___", "---"]

def test_sheet_html(ctx):
    client, ids = ctx
    r = client.post("/api/v1/substitutions/sheet.html",
                    json={"date": MONDAY, "absent_teacher_ids": [ids["priya"]], "assignments": {}})
    assert r.status_code == 200
    assert b"Priya" in r.data and b"10-A" in r.data
