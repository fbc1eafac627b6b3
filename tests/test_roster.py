# tests/test_roster.py
from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import AuditLog, ClassSchedule, PeriodEntry, SubstitutionRecord, Teacher, User
from blueprints.auth import routes as auth_routes

def _login_admin(client):
    r = client.post("/api/v1/auth/login", json={"email": "admin@example.com", "password": "pass"})
    assert r.status_code == 200

@pytest.fixture()
def client():
    app = create_app("test")
    auth_routes._login_attempts.clear()
    with app.app_context():
        db.create_all()
        db.session.add(User(email="admin@example.com", role="ADMIN",
                            password_hash=generate_password_hash("pass")))
        db.session.commit()
        c = app.test_client()
        _login_admin(c)
        yield c

def _create(client, **body):
    r = client.post("/api/v1/teachers", json=body)
    assert r.status_code == 201, r.get_json()
    return r.get_json()

def test_create_get_update(client):
    t = _create(client, name="  Priya ", subject="Maths", post="PGT", contact_number="98765")
    assert t["name"] == "Priya" and t["subject"] == "Maths"

    r = client.get(f"/api/v1/teachers/{t['id']}")
    assert r.status_code == 200 and r.get_json()["post"] == "PGT"

    r = client.put(f"/api/v1/teachers/{t['id']}", json={"name": "Priya S", "subject": "Maths"})
    assert r.status_code == 200
    assert r.get_json()["name"] == "Priya S"
    assert r.get_json()["post"] is None

def test_blank_name_rejected(client):
    r = client.post("/api/v1/teachers", json={"name": "   "})
    assert r.status_code == 422
    assert r.get_json()["error"] == "validation_error"

def test_list_is_name_ordered_and_searchable(client):
    for n in ("Raj", "Meena", "Priya"):
        _create(client, name=n)
    js = client.get("/api/v1/teachers").get_json()
    assert [t["name"] for t in js["items"]] == ["Meena", "Priya", "Raj"]
    assert js["meta"]["total"] == 3

    js = client.get("/api/v1/teachers?q=pri").get_json()
    assert [t["name"] for t in js["items"]] == ["Priya"]

    js = client.get("/api/v1/teachers?per_page=2&page=2").get_json()
    assert [t["name"] for t in js["items"]] == ["Raj"]

def test_missing_teacher_404(client):
    assert client.get("/api/v1/teachers/404").status_code == 404
    assert client.get("/api/v1/teachers/404/schedule").status_code == 404

def test_derived_schedule(client):
    t = _create(client, name="Priya")
    cls = ClassSchedule(class_name="10-A")
    cls.entries.append(PeriodEntry(day="Monday", period="2", subject="MATHS", teacher_id=t["id"]))
    db.session.add(cls)
    db.session.commit()

    js = client.get(f"/api/v1/teachers/{t['id']}/schedule").get_json()
    assert js["schedule"]["Monday"]["2"] == "10-A"
    assert js["schedule"]["Monday"]["1"] == "FREE"
    assert js["busy"]["Monday"] == ["2"] and js["busy"]["Tuesday"] == []

    items = client.get("/api/v1/teachers/schedules").get_json()["items"]
    assert items[0]["teacher_id"] == t["id"]

def test_delete_frees_cells_and_keeps_ledger_snapshot(client):
    priya = _create(client, name="Priya")
    raj = _create(client, name="Raj")
    cls = ClassSchedule(class_name="10-A")
    cls.entries.append(PeriodEntry(day="Monday", period="1", subject="MATHS", teacher_id=priya["id"]))
    db.session.add(cls)
    db.session.add(SubstitutionRecord(
        date=date(2025, 6, 2), absent_teacher_id=priya["id"], absent_teacher_name="Priya",
        period="1", original_class="10-A", original_subject="MATHS",
        substitute_teacher_id=raj["id"], substitute_teacher_name="Raj",
    ))
    db.session.commit()

    r = client.delete(f"/api/v1/teachers/{priya['id']}")
    assert r.status_code == 204
    assert db.session.get(Teacher, priya["id"]) is None
    assert PeriodEntry.query.one().teacher_id is None

    items = client.get("/api/v1/substitutions").get_json()["items"]
    assert items[0]["absent_teacher"] == "Priya"
    assert items[0]["absent_teacher_id"] is None
    assert AuditLog.query.filter_by(entity="teacher", action="delete").count() == 1

def test_teachers_csv(client):
    _create(client, name="Raj", subject="Science", post="TGT", contact_number="1")
    _create(client, name="Meena")
    r = client.get("/api/v1/teachers.csv")
    assert r.status_code == 200
    lines = r.data.decode("utf-8").splitlines()
    assert lines[0] == "Name,Subject,Post,Contact Number"
    assert lines[1:] == ["Meena,,,", "Raj,Science,TGT,1"]
