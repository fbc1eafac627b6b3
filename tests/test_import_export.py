# tests/test_import_export.py
from io import BytesIO
import json

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import ClassSchedule, PeriodEntry, SubstitutionRecord, Teacher, User
from blueprints.auth import routes as auth_routes
from blueprints.import_export.services import detect_mapping, read_csv_text

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
        db.session.add_all([Teacher(name="PRIYA"), Teacher(name="A. RAO")])
        db.session.commit()
        c = app.test_client()
        _login_admin(c)
        yield c

def _file(data: str, name="file.csv"):
    return (BytesIO(data.encode("utf-8")), name)

def _post(client, action, entity, text, mapping=None):
    form = {"file": _file(text)}
    if mapping is not None:
        form["mapping"] = json.dumps(mapping)
    return client.post(f"/api/v1/admin/import/{action}?entity={entity}", data=form,
                       content_type="multipart/form-data")

# ---------- утилиты ----------
def test_read_csv_text_sniffs_delimiter_and_bom():
    header, rows = read_csv_text("\ufeffName;Subject\nRaj;Science\n")
    assert header == ["Name", "Subject"] and rows == [["Raj", "Science"]]
    header, rows = read_csv_text("Name,Subject\n\nRaj,Science\n")
    assert rows == [["Raj", "Science"]]
    assert read_csv_text("") == ([], [])

def test_detect_mapping_synonyms():
    m = detect_mapping(["Full Name", "Designation", "Mobile"], ["name", "post", "contact_number", "subject"])
    assert m == {"name": "Full Name", "post": "Designation", "contact_number": "Mobile"}

# ---------- преподаватели ----------
def test_preview_teachers(client):
    r = _post(client, "preview", "teachers", "Name,Subject,Post,Contact Number\nRaj,Science,TGT,1\n")
    assert r.status_code == 200
    js = r.get_json()
    assert js["ok"] is True
    assert js["detected_mapping"]["name"] == "Name"
    assert js["sample"] == [["Raj", "Science", "TGT", "1"]]

def test_teachers_validate_reports_duplicates(client):
    text = "Name,Subject\nRaj,Science\nraj,Maths\nPriya,Maths\n,Art\n"
    js = _post(client, "validate", "teachers", text).get_json()
    assert js["ok"] is False
    assert [d["unique_key"] for d in js["duplicates"]] == ["raj", "Priya"]
    assert js["errors"][0]["code"] == "MISSING_REQUIRED"
    assert Teacher.query.count() == 2

def test_teachers_commit(client):
    text = "Teacher,Designation\nRaj,TGT\nMeena,PGT\n"
    r = _post(client, "commit", "teachers", text)
    assert r.status_code == 200
    assert r.get_json()["inserted"] == 2
    assert Teacher.query.filter_by(name="Meena").one().post == "PGT"

def test_teachers_commit_with_explicit_mapping(client):
    text = "who,what\nRaj,Science\n"
    r = _post(client, "commit", "teachers", text, mapping={"name": "who", "subject": "what"})
    assert r.status_code == 200
    assert Teacher.query.filter_by(name="Raj").one().subject == "Science"

def test_teachers_commit_with_errors_422(client):
    r = _post(client, "commit", "teachers", "Name\nPRIYA\n")
    assert r.status_code == 422
    assert Teacher.query.count() == 2

# ---------- журнал замен ----------
LEDGER = (
    "date;absent_teacher;period;time_slot;original_class;original_subject;substitute_teacher;remarks\n"
    "2025-06-02;PRIYA;1;8:15-9:00;XI-A;MATHS;A. RAO;\n"
    "2025-06-02;PRIYA;2;9:00-9:25;XI-A;MATHS;Old Teacher;gone\n"
)

def test_ledger_import_resolves_names(client):
    r = _post(client, "commit", "substitutions", LEDGER)
    assert r.status_code == 200, r.get_json()
    recs = SubstitutionRecord.query.order_by(SubstitutionRecord.period).all()
    assert recs[0].absent_teacher_id == Teacher.query.filter_by(name="PRIYA").one().id
    assert recs[0].substitute_teacher_id is not None
    # имя не из ростера сохраняется снимком
    assert recs[1].substitute_teacher_id is None and recs[1].substitute_teacher_name == "Old Teacher"

def test_ledger_import_twice_is_duplicate(client):
    assert _post(client, "commit", "substitutions", LEDGER).status_code == 200
    r = _post(client, "commit", "substitutions", LEDGER)
    assert r.status_code == 422
    assert len(r.get_json()["duplicates"]) == 2
    assert SubstitutionRecord.query.count() == 2

def test_ledger_bad_rows(client):
    text = "date;absent_teacher;period;substitute_teacher\n02/06/2025;PRIYA;1;A. RAO\n"
    js = _post(client, "validate", "substitutions", text).get_json()
    assert js["ok"] is False and js["errors"][0]["code"] == "BAD_DATE"

# ---------- расписание ----------
def test_timetable_import_fills_every_day(client):
    text = "Class Name,Period 1,Period 2,Period 3\nXI-A,MATHS(PRIYA),ENGLISH(a rao),GAMES\n"
    r = _post(client, "commit", "timetable", text)
    assert r.status_code == 200
    js = r.get_json()
    assert js["created"] == 1 and js["unresolved_teachers"] == []

    cls = ClassSchedule.query.filter_by(class_name="XI-A").one()
    priya = Teacher.query.filter_by(name="PRIYA").one()
    cells = PeriodEntry.query.filter_by(class_id=cls.id, period="1").all()
    assert len(cells) == 6 and all(c.teacher_id == priya.id for c in cells)
    games = PeriodEntry.query.filter_by(class_id=cls.id, day="Monday", period="3").one()
    assert games.subject == "GAMES" and games.teacher_id is None

def test_timetable_import_day_column_and_unresolved(client):
    text = "Class,Day,1,2\nXI-B,tuesday,MATHS(PRIYA),SCIENCE(NOBODY)\n"
    js = _post(client, "validate", "timetable", text).get_json()
    assert js["ok"] is True
    assert js["unresolved_teachers"] == [{"row": 2, "period": "2", "teacher": "NOBODY"}]

    _post(client, "commit", "timetable", text)
    cls = ClassSchedule.query.filter_by(class_name="XI-B").one()
    tue = PeriodEntry.query.filter_by(class_id=cls.id, day="Tuesday", period="1").one()
    mon = PeriodEntry.query.filter_by(class_id=cls.id, day="Monday", period="1").one()
    assert tue.subject == "MATHS" and mon.subject == ""

def test_timetable_import_requires_class_column(client):
    r = _post(client, "commit", "timetable", "Period 1\nMATHS(PRIYA)\n")
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "MISSING_CLASS_COLUMN"

def test_unknown_entity(client):
    assert _post(client, "preview", "rooms", "a\n1\n").status_code == 400
