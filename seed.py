"""
Idempotent seed-скрипт.
Запуск:
  python seed.py --reset         # дропнуть и пересоздать БД + демо-данные + admin
  python seed.py --ensure-admin  # создать только пользователя admin@example.com/admin
  python seed.py                 # мягкое наполнение недостающих данных (idempotent)
"""
import argparse

from sqlalchemy import func, select
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import ClassSchedule, PeriodEntry, Role, Teacher, User
from blueprints.substitution.services import get_or_create_settings, load_config

DEMO_TEACHERS = [
    ("PRIYA", "Mathematics", "PGT", "9876543210"),
    ("RAJ", "Science", "TGT", "9876543211"),
    ("A. RAO", "English", "TGT", "9876543212"),
    ("SHILPA NEGI", "Science", "PGT", "9876543213"),
    ("POOJA", "Hindi", "TGT", "9876543214"),
    ("NEHA TIWARI", "Social Studies", "TGT", "9876543215"),
]

# class -> period -> "SUBJECT(TEACHER)"; одинаково для всех учебных дней
DEMO_TIMETABLE = {
    "XI-A": {"1": "MATHS(PRIYA)", "2": "SCIENCE(RAJ)", "3": "ENGLISH(A. RAO)", "4": "HINDI(POOJA)",
             "5": "SST(NEHA TIWARI)", "6": "SCIENCE(SHILPA NEGI)"},
    "XI-B": {"1": "SCIENCE(SHILPA NEGI)", "2": "MATHS(PRIYA)", "3": "HINDI(POOJA)", "4": "ENGLISH(A. RAO)",
             "7": "SCIENCE(RAJ)", "8": "SST(NEHA TIWARI)"},
}

# ---- вспомогательные утилиты ----
def get_or_create(model, defaults=None, **by):
    """Идемпотентное создание по уникальным ключам."""
    inst = db.session.execute(select(model).filter_by(**by)).scalars().first()
    if inst:
        return inst, False
    inst = model(**{**(defaults or {}), **by})
    db.session.add(inst)
    db.session.flush()
    return inst, True

# ---- сиды ----
def seed_roster() -> dict:
    ids = {}
    for name, subject, post, phone in DEMO_TEACHERS:
        t, _ = get_or_create(Teacher, name=name, defaults=dict(subject=subject, post=post, contact_number=phone))
        ids[name] = t.id
    return ids

def seed_timetable(teacher_ids: dict) -> None:
    from blueprints.timetable.services import parse_subject_teacher

    get_or_create_settings()
    config = load_config()
    for class_name, periods in DEMO_TIMETABLE.items():
        cls, created = get_or_create(ClassSchedule, class_name=class_name)
        if not created:
            continue
        for day in config.days:
            for p in config.periods:
                subject, teacher = parse_subject_teacher(periods.get(p, ""))
                cls.entries.append(PeriodEntry(
                    day=day, period=p, subject=subject, teacher_id=teacher_ids.get(teacher),
                    time_label=config.time_slot_for(p),
                ))
    db.session.commit()

# ---- админ ----
def ensure_admin() -> bool:
    exists = db.session.execute(
        select(User).where(func.lower(User.email) == "admin@example.com")
    ).scalars().first()
    if exists:
        return False
    db.session.add(User(email="admin@example.com", password_hash=generate_password_hash("admin"),
                        role=Role.ADMIN.value, is_active=True))
    db.session.commit()
    return True

# ---- main ----
def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--reset", action="store_true", help="drop + create + full seed (demo)")
    parser.add_argument("--ensure-admin", action="store_true", help="create only the admin user")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            db.create_all()
            seed_timetable(seed_roster())
            ensure_admin()
            print("[seed] reset+seed complete")
            return

        if args.ensure_admin:
            created = ensure_admin()
            print("Admin created." if created else "Admin already exists.")
            return

        # режим по умолчанию: мягкое наполнение недостающих данных
        db.create_all()
        seed_timetable(seed_roster())
        print("[seed] soft seed complete")

if __name__ == "__main__":
    main()
