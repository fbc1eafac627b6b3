from __future__ import annotations
import os
from pathlib import Path

# школьные значения по умолчанию (пока нет строки SchoolSettings)
DEFAULT_PERIODS = ["1", "2", "3", "4", "5", "6", "7", "8"]
DEFAULT_TIME_SLOTS = [
    "8:15-9:00", "9:00-9:25", "9:25-10:00", "10:00-10:15",
    "10:15-10:45", "10:45-11:30", "11:30-12:30", "1:05-1:40",
]
SCHOOL_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
DEFAULT_PERIOD_MINUTES = 45


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    BASE_DIR = Path(__file__).resolve().parent
    # SQLite file in project directory
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'app.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False

    WTF_CSRF_TIME_LIMIT = None
    WTF_CSRF_HEADERS = ["X-CSRF-Token", "X-CSRFToken"]

    AUTH_RL_MAX = 5
    AUTH_RL_WINDOW = 300  # 5 минут

    SCHOOL_NAME = os.getenv("SCHOOL_NAME", "Substitution Desk")
    DEFAULT_PERIODS = DEFAULT_PERIODS
    DEFAULT_TIME_SLOTS = DEFAULT_TIME_SLOTS
    SCHOOL_DAYS = SCHOOL_DAYS
    DEFAULT_PERIOD_MINUTES = DEFAULT_PERIOD_MINUTES

    SEED_TEST_DATA = False
    DEFAULT_USERS: list[dict] = []


class DevConfig(BaseConfig):
    DEBUG = True
    SEED_TEST_DATA = True
    DEFAULT_USERS = [
        {"email": "admin@example.com", "password": "pass", "role": "ADMIN"},
        {"email": "staff@example.com", "password": "pass", "role": "STAFF"},
    ]


class TestConfig(BaseConfig):
    TESTING = True
    # in-memory БД: каждое приложение в тестах получает чистую схему
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    # счётчик попыток общий на процесс: тесты логинятся много раз
    AUTH_RL_MAX = 1000


class ProdConfig(BaseConfig):
    DEBUG = False
    SEED_TEST_DATA = False
    DEFAULT_USERS = []


config_map = {
    "dev": DevConfig,
    "test": TestConfig,
    "prod": ProdConfig,
    "default": DevConfig,
}
