from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings  # noqa: E402
from db.database import Base  # noqa: E402
from db.models import UserConfig  # noqa: E402
from services.errors import ValidationError  # noqa: E402
from services.user_config_service import (  # noqa: E402
    _insert_default_row,
    get_last_populated_date,
    get_or_create_config_row,
    get_user_config,
    set_last_populated_date,
    upsert_user_config,
)


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def test_production_security_gate_rejects_default_secret():
    settings = Settings(ENVIRONMENT="production", SECRET_KEY="change-me-in-production")
    with pytest.raises(RuntimeError):
        settings.validate_security_configuration()


def test_production_security_gate_rejects_wildcard_cors():
    settings = Settings(
        ENVIRONMENT="staging",
        SECRET_KEY="a-long-and-random-secret-value",
        CORS_ORIGINS=["*"],
    )
    with pytest.raises(RuntimeError):
        settings.validate_security_configuration()


def test_production_security_gate_accepts_hardened_config():
    settings = Settings(
        ENVIRONMENT="production",
        SECRET_KEY="a-long-and-random-secret-value",
        CORS_ORIGINS=["https://habits.example.com"],
    )
    settings.validate_security_configuration()


def test_development_skips_security_gate():
    Settings(ENVIRONMENT="development").validate_security_configuration()


def test_user_config_defaults_without_row():
    db = _new_db()
    values = get_user_config(db, "fresh-user")
    assert values.as_dict() == {"day_end_offset_minutes": 0, "clear_todo_on_new_day": True}
    assert get_last_populated_date(db, "fresh-user") is None


def test_upsert_user_config_is_partial():
    db = _new_db()
    upsert_user_config(db, "u1", day_end_offset_minutes=90)
    values = upsert_user_config(db, "u1", clear_todo_on_new_day=False)
    assert values.day_end_offset_minutes == 90
    assert values.clear_todo_on_new_day is False


@pytest.mark.parametrize("offset", [1440, -1440, 5000])
def test_upsert_user_config_bounds_offset(offset):
    db = _new_db()
    with pytest.raises(ValidationError):
        upsert_user_config(db, "u1", day_end_offset_minutes=offset)
    assert get_user_config(db, "u1").day_end_offset_minutes == 0


def test_last_populated_date_round_trip():
    db = _new_db()
    set_last_populated_date(db, "u1", "2024-05-15")
    assert get_last_populated_date(db, "u1") == "2024-05-15"


def test_default_row_insert_tolerates_an_existing_row():
    db = _new_db()
    upsert_user_config(db, "u1", day_end_offset_minutes=45)

    # A concurrent first request may insert after this one checked for the row.
    _insert_default_row(db, "u1")

    row = get_or_create_config_row(db, "u1", lock=True)
    assert row.day_end_offset_minutes == 45
    assert db.query(UserConfig).filter(UserConfig.user_id == "u1").count() == 1


def test_get_or_create_config_row_inserts_defaults_once():
    db = _new_db()
    first = get_or_create_config_row(db, "u2", lock=True)
    second = get_or_create_config_row(db, "u2")

    assert first is second
    assert first.clear_todo_on_new_day is True
    assert first.last_populated_date is None
