from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from services.activity_service import create_activity, update_activity  # noqa: E402
from services.errors import NotFoundError, ValidationError  # noqa: E402
from services.schedule_service import (  # noqa: E402
    add_date_config,
    add_day_config,
    get_scheduled_dates,
    list_date_configs,
    list_day_configs,
    remove_day_config,
    reorder_date_configs,
    reorder_day_configs,
)
from services.todo_service import add_todo_item, list_todo_items, reorder_todo_items  # noqa: E402


USER = "user-schedule"


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _activity(db, title) -> str:
    return create_activity(db, USER, title=title, period="daily")["id"]


def test_day_configs_append_in_order():
    db = _new_db()
    a = _activity(db, "Stretch")
    b = _activity(db, "Read")
    add_day_config(db, USER, 1, a)
    add_day_config(db, USER, 1, b)
    add_day_config(db, USER, 2, b)

    monday = list_day_configs(db, USER, 1)
    assert [(c["activity_title"], c["sort_order"]) for c in monday] == [("Stretch", 0), ("Read", 1)]
    assert [c["sort_order"] for c in list_day_configs(db, USER, 2)] == [0]


@pytest.mark.parametrize("bad_day", [-1, 7, True, "3"])
def test_day_of_week_must_be_an_int_in_range(bad_day):
    db = _new_db()
    a = _activity(db, "Stretch")
    with pytest.raises(ValidationError):
        add_day_config(db, USER, bad_day, a)


def test_archived_activity_cannot_be_scheduled():
    db = _new_db()
    a = _activity(db, "Old hobby")
    update_activity(db, USER, a, archived=True)
    with pytest.raises(NotFoundError):
        add_day_config(db, USER, 1, a)
    with pytest.raises(NotFoundError):
        add_date_config(db, USER, "2024-05-20", a)


def test_reorder_day_configs_is_all_or_nothing():
    db = _new_db()
    first = add_day_config(db, USER, 4, _activity(db, "One"))
    second = add_day_config(db, USER, 4, _activity(db, "Two"))

    reorder_day_configs(db, USER, 4, [second["id"], first["id"]])
    assert [c["activity_title"] for c in list_day_configs(db, USER, 4)] == ["Two", "One"]

    with pytest.raises(ValidationError):
        reorder_day_configs(db, USER, 4, [first["id"], "not-a-config"])
    with pytest.raises(ValidationError):
        reorder_day_configs(db, USER, 4, [first["id"], first["id"]])
    assert [c["activity_title"] for c in list_day_configs(db, USER, 4)] == ["Two", "One"]

    # A config from another weekday does not belong to this scope.
    other = add_day_config(db, USER, 5, _activity(db, "Three"))
    with pytest.raises(ValidationError):
        reorder_day_configs(db, USER, 4, [first["id"], other["id"]])


def test_remove_unknown_day_config():
    db = _new_db()
    with pytest.raises(NotFoundError):
        remove_day_config(db, USER, "missing")


def test_date_configs_validate_and_reorder():
    db = _new_db()
    with pytest.raises(ValidationError):
        add_date_config(db, USER, "20-05-2024", _activity(db, "Bad"))

    first = add_date_config(db, USER, "2024-05-20", _activity(db, "Dentist"))
    second = add_date_config(db, USER, "2024-05-20", _activity(db, "Pharmacy"))
    reorder_date_configs(db, USER, "2024-05-20", [second["id"], first["id"]])

    listed = list_date_configs(db, USER, "2024-05-20")
    assert [(c["activity_title"], c["sort_order"]) for c in listed] == [("Pharmacy", 0), ("Dentist", 1)]
    assert all(c["scheduled_date"] == "2024-05-20" for c in listed)


def test_scheduled_dates_are_distinct_and_scoped_to_month():
    db = _new_db()
    a = _activity(db, "Errand")
    b = _activity(db, "Call")
    add_date_config(db, USER, "2024-05-20", a)
    add_date_config(db, USER, "2024-05-20", b)
    add_date_config(db, USER, "2024-05-03", a)
    add_date_config(db, USER, "2024-06-01", a)

    assert get_scheduled_dates(db, USER, 2024, 5) == ["2024-05-03", "2024-05-20"]
    assert get_scheduled_dates(db, "someone-else", 2024, 5) == []


def test_reorder_todo_items_rejects_foreign_ids():
    db = _new_db()
    first = add_todo_item(db, USER, _activity(db, "One"))
    second = add_todo_item(db, USER, _activity(db, "Two"))

    reorder_todo_items(db, USER, [second["id"], first["id"]])
    assert [i["activity_title"] for i in list_todo_items(db, USER)] == ["Two", "One"]

    with pytest.raises(ValidationError):
        reorder_todo_items(db, USER, [first["id"], "missing"])
    assert [i["activity_title"] for i in list_todo_items(db, USER)] == ["Two", "One"]
