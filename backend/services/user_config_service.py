from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from config import settings
from db.models import UserConfig
from services.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserConfigValues:
    day_end_offset_minutes: int
    clear_todo_on_new_day: bool

    def as_dict(self) -> dict:
        return {
            "day_end_offset_minutes": self.day_end_offset_minutes,
            "clear_todo_on_new_day": self.clear_todo_on_new_day,
        }


def _values_for(row: UserConfig | None) -> UserConfigValues:
    if row is None:
        return UserConfigValues(
            day_end_offset_minutes=int(settings.DEFAULT_DAY_END_OFFSET_MINUTES),
            clear_todo_on_new_day=bool(settings.DEFAULT_CLEAR_TODO_ON_NEW_DAY),
        )
    return UserConfigValues(
        day_end_offset_minutes=int(row.day_end_offset_minutes or 0),
        clear_todo_on_new_day=bool(row.clear_todo_on_new_day),
    )


def _insert_default_row(db: Session, user_id: str) -> None:
    """Insert the default config row unless another transaction already did."""
    defaults = _values_for(None)
    values = {
        "user_id": user_id,
        "day_end_offset_minutes": defaults.day_end_offset_minutes,
        "clear_todo_on_new_day": defaults.clear_todo_on_new_day,
        "last_populated_date": None,
    }
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        stmt = sqlite_insert(UserConfig).values(**values).on_conflict_do_nothing(index_elements=[UserConfig.user_id])
    elif dialect == "postgresql":
        stmt = pg_insert(UserConfig).values(**values).on_conflict_do_nothing(index_elements=[UserConfig.user_id])
    else:
        db.add(UserConfig(**values))
        db.flush()
        return
    db.execute(stmt)


def get_or_create_config_row(db: Session, user_id: str, lock: bool = False) -> UserConfig:
    """
    Load the user's config row, inserting one with default values if missing.

    The insert ignores a conflicting row, so two first requests for the same
    user both end up reading the one row that won. With ``lock=True`` the row
    is read with ``SELECT ... FOR UPDATE`` so two requests for the same user
    cannot both run a populate pass. SQLite ignores the clause and relies on
    its database-level write lock instead.
    """
    query = db.query(UserConfig).filter(UserConfig.user_id == user_id)
    if lock:
        query = query.with_for_update()
    row = query.first()
    if row is not None:
        return row

    _insert_default_row(db, user_id)
    return query.one()


def get_user_config(db: Session, user_id: str) -> UserConfigValues:
    row = db.query(UserConfig).filter(UserConfig.user_id == user_id).first()
    return _values_for(row)


def upsert_user_config(
    db: Session,
    user_id: str,
    day_end_offset_minutes: int | None = None,
    clear_todo_on_new_day: bool | None = None,
) -> UserConfigValues:
    if day_end_offset_minutes is not None:
        bound = int(settings.MAX_DAY_END_OFFSET_MINUTES)
        if abs(int(day_end_offset_minutes)) > bound:
            raise ValidationError(f"day_end_offset_minutes must be between -{bound} and {bound}")

    row = get_or_create_config_row(db, user_id)
    if day_end_offset_minutes is not None and int(day_end_offset_minutes) != int(row.day_end_offset_minutes or 0):
        logger.info(
            f"Day-end offset for {user_id} changed from {row.day_end_offset_minutes} to {day_end_offset_minutes}"
        )
    if day_end_offset_minutes is not None:
        row.day_end_offset_minutes = int(day_end_offset_minutes)
    if clear_todo_on_new_day is not None:
        row.clear_todo_on_new_day = bool(clear_todo_on_new_day)
    db.flush()
    return _values_for(row)


def get_last_populated_date(db: Session, user_id: str) -> str | None:
    row = db.query(UserConfig.last_populated_date).filter(UserConfig.user_id == user_id).first()
    return row.last_populated_date if row else None


def set_last_populated_date(db: Session, user_id: str, populated_date: str) -> None:
    row = get_or_create_config_row(db, user_id)
    row.last_populated_date = populated_date
    db.flush()
