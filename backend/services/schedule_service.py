"""Weekly (day-of-week) and one-shot (calendar date) todo schedules."""
from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import Session

from db.models import Activity, TodoDateConfig, TodoDayConfig
from services.errors import NotFoundError, ValidationError
from utils.datetime_utils import parse_iso_date


def _validate_day_of_week(day_of_week) -> int:
    if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be an integer 0-6")
    return day_of_week


def _validate_date(raw: str) -> str:
    try:
        return parse_iso_date(raw).isoformat()
    except ValueError:
        raise ValidationError("date must be formatted as YYYY-MM-DD")


def _schedulable_activity(db: Session, user_id: str, activity_id: str) -> Activity:
    activity = (
        db.query(Activity)
        .filter(
            Activity.id == activity_id,
            Activity.user_id == user_id,
            Activity.archived.is_(False),
        )
        .first()
    )
    if activity is None:
        raise NotFoundError("Activity not found or is archived")
    return activity


def _day_config_to_dict(row: TodoDayConfig) -> dict:
    return {
        "id": row.id,
        "activity_id": row.activity_id,
        "activity_title": row.activity.title,
        "activity_period": row.activity.period,
        "activity_task": bool(row.activity.task),
        "day_of_week": int(row.day_of_week),
        "sort_order": int(row.sort_order),
    }


def _date_config_to_dict(row: TodoDateConfig) -> dict:
    return {
        "id": row.id,
        "activity_id": row.activity_id,
        "activity_title": row.activity.title,
        "activity_period": row.activity.period,
        "activity_task": bool(row.activity.task),
        "scheduled_date": row.scheduled_date,
        "sort_order": int(row.sort_order),
    }


def _apply_order(db: Session, model, scope_filters: list, ordered_ids: list[str], label: str) -> None:
    """
    Rewrite sort_order to match ``ordered_ids``.

    Every id must belong to the scope; nothing is written otherwise. The caller
    commits once, so the whole reorder lands or none of it does.
    """
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationError("ordered_ids must not contain duplicates")
    rows = db.query(model).filter(*scope_filters, model.id.in_(ordered_ids)).all() if ordered_ids else []
    if len(rows) != len(ordered_ids):
        raise ValidationError(f"Some {label} not found or do not belong to user")

    by_id = {row.id: row for row in rows}
    for index, row_id in enumerate(ordered_ids):
        by_id[row_id].sort_order = index
    db.flush()


# ─── Weekly schedule ───


def scheduled_day_configs(db: Session, user_id: str, day_of_week: int) -> list[TodoDayConfig]:
    return (
        db.query(TodoDayConfig)
        .join(Activity, TodoDayConfig.activity_id == Activity.id)
        .filter(TodoDayConfig.user_id == user_id, TodoDayConfig.day_of_week == day_of_week)
        .order_by(TodoDayConfig.sort_order.asc(), TodoDayConfig.created_at.asc())
        .all()
    )


def list_day_configs(db: Session, user_id: str, day_of_week: int) -> list[dict]:
    day_of_week = _validate_day_of_week(day_of_week)
    return [_day_config_to_dict(row) for row in scheduled_day_configs(db, user_id, day_of_week)]


def add_day_config(db: Session, user_id: str, day_of_week: int, activity_id: str) -> dict:
    day_of_week = _validate_day_of_week(day_of_week)
    _schedulable_activity(db, user_id, activity_id)

    max_order = (
        db.query(func.max(TodoDayConfig.sort_order))
        .filter(TodoDayConfig.user_id == user_id, TodoDayConfig.day_of_week == day_of_week)
        .scalar()
    )
    row = TodoDayConfig(
        user_id=user_id,
        day_of_week=day_of_week,
        activity_id=activity_id,
        sort_order=(max_order if max_order is not None else -1) + 1,
    )
    db.add(row)
    db.flush()
    return _day_config_to_dict(row)


def remove_day_config(db: Session, user_id: str, config_id: str) -> None:
    deleted = (
        db.query(TodoDayConfig)
        .filter(TodoDayConfig.id == config_id, TodoDayConfig.user_id == user_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFoundError("Day config not found")


def reorder_day_configs(db: Session, user_id: str, day_of_week: int, ordered_ids: list[str]) -> None:
    day_of_week = _validate_day_of_week(day_of_week)
    _apply_order(
        db,
        TodoDayConfig,
        [TodoDayConfig.user_id == user_id, TodoDayConfig.day_of_week == day_of_week],
        ordered_ids,
        "config IDs",
    )


def remove_day_configs_by_activity(db: Session, activity_id: str) -> int:
    return db.query(TodoDayConfig).filter(TodoDayConfig.activity_id == activity_id).delete(synchronize_session=False)


def remove_day_configs_by_user(db: Session, user_id: str) -> int:
    return db.query(TodoDayConfig).filter(TodoDayConfig.user_id == user_id).delete(synchronize_session=False)


# ─── Date schedule ───


def scheduled_date_configs(db: Session, user_id: str, scheduled_date: str) -> list[TodoDateConfig]:
    return (
        db.query(TodoDateConfig)
        .join(Activity, TodoDateConfig.activity_id == Activity.id)
        .filter(TodoDateConfig.user_id == user_id, TodoDateConfig.scheduled_date == scheduled_date)
        .order_by(TodoDateConfig.sort_order.asc(), TodoDateConfig.created_at.asc())
        .all()
    )


def list_date_configs(db: Session, user_id: str, scheduled_date: str) -> list[dict]:
    scheduled_date = _validate_date(scheduled_date)
    return [_date_config_to_dict(row) for row in scheduled_date_configs(db, user_id, scheduled_date)]


def add_date_config(db: Session, user_id: str, scheduled_date: str, activity_id: str) -> dict:
    scheduled_date = _validate_date(scheduled_date)
    _schedulable_activity(db, user_id, activity_id)

    max_order = (
        db.query(func.max(TodoDateConfig.sort_order))
        .filter(TodoDateConfig.user_id == user_id, TodoDateConfig.scheduled_date == scheduled_date)
        .scalar()
    )
    row = TodoDateConfig(
        user_id=user_id,
        scheduled_date=scheduled_date,
        activity_id=activity_id,
        sort_order=(max_order if max_order is not None else -1) + 1,
    )
    db.add(row)
    db.flush()
    return _date_config_to_dict(row)


def remove_date_config(db: Session, user_id: str, config_id: str) -> None:
    deleted = (
        db.query(TodoDateConfig)
        .filter(TodoDateConfig.id == config_id, TodoDateConfig.user_id == user_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFoundError("Date config not found")


def reorder_date_configs(db: Session, user_id: str, scheduled_date: str, ordered_ids: list[str]) -> None:
    scheduled_date = _validate_date(scheduled_date)
    _apply_order(
        db,
        TodoDateConfig,
        [TodoDateConfig.user_id == user_id, TodoDateConfig.scheduled_date == scheduled_date],
        ordered_ids,
        "config IDs",
    )


def remove_date_configs_for_date(db: Session, user_id: str, scheduled_date: str) -> int:
    return (
        db.query(TodoDateConfig)
        .filter(TodoDateConfig.user_id == user_id, TodoDateConfig.scheduled_date == scheduled_date)
        .delete(synchronize_session=False)
    )


def remove_date_configs_by_activity(db: Session, activity_id: str) -> int:
    return db.query(TodoDateConfig).filter(TodoDateConfig.activity_id == activity_id).delete(synchronize_session=False)


def remove_date_configs_by_user(db: Session, user_id: str) -> int:
    return db.query(TodoDateConfig).filter(TodoDateConfig.user_id == user_id).delete(synchronize_session=False)


def get_scheduled_dates(db: Session, user_id: str, year: int, month: int) -> list[str]:
    if not 1 <= int(month) <= 12:
        raise ValidationError("month must be between 1 and 12")
    prefix = f"{int(year):04d}-{int(month):02d}-"
    rows = (
        db.query(TodoDateConfig.scheduled_date)
        .filter(
            TodoDateConfig.user_id == user_id,
            TodoDateConfig.scheduled_date.like(f"{prefix}%"),
        )
        .distinct()
        .order_by(TodoDateConfig.scheduled_date.asc())
        .all()
    )
    return [row.scheduled_date for row in rows]
