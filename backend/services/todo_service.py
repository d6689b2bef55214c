from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from db.models import Activity, TodoDayConfig, TodoItem
from services.achievement_service import check_todo_achievements
from services.activity_service import delete_activity, update_activity, update_activity_count
from services.errors import NotFoundError, ValidationError
from services.schedule_service import (
    remove_date_configs_for_date,
    scheduled_date_configs,
    scheduled_day_configs,
)
from services.user_config_service import get_or_create_config_row, get_user_config
from utils.datetime_utils import adjusted_day_of_week, compute_period_start, utcnow

logger = logging.getLogger(__name__)


def _todo_item_to_dict(item: TodoItem, activity: Activity) -> dict:
    return {
        "id": item.id,
        "activity_id": item.activity_id,
        "activity_title": activity.title,
        "activity_period": activity.period,
        "activity_task": bool(activity.task),
        "activity_archive_task": bool(activity.archive_task),
        "sort_order": int(item.sort_order),
    }


def list_todo_items(db: Session, user_id: str) -> list[dict]:
    rows = (
        db.query(TodoItem, Activity)
        .join(Activity, TodoItem.activity_id == Activity.id)
        .filter(TodoItem.user_id == user_id)
        .order_by(TodoItem.sort_order.asc(), TodoItem.created_at.asc())
        .all()
    )
    return [_todo_item_to_dict(item, activity) for item, activity in rows]


def _max_sort_order(db: Session, user_id: str) -> int:
    value = db.query(func.max(TodoItem.sort_order)).filter(TodoItem.user_id == user_id).scalar()
    return int(value) if value is not None else -1


def add_todo_item(db: Session, user_id: str, activity_id: str) -> dict:
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

    item = TodoItem(
        user_id=user_id,
        activity_id=activity_id,
        sort_order=_max_sort_order(db, user_id) + 1,
    )
    db.add(item)
    db.flush()
    return _todo_item_to_dict(item, activity)


def remove_todo_item(db: Session, user_id: str, todo_item_id: str) -> None:
    deleted = (
        db.query(TodoItem)
        .filter(TodoItem.id == todo_item_id, TodoItem.user_id == user_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFoundError("Todo item not found")


def reorder_todo_items(db: Session, user_id: str, ordered_ids: list[str]) -> None:
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationError("ordered_ids must not contain duplicates")
    rows = (
        db.query(TodoItem)
        .filter(TodoItem.user_id == user_id, TodoItem.id.in_(ordered_ids))
        .all()
        if ordered_ids
        else []
    )
    if len(rows) != len(ordered_ids):
        raise ValidationError("Some todo items not found or do not belong to user")

    by_id = {row.id: row for row in rows}
    for index, item_id in enumerate(ordered_ids):
        by_id[item_id].sort_order = index
    db.flush()


def complete_todo_item(
    db: Session,
    user_id: str,
    todo_item_id: str,
    now: datetime | None = None,
) -> dict:
    """
    Complete a todo entry: count it towards the activity, retire finished
    tasks, drop the entry and advance the daily todo achievements.
    """
    now = now or utcnow()
    item = (
        db.query(TodoItem)
        .filter(TodoItem.id == todo_item_id, TodoItem.user_id == user_id)
        .first()
    )
    if item is None:
        raise NotFoundError("Todo item not found")
    activity = item.activity

    count, completed = update_activity_count(db, user_id, activity.id, 1, now=now)

    if activity.task:
        if activity.archive_task:
            update_activity(db, user_id, activity.id, now=now, archived=True)
        else:
            delete_activity(db, user_id, activity.id)

    (
        db.query(TodoItem)
        .filter(TodoItem.id == todo_item_id, TodoItem.user_id == user_id)
        .delete(synchronize_session=False)
    )

    offset = get_user_config(db, user_id).day_end_offset_minutes
    today = compute_period_start("daily", now, offset)
    completed = completed + check_todo_achievements(db, user_id, today)
    return {
        "count": count,
        "completed_achievements": [c.as_dict() for c in completed],
    }


def populate_todo_for_today(
    db: Session,
    user_id: str,
    now: datetime | None = None,
) -> list[dict]:
    """
    Build today's todo list from the weekly and date schedules.

    Runs at most once per logical day: once ``last_populated_date`` matches
    today every further call returns the current list without writing. The
    user's config row is locked for the duration, and the caller commits once,
    so the consumption of date entries, the todo rewrite and the date stamp
    land together.
    """
    now = now or utcnow()
    config = get_or_create_config_row(db, user_id, lock=True)
    offset = int(config.day_end_offset_minutes or 0)
    today = compute_period_start("daily", now, offset)

    if config.last_populated_date == today:
        logger.debug(f"Todo list for {user_id} already populated for {today}")
        return list_todo_items(db, user_id)

    # The weekday comes from the shifted instant, not from the date string.
    day_of_week = adjusted_day_of_week(now, offset)
    weekly_entries = scheduled_day_configs(db, user_id, day_of_week)
    date_entries = [e for e in scheduled_date_configs(db, user_id, today) if not e.activity.archived]
    scheduled_activity_ids = [e.activity_id for e in weekly_entries if not e.activity.archived] + [
        e.activity_id for e in date_entries
    ]

    if config.clear_todo_on_new_day:
        db.query(TodoItem).filter(TodoItem.user_id == user_id).delete(synchronize_session=False)
        for index, activity_id in enumerate(scheduled_activity_ids):
            db.add(TodoItem(user_id=user_id, activity_id=activity_id, sort_order=index))
        added = len(scheduled_activity_ids)
    else:
        existing = db.query(TodoItem.activity_id).filter(TodoItem.user_id == user_id).all()
        existing_ids = {row.activity_id for row in existing}
        next_order = _max_sort_order(db, user_id) + 1
        added = 0
        for activity_id in scheduled_activity_ids:
            if activity_id in existing_ids:
                continue
            db.add(TodoItem(user_id=user_id, activity_id=activity_id, sort_order=next_order))
            next_order += 1
            added += 1
    db.flush()

    consumed_dates = remove_date_configs_for_date(db, user_id, today)

    # Weekly-scheduled tasks fire once and leave the recurring schedule.
    task_entry_ids = [e.id for e in weekly_entries if e.activity.task]
    if task_entry_ids:
        db.query(TodoDayConfig).filter(TodoDayConfig.id.in_(task_entry_ids)).delete(synchronize_session=False)

    config.last_populated_date = today
    db.flush()

    logger.info(
        f"Populated todo list for {user_id} on {today} "
        f"(mode={'clear' if config.clear_todo_on_new_day else 'keep'}, weekday={day_of_week}, "
        f"added={added}, date_entries_consumed={consumed_dates}, weekly_tasks_removed={len(task_entry_ids)})"
    )
    return list_todo_items(db, user_id)
