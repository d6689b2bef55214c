from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from db.models import (
    Achievement,
    Activity,
    ActivityHistory,
    TodoItem,
    UserConfig,
)
from services.achievement_service import CompletedAchievement, check_habit_achievements
from services.errors import ConsistencyError, NotFoundError, ValidationError
from services.schedule_service import (
    remove_date_configs_by_activity,
    remove_date_configs_by_user,
    remove_day_configs_by_activity,
    remove_day_configs_by_user,
)
from services.user_config_service import get_user_config
from utils.datetime_utils import (
    calendar_period_starts,
    compute_period_start,
    generate_period_starts,
    normalize_period,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMITS = {
    "daily": 7,
    "weekly": 8,
    "monthly": 6,
}
_UPDATABLE_FIELDS = {"title", "description", "goal_count", "stacked_activity_id", "archived"}
_NON_NULLABLE_FIELDS = ("title", "goal_count", "archived")


def _period_or_error(period: str) -> str:
    try:
        return normalize_period(period)
    except ValueError as exc:
        raise ValidationError(str(exc))


def _goal_count_or_error(goal_count) -> int:
    try:
        value = int(goal_count)
    except (TypeError, ValueError):
        raise ValidationError("goal_count must be a positive integer")
    if value < 1:
        raise ValidationError("goal_count must be a positive integer")
    return value


def _activity_to_dict(activity: Activity, count: int = 0) -> dict:
    goal_count = int(activity.goal_count)
    completion_pct = min(100, round((count / goal_count) * 100)) if goal_count > 0 else 0
    stacked = activity.stacked_activity
    return {
        "id": activity.id,
        "title": activity.title,
        "description": activity.description,
        "goal_count": goal_count,
        "count": count,
        "completion_percent": completion_pct,
        "period": activity.period,
        "stacked_activity_id": activity.stacked_activity_id,
        "stacked_activity_title": stacked.title if stacked is not None else None,
        "archived": bool(activity.archived),
        "task": bool(activity.task),
        "archive_task": bool(activity.archive_task),
    }


def get_activity(db: Session, user_id: str, activity_id: str) -> Activity:
    activity = (
        db.query(Activity)
        .filter(Activity.id == activity_id, Activity.user_id == user_id)
        .first()
    )
    if activity is None:
        raise NotFoundError("Activity not found")
    return activity


def _current_count(db: Session, activity: Activity, start_date: str) -> int:
    row = (
        db.query(ActivityHistory.count)
        .filter(
            ActivityHistory.activity_id == activity.id,
            ActivityHistory.start_date == start_date,
        )
        .first()
    )
    return int(row.count) if row else 0


def activity_snapshot(db: Session, user_id: str, activity_id: str, now: datetime | None = None) -> dict:
    activity = get_activity(db, user_id, activity_id)
    offset = get_user_config(db, user_id).day_end_offset_minutes
    start_date = compute_period_start(activity.period, now, offset)
    return _activity_to_dict(activity, _current_count(db, activity, start_date))


def list_activities(
    db: Session,
    user_id: str,
    period: str,
    archived: bool = False,
    now: datetime | None = None,
) -> list[dict]:
    period = _period_or_error(period)
    offset = get_user_config(db, user_id).day_end_offset_minutes
    start_date = compute_period_start(period, now, offset)

    rows = (
        db.query(Activity, ActivityHistory.count)
        .outerjoin(
            ActivityHistory,
            (ActivityHistory.activity_id == Activity.id) & (ActivityHistory.start_date == start_date),
        )
        .filter(
            Activity.user_id == user_id,
            Activity.period == period,
            Activity.archived.is_(bool(archived)),
        )
        .order_by(Activity.title.asc())
        .all()
    )
    return [_activity_to_dict(activity, int(count or 0)) for activity, count in rows]


def would_create_cycle(db: Session, source_id: str, target_id: str, user_id: str) -> bool:
    """True if stacking ``target_id`` after ``source_id`` would loop back to the source."""
    current_id: str | None = target_id
    visited: set[str] = set()
    while current_id:
        if current_id == source_id:
            return True
        if current_id in visited:
            return False
        visited.add(current_id)
        row = (
            db.query(Activity.stacked_activity_id)
            .filter(Activity.id == current_id, Activity.user_id == user_id)
            .first()
        )
        current_id = row.stacked_activity_id if row else None
    return False


def _validate_stack_target(db: Session, user_id: str, target_id: str, source_id: str | None = None) -> None:
    target = (
        db.query(Activity.id)
        .filter(Activity.id == target_id, Activity.user_id == user_id)
        .first()
    )
    if target is None:
        raise ValidationError("Stacked activity not found")
    if source_id is not None and would_create_cycle(db, source_id, target_id, user_id):
        logger.warning(f"Rejected stacking {source_id} -> {target_id}: would create a cycle")
        raise ValidationError("Stacking this activity would create a cycle")


def create_activity(
    db: Session,
    user_id: str,
    title: str,
    period: str,
    description: str | None = None,
    goal_count: int = 1,
    stacked_activity_id: str | None = None,
    task: bool = False,
    archive_task: bool = False,
) -> dict:
    clean_title = (title or "").strip()
    if not clean_title:
        raise ValidationError("title is required")
    period = _period_or_error(period)
    goal = _goal_count_or_error(goal_count)
    if stacked_activity_id:
        _validate_stack_target(db, user_id, stacked_activity_id)

    activity = Activity(
        user_id=user_id,
        title=clean_title,
        description=(description or "").strip() or None,
        period=period,
        goal_count=goal,
        stacked_activity_id=stacked_activity_id or None,
        archived=False,
        task=bool(task),
        archive_task=bool(archive_task),
    )
    db.add(activity)
    db.flush()

    created = (
        db.query(Activity)
        .filter(Activity.id == activity.id, Activity.user_id == user_id)
        .first()
    )
    if created is None:
        raise ConsistencyError("Insert succeeded but activity could not be loaded")
    return _activity_to_dict(created, 0)


def update_activity(
    db: Session,
    user_id: str,
    activity_id: str,
    now: datetime | None = None,
    **updates,
) -> dict:
    unknown = set(updates) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unsupported fields: {sorted(unknown)}")
    for field in _NON_NULLABLE_FIELDS:
        if field in updates and updates[field] is None:
            raise ValidationError(f"{field} must not be null")

    activity = get_activity(db, user_id, activity_id)
    was_archived = bool(activity.archived)

    if "title" in updates:
        title = (updates["title"] or "").strip()
        if not title:
            raise ValidationError("title must be a non-empty string")
        activity.title = title
    if "description" in updates:
        activity.description = updates["description"]
    if "goal_count" in updates:
        activity.goal_count = _goal_count_or_error(updates["goal_count"])
    if "stacked_activity_id" in updates:
        target_id = updates["stacked_activity_id"]
        if target_id:
            if target_id == activity_id:
                raise ValidationError("An activity cannot be stacked on itself")
            _validate_stack_target(db, user_id, target_id, source_id=activity_id)
        activity.stacked_activity_id = target_id or None
    if "archived" in updates:
        activity.archived = bool(updates["archived"])
    db.flush()

    if updates.get("archived") is True:
        # Archived activities leave the todo list and every schedule.
        db.query(TodoItem).filter(TodoItem.activity_id == activity_id).delete(synchronize_session=False)
        remove_day_configs_by_activity(db, activity_id)
        remove_date_configs_by_activity(db, activity_id)
    elif updates.get("archived") is False and was_archived and activity.task:
        # A restored task comes back incomplete.
        db.query(ActivityHistory).filter(ActivityHistory.activity_id == activity_id).delete(synchronize_session=False)
    db.flush()

    return activity_snapshot(db, user_id, activity_id, now=now)


def update_activity_count(
    db: Session,
    user_id: str,
    activity_id: str,
    delta: int,
    now: datetime | None = None,
) -> tuple[int, list[CompletedAchievement]]:
    """
    Apply ``delta`` to the activity's count for the current period window.

    Counts never drop below zero. When the change moves the count across the
    activity's goal the habit achievement hook runs for that transition.
    """
    activity = get_activity(db, user_id, activity_id)
    offset = get_user_config(db, user_id).day_end_offset_minutes
    start_date = compute_period_start(activity.period, now, offset)

    row = (
        db.query(ActivityHistory)
        .filter(
            ActivityHistory.activity_id == activity_id,
            ActivityHistory.start_date == start_date,
        )
        .with_for_update()
        .first()
    )
    previous = int(row.count) if row else 0
    if row is None:
        row = ActivityHistory(
            activity_id=activity_id,
            user_id=user_id,
            start_date=start_date,
            count=max(0, int(delta)),
        )
        db.add(row)
    else:
        row.count = max(0, previous + int(delta))
    db.flush()
    new_count = int(row.count)

    goal_count = int(activity.goal_count)
    was_complete = previous >= goal_count
    is_complete = new_count >= goal_count
    completed: list[CompletedAchievement] = []
    if was_complete != is_complete:
        completed = check_habit_achievements(
            db,
            user_id,
            activity_id,
            is_now_complete=is_complete,
            period=activity.period,
            now=now,
        )
    return new_count, completed


def get_activity_history(
    db: Session,
    user_id: str,
    activity_id: str,
    limit: int | None = None,
    now: datetime | None = None,
) -> dict:
    activity = get_activity(db, user_id, activity_id)
    period = normalize_period(activity.period)
    count = int(limit) if limit is not None else DEFAULT_HISTORY_LIMITS.get(period, 7)
    if count < 1:
        raise ValidationError("limit must be a positive integer")
    offset = get_user_config(db, user_id).day_end_offset_minutes
    dates = generate_period_starts(period, count, now, offset)

    count_map = {
        row.start_date: int(row.count)
        for row in db.query(ActivityHistory.start_date, ActivityHistory.count)
        .filter(
            ActivityHistory.activity_id == activity_id,
            ActivityHistory.start_date.in_(dates),
        )
        .all()
    }
    return {
        "period": period,
        "history": [{"start_date": d, "count": count_map.get(d, 0)} for d in dates],
    }


def get_activity_calendar(
    db: Session,
    user_id: str,
    activity_id: str,
    year: int,
    month: int,
) -> dict:
    if not 1 <= int(month) <= 12:
        raise ValidationError("month must be between 1 and 12")
    activity = get_activity(db, user_id, activity_id)
    period = normalize_period(activity.period)
    start_dates = calendar_period_starts(period, int(year), int(month))

    count_map = {
        row.start_date: int(row.count)
        for row in db.query(ActivityHistory.start_date, ActivityHistory.count)
        .filter(
            ActivityHistory.activity_id == activity_id,
            ActivityHistory.start_date.in_(start_dates),
        )
        .all()
    }
    return {
        "period": period,
        "goal_count": int(activity.goal_count),
        "created_at": activity.created_at.isoformat() if activity.created_at else None,
        "entries": [{"start_date": d, "count": count_map.get(d, 0)} for d in start_dates],
    }


def delete_activity(db: Session, user_id: str, activity_id: str) -> dict[str, int]:
    """Delete an activity and everything that references it, dependents first."""
    activity = get_activity(db, user_id, activity_id)

    removed_todos = (
        db.query(TodoItem).filter(TodoItem.activity_id == activity_id).delete(synchronize_session=False)
    )
    removed_day = remove_day_configs_by_activity(db, activity_id)
    removed_date = remove_date_configs_by_activity(db, activity_id)
    orphaned = (
        db.query(Achievement)
        .filter(Achievement.activity_id == activity_id)
        .update({Achievement.activity_id: None}, synchronize_session=False)
    )
    removed_history = (
        db.query(ActivityHistory)
        .filter(ActivityHistory.activity_id == activity_id)
        .delete(synchronize_session=False)
    )
    (
        db.query(Activity)
        .filter(Activity.stacked_activity_id == activity_id, Activity.user_id == user_id)
        .update({Activity.stacked_activity_id: None}, synchronize_session=False)
    )
    db.delete(activity)
    db.flush()
    db.expire_all()

    result = {
        "todo_items": int(removed_todos or 0),
        "day_configs": int(removed_day or 0),
        "date_configs": int(removed_date or 0),
        "achievements_orphaned": int(orphaned or 0),
        "history_rows": int(removed_history or 0),
    }
    logger.info(f"Deleted activity {activity_id} with cascade {result}")
    return result


def delete_all_data_for_user(db: Session, user_id: str) -> None:
    activity_ids = [row.id for row in db.query(Activity.id).filter(Activity.user_id == user_id).all()]

    db.query(TodoItem).filter(TodoItem.user_id == user_id).delete(synchronize_session=False)
    remove_day_configs_by_user(db, user_id)
    remove_date_configs_by_user(db, user_id)
    db.query(Achievement).filter(Achievement.user_id == user_id).delete(synchronize_session=False)
    if activity_ids:
        db.query(ActivityHistory).filter(ActivityHistory.activity_id.in_(activity_ids)).delete(
            synchronize_session=False
        )
        db.query(Activity).filter(Activity.user_id == user_id).update(
            {Activity.stacked_activity_id: None}, synchronize_session=False
        )
    db.query(Activity).filter(Activity.user_id == user_id).delete(synchronize_session=False)
    db.query(UserConfig).filter(UserConfig.user_id == user_id).delete(synchronize_session=False)
    db.flush()
    db.expire_all()
    logger.info(f"Deleted all data for user {user_id} ({len(activity_ids)} activities)")
