"""
Achievement progress tracking.

Each achievement is a counter that moves towards ``goal_count``:

* ``habit`` achievements follow one activity and count every time it reaches
  its per-period goal.
* ``period`` achievements count the periods in which every active habit of
  that period reached its goal.
* ``todo`` achievements count the days on which at least one todo item was
  completed.

Reaching the goal either freezes the achievement as completed or, for
repeatable ones, resets the counter to zero. Either way the caller gets a
``CompletedAchievement`` back so the client can celebrate.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from config import settings
from db.models import Achievement, Activity, ActivityHistory
from services.errors import NotFoundError, ValidationError
from services.user_config_service import get_user_config
from utils.datetime_utils import PERIODS, compute_period_start

logger = logging.getLogger(__name__)

ACHIEVEMENT_TYPES = {"habit", "period", "todo"}


@dataclass(frozen=True)
class CompletedAchievement:
    id: str
    title: str
    reward: str

    def as_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "reward": self.reward}


def _achievement_to_dict(row: Achievement) -> dict:
    return {
        "id": row.id,
        "title": row.title,
        "reward": row.reward or "",
        "type": row.type,
        "activity_id": row.activity_id,
        "activity_title": row.activity.title if row.activity is not None else None,
        "period": row.period,
        "goal_count": int(row.goal_count),
        "count": int(row.count),
        "repeatable": bool(row.repeatable),
        "completed": bool(row.completed),
    }


def _validate_goal_count(goal_count) -> int:
    try:
        value = int(goal_count)
    except (TypeError, ValueError):
        raise ValidationError("goal_count must be a positive integer")
    if value < 1:
        raise ValidationError("goal_count must be a positive integer")
    return value


def _owned_achievement(db: Session, user_id: str, achievement_id: str) -> Achievement:
    row = (
        db.query(Achievement)
        .filter(Achievement.id == achievement_id, Achievement.user_id == user_id)
        .first()
    )
    if row is None:
        raise NotFoundError("Achievement not found")
    return row


# ─── CRUD ───


def list_achievements(db: Session, user_id: str) -> list[dict]:
    """All of the user's achievements, seeding the default one for a new user."""
    query = db.query(Achievement).filter(Achievement.user_id == user_id)
    rows = query.order_by(Achievement.created_at.asc(), Achievement.id.asc()).all()
    if not rows:
        create_default_achievement(db, user_id)
        rows = query.order_by(Achievement.created_at.asc(), Achievement.id.asc()).all()
    return [_achievement_to_dict(row) for row in rows]


def create_achievement(
    db: Session,
    user_id: str,
    title: str,
    type: str,
    reward: str = "",
    activity_id: str | None = None,
    period: str | None = None,
    goal_count: int = 1,
    repeatable: bool = False,
) -> dict:
    clean_title = (title or "").strip()
    if not clean_title:
        raise ValidationError("title is required")
    if type not in ACHIEVEMENT_TYPES:
        raise ValidationError("type must be habit|period|todo")
    goal = _validate_goal_count(goal_count)

    if type == "habit":
        if not activity_id:
            raise ValidationError("activity_id is required for habit type")
        activity = (
            db.query(Activity)
            .filter(Activity.id == activity_id, Activity.user_id == user_id)
            .first()
        )
        if activity is None:
            raise ValidationError("Activity not found")
    if type == "period" and period not in PERIODS:
        raise ValidationError("period must be daily|weekly|monthly for period type")

    row = Achievement(
        user_id=user_id,
        title=clean_title,
        reward=(reward or "").strip(),
        type=type,
        activity_id=activity_id if type == "habit" else None,
        period=period if type == "period" else None,
        goal_count=goal,
        count=0,
        repeatable=bool(repeatable),
        completed=False,
    )
    db.add(row)
    db.flush()
    return _achievement_to_dict(row)


def create_default_achievement(db: Session, user_id: str) -> dict:
    return create_achievement(
        db,
        user_id,
        title=settings.DEFAULT_ACHIEVEMENT_TITLE,
        type="period",
        period="daily",
        goal_count=1,
    )


def update_achievement(
    db: Session,
    user_id: str,
    achievement_id: str,
    title: str | None = None,
    reward: str | None = None,
    goal_count: int | None = None,
    repeatable: bool | None = None,
) -> dict:
    if title is not None and not title.strip():
        raise ValidationError("title must be a non-empty string")
    goal = _validate_goal_count(goal_count) if goal_count is not None else None

    row = _owned_achievement(db, user_id, achievement_id)
    if title is not None:
        row.title = title.strip()
    if reward is not None:
        row.reward = reward.strip()
    if goal is not None:
        row.goal_count = goal
    if repeatable is not None:
        row.repeatable = bool(repeatable)
    db.flush()
    return _achievement_to_dict(row)


def delete_achievement(db: Session, user_id: str, achievement_id: str) -> None:
    row = _owned_achievement(db, user_id, achievement_id)
    db.delete(row)
    db.flush()


# ─── Progress state machine ───


def increment_achievement(db: Session, achievement_id: str) -> CompletedAchievement | None:
    row = db.query(Achievement).filter(Achievement.id == achievement_id).first()
    if row is None or row.completed:
        logger.debug(f"Skipping increment for achievement {achievement_id}: missing or completed")
        return None

    new_count = int(row.count or 0) + 1
    if new_count < int(row.goal_count):
        row.count = new_count
        db.flush()
        return None

    if row.repeatable:
        row.count = 0
    else:
        row.count = new_count
        row.completed = True
    db.flush()
    logger.info(f"Achievement {row.id} reached its goal (repeatable={bool(row.repeatable)})")
    return CompletedAchievement(id=row.id, title=row.title, reward=row.reward or "")


def decrement_achievement(db: Session, achievement_id: str) -> None:
    row = db.query(Achievement).filter(Achievement.id == achievement_id).first()
    if row is None or row.completed:
        return
    row.count = max(0, int(row.count or 0) - 1)
    db.flush()


# ─── Hooks ───


def are_all_period_habits_complete(
    db: Session,
    user_id: str,
    period: str,
    now: datetime | None = None,
) -> bool:
    """
    True when the user has at least one active, non-task habit of ``period``
    and every one of them met its goal in the current window.
    """
    offset = get_user_config(db, user_id).day_end_offset_minutes
    start_date = compute_period_start(period, now, offset)

    activities = (
        db.query(Activity)
        .filter(
            Activity.user_id == user_id,
            Activity.period == period,
            Activity.archived.is_(False),
            Activity.task.is_(False),
        )
        .all()
    )
    if not activities:
        return False

    counts = {
        row.activity_id: int(row.count or 0)
        for row in db.query(ActivityHistory)
        .filter(
            ActivityHistory.activity_id.in_([a.id for a in activities]),
            ActivityHistory.start_date == start_date,
        )
        .all()
    }
    return all(counts.get(a.id, 0) >= int(a.goal_count) for a in activities)


def check_habit_achievements(
    db: Session,
    user_id: str,
    activity_id: str,
    is_now_complete: bool,
    period: str,
    now: datetime | None = None,
) -> list[CompletedAchievement]:
    """
    React to an activity crossing its per-period goal in either direction.

    Period achievements are decremented whenever a habit drops below its goal,
    whether or not that habit contributed to an earlier increment.
    """
    achievements = (
        db.query(Achievement)
        .filter(
            Achievement.user_id == user_id,
            Achievement.completed.is_(False),
            or_(
                and_(Achievement.type == "habit", Achievement.activity_id == activity_id),
                and_(Achievement.type == "period", Achievement.period == period),
            ),
        )
        .order_by(Achievement.created_at.asc(), Achievement.id.asc())
        .all()
    )

    completed: list[CompletedAchievement] = []
    all_complete: bool | None = None
    for ach in achievements:
        if ach.type == "habit":
            if is_now_complete:
                result = increment_achievement(db, ach.id)
                if result:
                    completed.append(result)
            else:
                decrement_achievement(db, ach.id)
        elif ach.type == "period":
            if not is_now_complete:
                decrement_achievement(db, ach.id)
                continue
            if all_complete is None:
                all_complete = are_all_period_habits_complete(db, user_id, period, now=now)
            if all_complete:
                result = increment_achievement(db, ach.id)
                if result:
                    completed.append(result)
    return completed


def check_todo_achievements(db: Session, user_id: str, today: str) -> list[CompletedAchievement]:
    """Advance every todo achievement at most once per logical day."""
    achievements = (
        db.query(Achievement)
        .filter(
            Achievement.user_id == user_id,
            Achievement.type == "todo",
            Achievement.completed.is_(False),
            or_(
                Achievement.last_todo_increment_date.is_(None),
                Achievement.last_todo_increment_date != today,
            ),
        )
        .order_by(Achievement.created_at.asc(), Achievement.id.asc())
        .all()
    )

    completed: list[CompletedAchievement] = []
    for ach in achievements:
        ach.last_todo_increment_date = today
        db.flush()
        result = increment_achievement(db, ach.id)
        if result:
            completed.append(result)
    return completed
