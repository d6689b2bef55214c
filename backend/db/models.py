import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Integer, Text, Boolean, ForeignKey, Index,
    DateTime,
)
from sqlalchemy.orm import relationship
from db.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Activity(Base):
    __tablename__ = "activities"

    id = Column(Text, primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text)
    period = Column(Text, nullable=False)  # daily | weekly | monthly
    goal_count = Column(Integer, nullable=False, default=1)
    archived = Column(Boolean, nullable=False, default=False)
    task = Column(Boolean, nullable=False, default=False)
    archive_task = Column(Boolean, nullable=False, default=False)
    stacked_activity_id = Column(Text, ForeignKey("activities.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    stacked_activity = relationship("Activity", remote_side=[id])


class ActivityHistory(Base):
    __tablename__ = "activities_history"

    id = Column(Text, primary_key=True, default=_new_id)
    activity_id = Column(Text, ForeignKey("activities.id"), nullable=False)
    user_id = Column(Text, nullable=False)
    start_date = Column(Text, nullable=False)  # DATE as text for SQLite
    count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserConfig(Base):
    __tablename__ = "user_configs"

    user_id = Column(Text, primary_key=True)
    day_end_offset_minutes = Column(Integer, nullable=False, default=0)
    clear_todo_on_new_day = Column(Boolean, nullable=False, default=True)
    last_populated_date = Column(Text, nullable=True)  # DATE as text for SQLite
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TodoDayConfig(Base):
    """Weekly schedule entry: an activity placed on a day of the week."""

    __tablename__ = "todo_day_configs"

    id = Column(Text, primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    activity_id = Column(Text, ForeignKey("activities.id"), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    activity = relationship("Activity")


class TodoDateConfig(Base):
    """One-shot schedule entry for a specific calendar date."""

    __tablename__ = "todo_date_configs"

    id = Column(Text, primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False)
    scheduled_date = Column(Text, nullable=False)  # DATE as text for SQLite
    activity_id = Column(Text, ForeignKey("activities.id"), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    activity = relationship("Activity")


class TodoItem(Base):
    __tablename__ = "todo_items"

    id = Column(Text, primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False)
    activity_id = Column(Text, ForeignKey("activities.id"), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    activity = relationship("Activity")


class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(Text, primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    reward = Column(Text, nullable=False, default="")
    type = Column(Text, nullable=False)  # habit | period | todo
    activity_id = Column(Text, ForeignKey("activities.id"), nullable=True)
    period = Column(Text, nullable=True)  # daily | weekly | monthly
    goal_count = Column(Integer, nullable=False, default=1)
    count = Column(Integer, nullable=False, default=0)
    repeatable = Column(Boolean, nullable=False, default=False)
    completed = Column(Boolean, nullable=False, default=False)
    last_todo_increment_date = Column(Text, nullable=True)  # DATE as text for SQLite
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    activity = relationship("Activity")


# Indexes
Index("idx_activities_user_period", Activity.user_id, Activity.period, Activity.archived)
Index("idx_activities_stacked", Activity.stacked_activity_id)
Index("idx_activities_history_window", ActivityHistory.activity_id, ActivityHistory.start_date, unique=True)
Index("idx_todo_items_user_order", TodoItem.user_id, TodoItem.sort_order)
Index("idx_todo_items_activity", TodoItem.activity_id)
Index("idx_todo_day_configs_user_day", TodoDayConfig.user_id, TodoDayConfig.day_of_week, TodoDayConfig.sort_order)
Index("idx_todo_day_configs_activity", TodoDayConfig.activity_id)
Index("idx_todo_date_configs_user_date", TodoDateConfig.user_id, TodoDateConfig.scheduled_date, TodoDateConfig.sort_order)
Index("idx_todo_date_configs_activity", TodoDateConfig.activity_id)
Index("idx_achievements_user_type", Achievement.user_id, Achievement.type)
Index("idx_achievements_user_activity", Achievement.user_id, Achievement.activity_id)
