import logging

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    echo=False,
)


def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Enable WAL mode for better concurrent read performance
if _is_sqlite:
    event.listen(engine, "connect", set_sqlite_pragma)


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_startup_migrations(bind=None) -> None:
    """Bring databases created by earlier releases up to the current schema."""
    bind = bind or engine
    inspector = inspect(bind)

    def _table_columns(table_name: str) -> set[str]:
        try:
            return {col["name"] for col in inspector.get_columns(table_name)}
        except Exception:
            return set()

    activity_columns = _table_columns("activities")
    user_config_columns = _table_columns("user_configs")
    achievement_columns = _table_columns("achievements")
    if not activity_columns and not user_config_columns and not achievement_columns:
        # Tables may not exist yet on first boot.
        return

    alter_statements: list[str] = []
    if activity_columns:
        if "goal_count" not in activity_columns:
            alter_statements.append("ALTER TABLE activities ADD COLUMN goal_count INTEGER NOT NULL DEFAULT 1")
        if "stacked_activity_id" not in activity_columns:
            alter_statements.append("ALTER TABLE activities ADD COLUMN stacked_activity_id TEXT")
        if "archived" not in activity_columns:
            alter_statements.append("ALTER TABLE activities ADD COLUMN archived BOOLEAN NOT NULL DEFAULT 0")
        if "task" not in activity_columns:
            alter_statements.append("ALTER TABLE activities ADD COLUMN task BOOLEAN NOT NULL DEFAULT 0")
        if "archive_task" not in activity_columns:
            alter_statements.append("ALTER TABLE activities ADD COLUMN archive_task BOOLEAN NOT NULL DEFAULT 0")

    if user_config_columns:
        if "clear_todo_on_new_day" not in user_config_columns:
            alter_statements.append("ALTER TABLE user_configs ADD COLUMN clear_todo_on_new_day BOOLEAN NOT NULL DEFAULT 1")
        if "last_populated_date" not in user_config_columns:
            alter_statements.append("ALTER TABLE user_configs ADD COLUMN last_populated_date TEXT")

    if achievement_columns and "last_todo_increment_date" not in achievement_columns:
        alter_statements.append("ALTER TABLE achievements ADD COLUMN last_todo_increment_date TEXT")

    with bind.begin() as conn:
        for statement in alter_statements:
            logger.info(f"Applying startup migration: {statement}")
            conn.execute(text(statement))

        conn.execute(text(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_activities_history_window
            ON activities_history (activity_id, start_date)
            """
        ))
        conn.execute(text(
            """
            CREATE INDEX IF NOT EXISTS idx_todo_day_configs_user_day
            ON todo_day_configs (user_id, day_of_week, sort_order)
            """
        ))
        conn.execute(text(
            """
            CREATE INDEX IF NOT EXISTS idx_todo_date_configs_user_date
            ON todo_date_configs (user_id, scheduled_date, sort_order)
            """
        ))
