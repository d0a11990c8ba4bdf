"""Database base configuration"""
from datetime import datetime, timezone

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import declarative_base, sessionmaker

from devsync.config import settings

engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def utcnow() -> datetime:
    """UTC 'now' as tz-naive datetime (consistent with stored columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _ensure_issue_number_index():
    """
    Best-effort schema hardening:
    Older databases were created before the issue-number index existed.
    Webhook correlation and reconciliation look requests up by issue number,
    so make sure the index is there.
    """
    with engine.begin() as conn:
        if engine.dialect.name == "sqlite":
            tables = {
                row[0]
                for row in conn.exec_driver_sql(
                    "SELECT name FROM sqlite_master WHERE type='table'"
                ).fetchall()
            }
            if "development_requests" not in tables:
                return

        sql = (
            "CREATE INDEX IF NOT EXISTS ix_development_requests_github_issue_number "
            "ON development_requests(github_issue_number)"
        )
        try:
            conn.exec_driver_sql(sql)
        except Exception:
            # Some dialects may not support IF NOT EXISTS; try without it.
            try:
                conn.exec_driver_sql(sql.replace(" IF NOT EXISTS", ""))
            except Exception:
                # Best-effort only; do not block app startup.
                pass


def _ensure_outbox_columns():
    """
    Schema upgrade for databases created before the outbox
    version counter and body flag existed.
    """
    columns = {
        "sync_version": "INTEGER NOT NULL DEFAULT 0",
        "body_pending": "BOOLEAN NOT NULL DEFAULT FALSE",
    }
    inspector = inspect(engine)
    if "development_requests" not in inspector.get_table_names():
        return
    existing = {col["name"] for col in inspector.get_columns("development_requests")}
    with engine.begin() as conn:
        for name, ddl in columns.items():
            if name not in existing:
                conn.exec_driver_sql(f"ALTER TABLE development_requests ADD COLUMN {name} {ddl}")


def init_db(bind=None):
    """Initialize database"""
    # Ensure all models are imported so SQLAlchemy metadata is populated.
    import devsync.models  # noqa: F401  (import for side-effects)

    Base.metadata.create_all(bind=bind or engine)
    if bind is None:
        _ensure_outbox_columns()
        _ensure_issue_number_index()
