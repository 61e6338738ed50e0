from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from backend.core import config


connect_args = {'check_same_thread': False} if config.DATABASE_URL.startswith('sqlite') else {}

engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_print_job_schema_checked = False
_printer_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_print_job_schema() -> None:
    global _print_job_schema_checked

    if _print_job_schema_checked:
        return

    with _schema_lock:
        if _print_job_schema_checked:
            return

        inspector = inspect(engine)

        if 'print_jobs' not in inspector.get_table_names():
            _print_job_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_print_jobs_queue ON print_jobs(printer_id, status, priority, created_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_print_jobs_user_status ON print_jobs(user_id, status)')
            )

        _print_job_schema_checked = True


def ensure_printer_schema() -> None:
    global _printer_schema_checked

    if _printer_schema_checked:
        return

    with _schema_lock:
        if _printer_schema_checked:
            return

        inspector = inspect(engine)

        if 'printers' not in inspector.get_table_names():
            _printer_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_printers_status ON printers(status)')
            )

        _printer_schema_checked = True


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
