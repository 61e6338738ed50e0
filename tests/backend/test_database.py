import pytest
from sqlalchemy import inspect

from backend import database


@pytest.fixture
def schema_engine(db_engine, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(database, 'engine', db_engine)
    monkeypatch.setattr(database, '_print_job_schema_checked', False)
    monkeypatch.setattr(database, '_printer_schema_checked', False)
    return db_engine


def test_schema_checks_create_queue_indexes_only(schema_engine) -> None:
    job_columns_before = [column['name'] for column in inspect(schema_engine).get_columns('print_jobs')]

    database.ensure_printer_schema()
    database.ensure_print_job_schema()

    inspector = inspect(schema_engine)
    assert {index['name'] for index in inspector.get_indexes('print_jobs')} >= {
        'idx_print_jobs_queue',
        'idx_print_jobs_user_status',
    }
    assert 'idx_printers_status' in {index['name'] for index in inspector.get_indexes('printers')}
    assert [column['name'] for column in inspector.get_columns('print_jobs')] == job_columns_before
    assert database._print_job_schema_checked is True
    assert database._printer_schema_checked is True


def test_atomic_rolls_back_on_error(print_center_db, make_printer) -> None:
    printer = make_printer()

    with pytest.raises(ValueError):
        with database.atomic(print_center_db):
            printer.name = 'Renamed'
            print_center_db.flush()
            raise ValueError('abort')

    assert print_center_db.get(type(printer), printer.id).name == 'Bambu Lab X1C #1'
