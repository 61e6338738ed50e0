from datetime import datetime

import pytest

from backend.core.exceptions import Conflict, Forbidden, NotFound, ValidationError
from backend.models.enums import PrinterStatus
from backend.models.print_job import PrintJob
from backend.models.printer import Printer
from backend.models.user import User
from backend.services import job_lifecycle, printer_registry

KB = 1024


def test_create_printer_defaults_to_online(print_center_db, admin) -> None:
    printer = printer_registry.create_printer(print_center_db, admin, ' Ultimaker #4 ', 'Ultimaker', location='Lab B')

    assert printer.id is not None
    assert printer.name == 'Ultimaker #4'
    assert printer.status == 'online'
    assert printer.current_job_id is None


@pytest.mark.parametrize(('name', 'brand'), [('', 'Ultimaker'), ('Ultimaker #4', '   '), (None, 'Ultimaker')])
def test_create_printer_requires_name_and_brand(print_center_db, admin, name, brand) -> None:
    with pytest.raises(ValidationError):
        printer_registry.create_printer(print_center_db, admin, name, brand)

    assert print_center_db.query(Printer).count() == 0


def test_create_printer_requires_admin(print_center_db, student) -> None:
    with pytest.raises(Forbidden):
        printer_registry.create_printer(print_center_db, student, 'Ultimaker #4', 'Ultimaker')


def test_update_printer_applies_patch(print_center_db, admin, make_printer) -> None:
    printer = make_printer()

    updated = printer_registry.update_printer(
        print_center_db,
        admin,
        printer.id,
        {'location': 'Lab C', 'description': '  '},
    )

    assert updated.location == 'Lab C'
    assert updated.description is None
    assert updated.name == 'Bambu Lab X1C #1'


def test_update_printer_rejects_unknown_printer_and_fields(print_center_db, admin, make_printer) -> None:
    printer = make_printer()

    with pytest.raises(NotFound):
        printer_registry.update_printer(print_center_db, admin, 999, {'name': 'Ghost'})
    with pytest.raises(ValidationError):
        printer_registry.update_printer(print_center_db, admin, printer.id, {'status': 'printing'})


def test_delete_printer_without_active_jobs_keeps_history(print_center_db, admin, student, make_printer) -> None:
    printer = make_printer()
    old_job = PrintJob(
        user_id=student.id,
        printer_id=printer.id,
        file_name='bracket_v2.stl',
        status='completed',
        priority=1,
        credit_cost=5,
        created_at=datetime(2026, 1, 2, 10, 0),
    )
    print_center_db.add(old_job)
    print_center_db.commit()

    printer_registry.delete_printer(print_center_db, admin, printer.id)

    print_center_db.refresh(old_job)
    assert print_center_db.query(Printer).filter(Printer.id == printer.id).first() is None
    assert old_job.printer_id is None


def test_delete_printer_with_active_job_conflicts(print_center_db, admin, student, make_printer) -> None:
    printer = make_printer()
    job_lifecycle.submit_job(print_center_db, student, printer.id, 'gear.stl', 100 * KB)

    with pytest.raises(Conflict) as exception_info:
        printer_registry.delete_printer(print_center_db, admin, printer.id)

    assert exception_info.value.details['active_jobs'] == 1
    assert printer_registry.get_printer(print_center_db, printer.id) is not None


def test_set_printer_status_changes_idle_printer(print_center_db, admin, make_printer) -> None:
    printer = make_printer()

    updated = printer_registry.set_printer_status(print_center_db, admin, printer.id, PrinterStatus.MAINTENANCE)

    assert updated.status == 'maintenance'


def test_set_printer_status_refuses_to_orphan_printing_job(print_center_db, admin, student, make_printer) -> None:
    printer = make_printer()
    job = job_lifecycle.submit_job(print_center_db, student, printer.id, 'gear.stl', 100 * KB)
    job_lifecycle.approve_job(print_center_db, admin, job.id)
    job_lifecycle.start_job(print_center_db, admin, job.id)

    with pytest.raises(Conflict):
        printer_registry.set_printer_status(print_center_db, admin, printer.id, PrinterStatus.OFFLINE)

    print_center_db.refresh(printer)
    assert printer.status == 'printing'
    assert printer.current_job_id == job.id


def test_set_printer_status_cannot_enter_printing_directly(print_center_db, admin, make_printer) -> None:
    printer = make_printer()

    with pytest.raises(ValidationError):
        printer_registry.set_printer_status(print_center_db, admin, printer.id, PrinterStatus.PRINTING)


def test_set_printer_status_requires_admin(print_center_db, student, make_printer) -> None:
    printer = make_printer()

    with pytest.raises(Forbidden):
        printer_registry.set_printer_status(print_center_db, student, printer.id, PrinterStatus.OFFLINE)


def test_printer_stats_reports_success_rate(print_center_db, student, make_printer) -> None:
    printer = make_printer()
    for status, duration in [('completed', 120), ('completed', 30), ('failed', 90), ('pending', 45)]:
        print_center_db.add(
            PrintJob(
                user_id=student.id,
                printer_id=printer.id,
                file_name=f'{status}.stl',
                status=status,
                priority=3,
                credit_cost=5,
                estimated_duration=duration,
            )
        )
    print_center_db.commit()

    assert printer_registry.printer_stats(print_center_db, printer.id) == {
        'printer_id': printer.id,
        'total_jobs': 4,
        'completed_jobs': 2,
        'total_print_minutes': 150,
        'average_duration_minutes': 75,
        'success_rate': 50,
    }


def test_printer_listing_reflects_completion_committed_by_another_session(file_session_factory, file_print_center) -> None:
    setup = file_session_factory()
    admin = setup.get(User, file_print_center['admin_id'])
    student = setup.get(User, file_print_center['student_id'])
    printer_id = file_print_center['printer_id']
    job = job_lifecycle.submit_job(setup, student, printer_id, 'gear_mechanism.stl', 800 * KB)
    job_lifecycle.approve_job(setup, admin, job.id)
    job_lifecycle.start_job(setup, admin, job.id)
    job_id = job.id
    setup.close()

    reader = file_session_factory()
    writer = file_session_factory()
    try:
        [before] = printer_registry.list_printers(reader)
        assert (before.printer.status, before.printer.current_job_id, before.queue_length) == ('printing', job_id, 1)
        assert before.current_job.file_name == 'gear_mechanism.stl'

        job_lifecycle.complete_job(writer, writer.get(User, file_print_center['admin_id']), job_id)

        # The reader still holds the printer and job from its first read.
        for after in (printer_registry.list_printers(reader)[0], printer_registry.describe_printer(reader, printer_id)):
            assert (after.printer.status, after.printer.current_job_id) == ('online', None)
            assert after.queue_length == 0
            assert after.current_job is None
    finally:
        reader.close()
        writer.close()


def test_describe_printer_counts_active_jobs_and_current_job(print_center_db, admin, student, make_printer) -> None:
    printer = make_printer()
    running = job_lifecycle.submit_job(print_center_db, student, printer.id, 'first.stl', 100 * KB)
    job_lifecycle.submit_job(print_center_db, student, printer.id, 'second.stl', 100 * KB)
    job_lifecycle.approve_job(print_center_db, admin, running.id)
    job_lifecycle.start_job(print_center_db, admin, running.id)

    overview = printer_registry.describe_printer(print_center_db, printer.id)

    assert overview.queue_length == 2
    assert overview.current_job.id == running.id

    with pytest.raises(NotFound):
        printer_registry.describe_printer(print_center_db, 999)
