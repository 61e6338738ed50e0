import pytest

from backend.core.exceptions import Conflict, Forbidden, NotFound
from backend.models.enums import UserRole
from backend.services import job_lifecycle, user_directory

KB = 1024


def test_list_users_folds_balance_and_held_credits(print_center_db, admin, student, make_user, make_printer) -> None:
    make_user('piet.student@student.landstede.nl', credits=10, name='Piet Student')
    printer = make_printer()
    job_lifecycle.submit_job(print_center_db, student, printer.id, 'housing.stl', 1500 * KB)

    accounts = user_directory.list_users(print_center_db, admin)

    assert [(account.user.name, account.credits, account.available_credits) for account in accounts] == [
        ('Jan de Student', 50, 35),
        ('Marie Beheerder', 0, 0),
        ('Piet Student', 10, 10),
    ]


def test_list_users_filters_by_role(print_center_db, admin, student) -> None:
    accounts = user_directory.list_users(print_center_db, admin, role=UserRole.ADMIN)

    assert [account.user.id for account in accounts] == [admin.id]


def test_list_users_requires_admin(print_center_db, student) -> None:
    with pytest.raises(Forbidden):
        user_directory.list_users(print_center_db, student)


def test_deactivate_and_reactivate_toggle_account(print_center_db, admin, student) -> None:
    deactivated = user_directory.deactivate_user(print_center_db, admin, student.id)
    assert deactivated.is_active is False

    reactivated = user_directory.reactivate_user(print_center_db, admin, student.id)
    assert reactivated.is_active is True


def test_deactivate_guards(print_center_db, admin, student) -> None:
    with pytest.raises(Forbidden):
        user_directory.deactivate_user(print_center_db, student, admin.id)
    with pytest.raises(Conflict):
        user_directory.deactivate_user(print_center_db, admin, admin.id)
    with pytest.raises(NotFound):
        user_directory.deactivate_user(print_center_db, admin, 999)

    assert admin.is_active is True
