import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models.credit_transaction import CreditTransaction  # noqa: E402
from backend.models.enums import PrinterStatus, TransactionType, UserRole  # noqa: E402
from backend.models.print_job import PrintJob  # noqa: E402
from backend.models.printer import Printer  # noqa: E402
from backend.models.user import User  # noqa: E402

TABLES = [User.__table__, Printer.__table__, PrintJob.__table__, CreditTransaction.__table__]


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine, tables=TABLES)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))
        engine.dispose()


@pytest.fixture
def print_center_db(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(print_center_db):
    def _make_user(email: str, role: UserRole = UserRole.STUDENT, credits: int = 0, **fields) -> User:
        user = User(email=email, name=fields.pop('name', email.split('@')[0]), role=role.value, **fields)
        print_center_db.add(user)
        print_center_db.flush()
        if credits:
            print_center_db.add(
                CreditTransaction(
                    user_id=user.id,
                    amount=credits,
                    type=TransactionType.PURCHASE.value,
                    description='Starting credits',
                )
            )
        print_center_db.commit()
        print_center_db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_printer(print_center_db):
    def _make_printer(name: str = 'Bambu Lab X1C #1', status: PrinterStatus = PrinterStatus.ONLINE, **fields) -> Printer:
        printer = Printer(
            name=name,
            brand=fields.pop('brand', 'Bambu Lab X1C'),
            status=status.value,
            location=fields.pop('location', 'Lab A - Werkplaats 1'),
            **fields,
        )
        print_center_db.add(printer)
        print_center_db.commit()
        print_center_db.refresh(printer)
        return printer

    return _make_printer


@pytest.fixture
def admin(make_user) -> User:
    return make_user('marie.admin@landstede.nl', role=UserRole.ADMIN, name='Marie Beheerder')


@pytest.fixture
def student(make_user) -> User:
    return make_user('jan.student@student.landstede.nl', credits=50, name='Jan de Student', student_number='12345678')


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a file-backed database, each with its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'print_center.db'}",
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    Base.metadata.create_all(bind=engine, tables=TABLES)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def file_print_center(file_session_factory) -> dict:
    db = file_session_factory()
    try:
        admin = User(email='marie.admin@landstede.nl', name='Marie Beheerder', role=UserRole.ADMIN.value)
        student = User(email='jan.student@student.landstede.nl', name='Jan de Student', role=UserRole.STUDENT.value)
        printer = Printer(name='Bambu Lab X1C #1', brand='Bambu Lab X1C', status=PrinterStatus.ONLINE.value)
        db.add_all([admin, student, printer])
        db.flush()
        db.add(
            CreditTransaction(
                user_id=student.id,
                amount=100,
                type=TransactionType.PURCHASE.value,
                description='Starting credits',
            )
        )
        db.commit()
        return {'admin_id': admin.id, 'student_id': student.id, 'printer_id': printer.id}
    finally:
        db.close()
