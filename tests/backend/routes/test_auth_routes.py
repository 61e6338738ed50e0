import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from backend.auth import jwt_handler
from backend.auth.dependencies import get_current_user
from backend.core import config
from backend.routes.auth_routes import me


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_create_access_token_round_trips_subject_and_role() -> None:
    token = jwt_handler.create_access_token(subject='student@landstede.nl', role='student')

    payload = jwt_handler.decode_access_token(token)

    assert payload['sub'] == 'student@landstede.nl'
    assert payload['role'] == 'student'
    assert payload['exp'] > payload['iat']


def test_get_current_user_returns_matching_user(print_center_db, student) -> None:
    token = jwt_handler.create_access_token(subject=student.email.upper())

    user = get_current_user(credentials=_credentials(token), db=print_center_db)

    assert user.id == student.id


def test_get_current_user_rejects_bad_signature(print_center_db, student) -> None:
    token = jwt.encode({'sub': student.email}, 'another-secret', algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_credentials(token), db=print_center_db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_get_current_user_rejects_unknown_user(print_center_db) -> None:
    token = jwt_handler.create_access_token(subject='nobody@landstede.nl')

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_credentials(token), db=print_center_db)

    assert exception_info.value.detail == 'User not found'


def test_get_current_user_rejects_deactivated_user(print_center_db, make_user) -> None:
    user = make_user('oud.student@student.landstede.nl', is_active=False)
    token = jwt_handler.create_access_token(subject=user.email)

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_credentials(token), db=print_center_db)

    assert exception_info.value.detail == 'User account is deactivated'


def test_me_reports_balance_from_ledger(print_center_db, student) -> None:
    response = me(current_user=student, db=print_center_db)

    assert response.email == student.email
    assert response.role == 'student'
    assert response.student_number == '12345678'
    assert response.credits == 50
    assert response.available_credits == 50


def test_validate_runtime_config_rejects_default_secret_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'JWT_SECRET_KEY', 'change-me')

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()
