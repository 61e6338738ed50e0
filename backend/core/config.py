import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./print_center.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:3000"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

ALLOWED_FILE_EXTENSIONS = (".stl", ".gcode")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
MAX_JOB_NOTES_LENGTH = 600

MIN_JOB_CREDIT_COST = 5
MAX_JOB_CREDIT_COST = 50
MIN_JOB_DURATION_MINUTES = 30
MAX_JOB_DURATION_MINUTES = 480
DEFAULT_JOB_DURATION_MINUTES = int(os.getenv("DEFAULT_JOB_DURATION_MINUTES", "60"))

MIN_JOB_PRIORITY = 1
MAX_JOB_PRIORITY = 10
DEFAULT_JOB_PRIORITY = int(os.getenv("DEFAULT_JOB_PRIORITY", "3"))

CREDIT_PACKAGES = {
    "starter": 25,
    "standard": 50,
    "premium": 100,
}

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not MIN_JOB_PRIORITY <= DEFAULT_JOB_PRIORITY <= MAX_JOB_PRIORITY:
        raise RuntimeError(
            f"DEFAULT_JOB_PRIORITY must be between {MIN_JOB_PRIORITY} and {MAX_JOB_PRIORITY}."
        )
