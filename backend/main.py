import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.exceptions import PrintCenterError, ValidationError
from backend.database import Base, engine, ensure_print_job_schema, ensure_printer_schema
from backend.models import credit_transaction, print_job, printer, user  # noqa: F401
from backend.routes import auth_routes, credit_routes, job_routes, printer_routes, user_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s [%(levelname)-8s] %(name)s - %(message)s',
)

app = FastAPI(title='Print Center API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.exception_handler(PrintCenterError)
def handle_print_center_error(request: Request, exc: PrintCenterError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    first_error = errors[0] if errors else {}
    field_path = '.'.join(str(part) for part in first_error.get('loc', ()) if part not in ('body', 'query', 'path'))
    message = first_error.get('msg', 'Invalid request.')

    error = ValidationError(f'{field_path}: {message}' if field_path else message, details={'errors': errors})
    return handle_print_center_error(request, error)


@app.exception_handler(SQLAlchemyError)
def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error while handling %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={'error': 'database_unavailable', 'detail': 'Database unavailable. Verify DATABASE_URL.'},
    )


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_printer_schema()
        ensure_print_job_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')


@app.get('/')
def root():
    return {'status': 'Print Center API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(printer_routes.router, prefix='/printers')
app.include_router(job_routes.router, prefix='/jobs')
app.include_router(credit_routes.router, prefix='/credits')
app.include_router(user_routes.router, prefix='/users')
