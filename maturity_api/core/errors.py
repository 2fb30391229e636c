"""Error envelope and global exception handlers.

Every failure leaves the API as ``{"success": false, "error": ...}`` with
the status code of its class: 400 input, 401 session, 403 domain access,
404 missing entity, 409 conflict, 500 anything unexpected.
"""

import logging
from contextlib import contextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """HTTPException that carries extra keys for the error envelope."""

    def __init__(self, status_code: int, detail: str, **payload):
        super().__init__(status_code=status_code, detail=detail)
        self.payload = payload


@contextmanager
def database_errors(db: Session, message: str):
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(message)
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, message) from exc


def error_body(detail, **payload) -> dict:
    body = {'success': False, 'error': detail if isinstance(detail, str) else str(detail)}
    body.update(payload)
    return body


def format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error['loc'] if part != 'body')
        messages.append(f"{location}: {error['msg']}" if location else error['msg'])
    return '; '.join(messages)


def register_error_handlers(app: FastAPI) -> None:
    """Register the envelope handlers on the FastAPI app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code >= 500:
            logger.error('%s %s failed: %s', request.method, request.url.path, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.detail, **getattr(exc, 'payload', {})),
            headers=getattr(exc, 'headers', None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning('Validation error on %s: %s', request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body('Invalid request data', details=format_validation_errors(exc)),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error('Unhandled exception on %s', request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body('Internal server error'),
        )
