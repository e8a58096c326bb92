from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_ledger.common.exceptions import LedgerError
from clinic_ledger.common.response import ErrorResponse
from clinic_ledger.logger_config import logger


def _phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def register_error_handlers(app: FastAPI):
    @app.exception_handler(LedgerError)
    async def handle_ledger_error(request: Request, exc: LedgerError):
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}: {exc.message}")
        return ErrorResponse.send(message=exc.message, status_code=exc.status_code, error=exc.error)

    # Handle HTTP (e.g. 404, 400)
    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return ErrorResponse.send(
            message=str(exc.detail),
            status_code=exc.status_code,
            error=_phrase(exc.status_code),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = [{k: v for k, v in err.items() if k not in ("ctx", "input")} for err in exc.errors()]
        message = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in errors
        )
        return ErrorResponse.send(
            message=message or "Invalid request",
            status_code=422,
            error="Validation Error",
            errors=errors,
        )

    # Handle all other exceptions (coding, DB errors, etc.)
    @app.exception_handler(Exception)
    async def handle_exception(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return ErrorResponse.send(message="Internal Server Error", status_code=500, error="Internal Server Error")
