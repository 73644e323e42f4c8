"""Exception handlers: every API failure is answered as ``{code, message}``."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from carnivalsync.dao.base import InvalidCursorError
from carnivalsync.services import AuthenticationError, ServiceError, ValidationError


def error_response(status: int, code: str, message: str, **kwargs) -> JSONResponse:
    return JSONResponse(status_code=status, content={"code": code, "message": message}, **kwargs)


async def _service_error(_request: Request, exc: ServiceError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return error_response(exc.status, exc.code, exc.message or str(exc), headers=headers)


async def _request_validation_error(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    ]
    return error_response(422, ValidationError.code, "; ".join(problems))


async def _invalid_cursor(_request: Request, exc: InvalidCursorError) -> JSONResponse:
    return error_response(422, ValidationError.code, str(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(InvalidCursorError, _invalid_cursor)  # type: ignore[arg-type]
