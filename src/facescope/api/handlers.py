"""Exception handlers: every request failure becomes a JSON body with an ``error`` key."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from facescope.api.schemas import ErrorResponse
from facescope.errors import FaceScopeError, MissingImageError

if TYPE_CHECKING:
    from fastapi import FastAPI, Request


def _error_response(exc: FaceScopeError) -> JSONResponse:
    body = ErrorResponse(error=exc.public_message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


async def facescope_error_handler(request: Request, exc: FaceScopeError) -> JSONResponse:
    return _error_response(exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """The only request parameter is the ``image`` file, so any validation failure means it is unusable."""
    return _error_response(MissingImageError())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FaceScopeError, facescope_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
