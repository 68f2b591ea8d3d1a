"""Problem-details (RFC 7807) rendering for every error the API can raise."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from notify_service.core.exceptions import AppException, http_title
from notify_service.core.schemas import FieldError, ProblemDetails, ValidationProblemDetails

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"


def _problem_response(
    request: Request,
    status_code: int,
    detail: str,
    *,
    type_: str,
    title: str | None = None,
    instance: str | None = None,
    extra: dict[str, Any] | None = None,
) -> JSONResponse:
    body = ProblemDetails(
        type=type_,
        title=title or http_title(status_code),
        status=status_code,
        detail=detail,
        instance=instance or request.url.path,
    ).model_dump(exclude_none=True)
    # Extension members never shadow the standard ones
    body.update({k: v for k, v in (extra or {}).items() if k not in body})
    return JSONResponse(status_code=status_code, content=body, media_type=PROBLEM_MEDIA_TYPE)


def _request_fields(request: Request) -> dict[str, Any]:
    return {"path": request.url.path, "method": request.method}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "Request failed: %s",
        exc.detail,
        extra={
            **_request_fields(request),
            "problem_type": exc.type,
            "status_code": exc.status_code,
            "operation": "http.app_exception",
        },
    )
    return _problem_response(
        request,
        exc.status_code,
        exc.detail,
        type_=exc.type,
        title=exc.title,
        instance=exc.instance,
        extra=exc.extra,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """422 with one ``errors`` entry per offending field."""
    errors = [
        FieldError(
            field=".".join(str(part) for part in error["loc"]),
            message=error["msg"],
            type=error["type"],
            value=error.get("input"),
        )
        for error in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        extra={**_request_fields(request), "error_count": len(errors), "operation": "http.validation"},
    )
    problem = ValidationProblemDetails(
        type="validation-error",
        title="Validation Error",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"{len(errors)} request field(s) failed validation",
        instance=request.url.path,
        errors=errors,
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=problem.model_dump(mode="json", exclude_none=True),
        media_type=PROBLEM_MEDIA_TYPE,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error",
        extra={**_request_fields(request), "exception_type": type(exc).__name__, "operation": "http.unhandled"},
        exc_info=exc,
    )
    return _problem_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "The notification service hit an unexpected error",
        type_="internal-error",
    )


def configure_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
