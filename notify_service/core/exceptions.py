"""Application exceptions rendered as RFC 7807 problem details.

Each subclass pins an HTTP status, a default problem ``type`` and a title.
Raise sites pass the human-readable ``detail`` and, optionally, a more
specific ``type`` plus ``extra`` members that are merged into the response
body::

    raise ValidationException(
        detail="Unknown role 'admin'",
        type="invalid-role",
        extra={"role": "admin"},
    )
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, ClassVar


def http_title(status_code: int) -> str:
    """Reason phrase for ``status_code``, or ``"Error"`` for unknown codes."""
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


class AppException(Exception):
    """Base class for every error that should reach the client as a problem.

    Attributes:
        status_code: HTTP status of the response.
        detail: Human-readable explanation of this occurrence.
        type: Problem type identifier.
        title: Short summary of the problem type.
        instance: URI of the occurrence; the request path when unset.
        extra: Extension members for the problem body.
    """

    status_code: ClassVar[int] = 500
    default_type: ClassVar[str] = "about:blank"
    default_title: ClassVar[str | None] = None

    def __init__(
        self,
        detail: str,
        type: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.detail = detail
        self.type = type or self.default_type
        self.title = self.default_title or http_title(self.status_code)
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)


class NotFoundException(AppException):
    status_code = 404
    default_type = "not-found"


class ValidationException(AppException):
    """The request is well-formed but its values are unacceptable."""

    status_code = 422
    default_type = "validation-error"
    default_title = "Validation Error"


class UnauthorizedException(AppException):
    """No caller identity was supplied."""

    status_code = 401
    default_type = "unauthorized"


class ForbiddenException(AppException):
    """The caller is known but may not act on the resource."""

    status_code = 403
    default_type = "forbidden"


class ConfigurationException(AppException):
    """The deployment or tenant configuration cannot serve this operation.

    A missing adapter, missing credentials or a missing localized template
    fail the single operation that hit them, never the process.
    """

    status_code = 500
    default_type = "configuration-error"
    default_title = "Configuration Error"
