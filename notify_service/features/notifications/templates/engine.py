"""Token substitution over localized templates.

Templates use a deliberately small grammar, ``{{dotted.path}}``, rather than
Jinja: tenant administrators author them and they are rendered for SMS and
chat channels where markup means nothing. Unresolved tokens are left in the
output verbatim so a broken template is visible instead of silently blank.
"""

from __future__ import annotations

import html
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from notify_service.core.services.base import BaseService
from notify_service.core.settings import get_notification_settings
from notify_service.features.notifications.exceptions import TemplateNotFoundError
from notify_service.features.notifications.repository import (
    RecipientRepository,
    SystemSettingsRepository,
    TemplateRepository,
    get_recipient_repository,
    get_system_settings_repository,
    get_template_repository,
)

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

TOKEN_PATTERN = re.compile(r"\{\{(\w+(?:\.\w+)*)\}\}")
LOCALE_PATTERN = re.compile(r"^[a-z]{2}(?:[-_][A-Za-z]{2,4})?$")

_ANY_TOKEN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_TOKEN_BODY = re.compile(r"^\w+(?:\.\w+)*$")
_TAG = re.compile(r"<[^>]+>")
_BLOCK_BREAK = re.compile(r"<\s*(?:br|/p|/div|/li|/h\d)\s*/?>", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

_MISSING = object()

_COMMON_VARIABLES = ("user.id", "user.name", "user.email", "store.id", "store.name")
_TEMPLATE_VARIABLES: dict[str, tuple[str, ...]] = {
    "email": _COMMON_VARIABLES
    + ("order.id", "order.total", "reservation.id", "reservation.date", "reservation.time", "action_url"),
    "onsite": _COMMON_VARIABLES
    + ("order.id", "order.total", "reservation.id", "reservation.date", "action_url"),
    "sms": ("user.name", "store.name", "order.id", "reservation.date", "reservation.time"),
    "line": _COMMON_VARIABLES + ("order.id", "reservation.date", "reservation.time", "action_url"),
    "push": ("user.name", "store.name", "order.id", "reservation.date"),
}


@dataclass(frozen=True, slots=True)
class RenderedTemplate:
    subject: str
    body: str
    text_body: str
    locale: str


@dataclass(frozen=True, slots=True)
class TemplateValidation:
    valid: bool
    errors: tuple[str, ...] = ()


def _lookup(variables: Mapping[str, Any], path: str) -> Any:
    current: Any = variables
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        else:
            current = getattr(current, part, _MISSING)
        if current is _MISSING or current is None:
            return _MISSING
    return current


def render_string(text: str, variables: Mapping[str, Any]) -> str:
    """Substitute ``{{dotted.path}}`` tokens; unresolved ones are kept as-is.

    >>> render_string("Hello {{user.name}}, order {{order.id}}", {"user": {"name": "Amy"}})
    'Hello Amy, order {{order.id}}'
    """

    def _replace(match: re.Match[str]) -> str:
        value = _lookup(variables, match.group(1))
        return match.group(0) if value is _MISSING else str(value)

    return TOKEN_PATTERN.sub(_replace, text)


def strip_html(text: str) -> str:
    """Plain-text rendition: tags removed, entities decoded, whitespace collapsed."""
    text = _BLOCK_BREAK.sub(" ", text)
    text = _TAG.sub("", text)
    return _WHITESPACE.sub(" ", html.unescape(text)).strip()


def validate_template(text: str) -> TemplateValidation:
    """Check brace balance and token grammar without touching the database."""
    errors: list[str] = []
    opened, closed = text.count("{{"), text.count("}}")
    if opened != closed:
        errors.append(f"Unbalanced braces: {opened} '{{{{' vs {closed} '}}}}'")
    for match in _ANY_TOKEN.finditer(text):
        token = match.group(1)
        if not _TOKEN_BODY.match(token):
            errors.append(f"Invalid token '{{{{{token}}}}}' at position {match.start()}")
    return TemplateValidation(valid=not errors, errors=tuple(errors))


def get_available_variables(template_type: str) -> list[str]:
    return list(_TEMPLATE_VARIABLES.get(template_type, _COMMON_VARIABLES))


class TemplateEngine(BaseService):
    """Renders the active localized variant of a stored template."""

    def __init__(
        self,
        template_repository: TemplateRepository | None = None,
        recipient_repository: RecipientRepository | None = None,
        system_settings_repository: SystemSettingsRepository | None = None,
        default_locale: str | None = None,
    ) -> None:
        super().__init__()
        self._templates = template_repository or get_template_repository()
        self._recipients = recipient_repository or get_recipient_repository()
        self._system_settings = system_settings_repository or get_system_settings_repository()
        self._default_locale = default_locale or get_notification_settings().default_locale

    render_string = staticmethod(render_string)
    strip_html = staticmethod(strip_html)
    validate_template = staticmethod(validate_template)
    get_available_variables = staticmethod(get_available_variables)

    async def resolve_locale(self, session: AsyncSession, user_id_or_locale: str) -> str:
        """A known user id resolves to that user's locale; locale codes pass through.

        Users are looked up first, so an id such as ``"jo"`` that happens to
        look like a locale code still gets its owner's locale.
        """
        user = await self._recipients.get(session, user_id_or_locale)
        if user is not None:
            if user.locale:
                return user.locale
        elif LOCALE_PATTERN.match(user_id_or_locale):
            return user_id_or_locale
        system = await self._system_settings.get_current(session)
        if system is not None and system.default_locale:
            return system.default_locale
        return self._default_locale

    async def render(
        self,
        session: AsyncSession,
        template_id: UUID,
        user_id_or_locale: str,
        variables: Mapping[str, Any],
    ) -> RenderedTemplate:
        """Render subject and body for the resolved locale.

        There is no fallback to another locale when the variant is missing.

        Raises:
            TemplateNotFoundError: If no active variant exists for the locale.
        """
        locale = await self.resolve_locale(session, user_id_or_locale)
        variant = await self._templates.get_active_variant(session, template_id, locale)
        if variant is None:
            self.logger.warning(
                "No active template variant",
                extra={"template_id": str(template_id), "locale": locale, "operation": "template.render"},
            )
            raise TemplateNotFoundError(template_id, locale)

        subject = render_string(variant.subject, variables)
        body = render_string(variant.body, variables)
        self._lazy.debug(lambda: f"template.render({template_id}, {locale}) -> {len(body)} chars")
        return RenderedTemplate(subject=subject, body=body, text_body=strip_html(body), locale=locale)
