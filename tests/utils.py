"""Shared test helpers: seed data and a stand-in for provider HTTP APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from notify_service.core.models import Tenant, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

TENANT_ID = "store-1"
OWNER_ID = "owner-1"
CUSTOMER_ID = "customer-1"
SENDER_ID = "sender-1"


@dataclass
class _Route:
    fragment: str
    status_code: int
    kwargs: dict[str, Any]


@dataclass
class ProviderStub:
    """Answers outbound provider calls with canned responses and records them.

    Routes match on a substring of the request URL; the first match wins.
    Unmatched requests get a 404 so a missing stub shows up as a failed send.

    Example:
        stub = ProviderStub()
        stub.route("api.line.me", json={"sentMessages": [{"id": "m-1"}]})
        async with stub.client() as client:
            ...
        assert stub.requests[0].url.path == "/v2/bot/message/push"
    """

    requests: list[httpx.Request] = field(default_factory=list)
    _routes: list[_Route] = field(default_factory=list)

    def route(self, fragment: str, status_code: int = 200, **kwargs: Any) -> None:
        self._routes.insert(0, _Route(fragment, status_code, kwargs))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for route in self._routes:
            if route.fragment in str(request.url):
                return httpx.Response(route.status_code, **route.kwargs)
        return httpx.Response(404, json={"error": "no stub for request"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


async def add_rows(session_factory: async_sessionmaker[AsyncSession], *rows: Any) -> None:
    """Insert and commit rows in their own session so every connection sees them."""
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


def platform_rows() -> list[Any]:
    """One tenant, its owner, a fully addressable customer and a bare sender."""
    return [
        Tenant(id=TENANT_ID, name="Sunrise Cafe", owner_id=OWNER_ID, default_locale="en"),
        User(id=OWNER_ID, name="Olivia Owner", email="owner@example.com", locale="en"),
        User(
            id=CUSTOMER_ID,
            name="Casey Customer",
            email="casey@example.com",
            phone_number="0912-345-678",
            locale="en",
            line_user_id="U1234567890",
            telegram_chat_id="987654",
            whatsapp_number="+886912345678",
            push_token="push-token-1",
        ),
        User(id=SENDER_ID, name="System Sender", email=None, locale="en"),
    ]
