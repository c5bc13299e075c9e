"""
Shared test configuration and fixtures for PayMcp tests.

Provides a recording fake fetch that routes requests to canned responses, mock OAuth
authorization and resource servers built on it, and credential store fixtures for the memory,
Redis (fakeredis) and SQL (aiosqlite) backends.
"""

from dataclasses import dataclass, field
import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import parse_qsl, urlparse

import fakeredis.aioredis
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from social.graze.paymcp.common.http import FetchResponse
from social.graze.paymcp.model.credentials import create_tables
from social.graze.paymcp.store.memory import MemoryCredentialStore

AUTH_SERVER = "https://auth.paymcp.com"
RESOURCE_SERVER = "https://example.com"


@dataclass
class FetchCall:
    url: str
    method: str
    headers: Dict[str, str]
    data: Any = None
    json: Any = None
    allow_redirects: bool = True

    @property
    def form(self) -> Dict[str, Any]:
        return dict(self.data or {})

    @property
    def query(self) -> Dict[str, str]:
        return dict(parse_qsl(urlparse(self.url).query))


Responder = Union[FetchResponse, Callable[[FetchCall], Any]]


@dataclass
class Route:
    method: str
    url: str
    responder: Responder
    prefix: bool = False
    remaining: Optional[int] = None

    def matches(self, call: FetchCall) -> bool:
        if self.remaining == 0 or self.method != call.method.upper():
            return False
        if self.prefix:
            return call.url.startswith(self.url)
        return call.url == self.url


@dataclass
class FakeFetch:
    """
    Fetch callable answering from registered routes and recording every call.

    Routes match in registration order; a route registered with times=n answers n calls and is
    then skipped. Unrouted requests fail the test.
    """

    routes: List[Route] = field(default_factory=list)
    calls: List[FetchCall] = field(default_factory=list)

    def route(
        self,
        method: str,
        url: str,
        responder: Responder,
        *,
        prefix: bool = False,
        times: Optional[int] = None,
    ) -> "FakeFetch":
        self.routes.append(Route(method.upper(), url, responder, prefix, times))
        return self

    def once(self, method: str, url: str, responder: Responder, **kwargs) -> "FakeFetch":
        return self.route(method, url, responder, times=1, **kwargs)

    async def __call__(
        self,
        url: str,
        method: str = "GET",
        *,
        headers: Optional[Mapping[str, str]] = None,
        data: Any = None,
        json: Any = None,
        allow_redirects: bool = True,
    ) -> FetchResponse:
        call = FetchCall(
            url=url,
            method=method.upper(),
            headers=dict(headers or {}),
            data=data,
            json=json,
            allow_redirects=allow_redirects,
        )
        self.calls.append(call)
        for route in self.routes:
            if not route.matches(call):
                continue
            if route.remaining is not None:
                route.remaining -= 1
            if isinstance(route.responder, FetchResponse):
                return route.responder
            response = route.responder(call)
            if inspect.isawaitable(response):
                response = await response
            return response
        raise AssertionError(f"Unrouted request: {call.method} {url}")

    def calls_to(
        self, url: str, method: Optional[str] = None, prefix: bool = False
    ) -> List[FetchCall]:
        return [
            call
            for call in self.calls
            if (call.url.startswith(url) if prefix else call.url == url)
            and (method is None or call.method == method.upper())
        ]

    def mock_resource_server(
        self,
        base_url: str = RESOURCE_SERVER,
        resource_path: str = "/mcp",
        auth_server_url: str = AUTH_SERVER,
    ) -> "FakeFetch":
        return self.route(
            "GET",
            f"{base_url}/.well-known/oauth-protected-resource{resource_path}",
            FetchResponse.from_json(
                200,
                {
                    "resource": base_url + resource_path,
                    "authorization_servers": [auth_server_url],
                },
            ),
        )

    def mock_authorization_server(
        self,
        base_url: str = AUTH_SERVER,
        introspection: Optional[Dict[str, Any]] = None,
    ) -> "FakeFetch":
        self.route(
            "GET",
            f"{base_url}/.well-known/oauth-authorization-server",
            FetchResponse.from_json(
                200,
                {
                    "issuer": base_url,
                    "authorization_endpoint": f"{base_url}/authorize",
                    "registration_endpoint": f"{base_url}/register",
                    "token_endpoint": f"{base_url}/token",
                    "introspection_endpoint": f"{base_url}/introspect",
                    "response_types_supported": ["code"],
                    "code_challenge_methods_supported": ["S256"],
                },
            ),
        )
        self.route(
            "POST",
            f"{base_url}/register",
            FetchResponse.from_json(
                201, {"client_id": "testClientId", "client_secret": "testClientSecret"}
            ),
        )
        self.route(
            "POST",
            f"{base_url}/token",
            FetchResponse.from_json(
                200,
                {
                    "access_token": "testAccessToken",
                    "refresh_token": "testRefreshToken",
                    "token_type": "Bearer",
                    "expires_in": 3600,
                },
            ),
        )
        self.route(
            "POST",
            f"{base_url}/introspect",
            FetchResponse.from_json(
                200,
                introspection
                or {"active": True, "client_id": "testClientId", "sub": "testUser"},
            ),
        )
        return self


def challenge_response(
    resource_metadata_url: str = f"{RESOURCE_SERVER}/.well-known/oauth-protected-resource/mcp",
    extra: str = "",
) -> FetchResponse:
    """A 401 naming the protected resource metadata in WWW-Authenticate."""
    return FetchResponse.from_json(
        401,
        {},
        headers={"WWW-Authenticate": f'Bearer resource_metadata="{resource_metadata_url}"{extra}'},
    )


@pytest.fixture
def fake_fetch() -> FakeFetch:
    """Provide an empty fake fetch router."""
    return FakeFetch()


@pytest.fixture
def make_challenge():
    """Provide the 401 challenge response factory."""
    return challenge_response


@pytest.fixture
def memory_store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest_asyncio.fixture
async def fake_redis_client():
    """Provide fake Redis client for unit tests."""
    client = fakeredis.aioredis.FakeRedis(decode_responses=False)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def sqlite_engine():
    """Create an in-memory SQLite engine with the credential tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(sqlite_engine):
    return async_sessionmaker(sqlite_engine, class_=AsyncSession, expire_on_commit=False)
