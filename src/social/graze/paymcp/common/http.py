"""HTTP transport used by every PayMcp caller.

All outbound requests go through a Fetch callable so that the embedding application chooses the
transport (and tests can route requests without a network). Responses are buffered into a
FetchResponse so they can be inspected more than once.
"""

from dataclasses import dataclass
import json
import logging
from typing import Any, Mapping, Optional, Protocol
from urllib.parse import urlparse

from aiohttp import ClientResponse, ClientSession, hdrs
from multidict import CIMultiDict, CIMultiDictProxy

logger = logging.getLogger(__name__)


def trim_to_path(url: str) -> str:
    """Return the origin and path of url, dropping query and fragment."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        if not url.startswith("http://") and not url.startswith("https://"):
            return f"https://{url}"
        raise ValueError(f"Invalid URL: {url}")
    return f"{parsed.scheme}://{parsed.netloc.lower()}{parsed.path or '/'}"


def url_origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc.lower()}"


@dataclass
class FetchResponse:
    status: int
    headers: CIMultiDictProxy[str]
    body: bytes = b""
    reason: str = ""

    @staticmethod
    async def from_aiohttp_response(response: ClientResponse) -> "FetchResponse":
        return FetchResponse(
            status=response.status,
            headers=CIMultiDictProxy(CIMultiDict(response.headers)),
            body=await response.read(),
            reason=response.reason or "",
        )

    @staticmethod
    def from_json(
        status: int, data: Any, headers: Optional[Mapping[str, str]] = None
    ) -> "FetchResponse":
        merged = CIMultiDict({hdrs.CONTENT_TYPE: "application/json"})
        merged.update(headers or {})
        return FetchResponse(
            status=status,
            headers=CIMultiDictProxy(merged),
            body=json.dumps(data).encode("utf-8"),
        )

    @staticmethod
    def from_text(
        status: int, text: str = "", headers: Optional[Mapping[str, str]] = None
    ) -> "FetchResponse":
        merged = CIMultiDict({hdrs.CONTENT_TYPE: "text/plain"})
        merged.update(headers or {})
        return FetchResponse(
            status=status,
            headers=CIMultiDictProxy(merged),
            body=text.encode("utf-8"),
        )

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


class Fetch(Protocol):
    """Callable performing one HTTP request and returning the buffered response."""

    async def __call__(
        self,
        url: str,
        method: str = "GET",
        *,
        headers: Optional[Mapping[str, str]] = None,
        data: Any = None,
        json: Any = None,
        allow_redirects: bool = True,
    ) -> FetchResponse: ...


class SessionFetch:
    """Fetch implementation backed by a shared aiohttp ClientSession."""

    def __init__(self, session: ClientSession):
        self.session = session

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
        logger.debug("%s %s", method, url)
        async with self.session.request(
            method,
            url,
            headers=dict(headers or {}),
            data=data,
            json=json,
            allow_redirects=allow_redirects,
        ) as response:
            fetch_response = await FetchResponse.from_aiohttp_response(response)
        logger.debug("%s %s -> %s", method, url, fetch_response.status)
        return fetch_response
