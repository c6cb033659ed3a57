from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

import httpx

from health_monitor.config import MonitorConfig


ACCEPT_HEADER = "application/json, text/plain, */*"
UNREADABLE_BODY = "Unable to read response body"
EMPTY_BODY = "Empty response body"


@dataclass(frozen=True)
class CheckRequest:
    url: str
    method: str
    headers: dict[str, str]
    timestamp: str


@dataclass(frozen=True)
class ResponseBody:
    # None means the body could not be read.
    text: str | None

    @property
    def readable(self) -> bool:
        return self.text is not None

    def display(self) -> str:
        if self.text is None:
            return UNREADABLE_BODY
        return self.text or EMPTY_BODY


@dataclass(frozen=True)
class Success:
    request: CheckRequest
    status_code: int

    ok = True


@dataclass(frozen=True)
class HttpFailure:
    request: CheckRequest
    status_code: int
    reason_phrase: str
    body: ResponseBody
    headers: dict[str, str] = field(default_factory=dict)

    ok = False


@dataclass(frozen=True)
class NetworkFailure:
    request: CheckRequest
    message: str

    ok = False


CheckResult = Union[Success, HttpFailure, NetworkFailure]
Failure = Union[HttpFailure, NetworkFailure]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_check_request(config: MonitorConfig) -> CheckRequest:
    return CheckRequest(
        url=config.health_check_url,
        method="GET",
        headers={
            "User-Agent": config.user_agent,
            "Accept": ACCEPT_HEADER,
        },
        timestamp=utc_timestamp(),
    )


def describe_error(exc: BaseException) -> str:
    msg = str(exc).strip()
    name = type(exc).__name__
    return f"{name}: {msg}" if msg else name


async def read_body(resp: httpx.Response) -> ResponseBody:
    """Best-effort body read; decoding or stream errors yield an unreadable body."""
    try:
        await resp.aread()
        return ResponseBody(text=resp.text)
    except (httpx.HTTPError, httpx.StreamError, UnicodeDecodeError, LookupError):
        return ResponseBody(text=None)


async def check_health(client: httpx.AsyncClient, config: MonitorConfig) -> CheckResult:
    """Issue one health check request and classify the outcome.

    Only HTTP 200 counts as healthy. Transport errors, timeouts and
    malformed URLs become ``NetworkFailure``; they are never raised.
    """
    request = build_check_request(config)
    try:
        http_request = client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            timeout=config.health_check_timeout_seconds,
        )
        resp = await client.send(http_request, stream=True, follow_redirects=False)
    except (httpx.RequestError, httpx.InvalidURL, ValueError) as e:
        return NetworkFailure(request=request, message=describe_error(e))

    try:
        if resp.status_code == 200:
            return Success(request=request, status_code=resp.status_code)

        body = await read_body(resp)
        return HttpFailure(
            request=request,
            status_code=resp.status_code,
            reason_phrase=resp.reason_phrase or "",
            body=body,
            headers={k: v for k, v in resp.headers.items()},
        )
    finally:
        await resp.aclose()
