"""Alert messages for failed health checks and their delivery."""

from __future__ import annotations

from enum import Enum

import httpx
import structlog

from health_monitor.config import MonitorConfig
from health_monitor.health_check import CheckRequest, Failure, NetworkFailure, utc_timestamp
from health_monitor.webhook import format_webhook_response, send_webhook_message

logger = structlog.get_logger(__name__)


MAX_BODY_CHARS = 3000

FAILURE_TRAILER = "🚀 *Auto-deployment will be triggered*"
STILL_FAILING_TRAILER = "⚠️ *Action Required:* Manual intervention may be needed."


class AlertKind(str, Enum):
    INITIAL_FAILURE = "initial-failure"
    STILL_FAILING = "still-failing"


def _truncate(text: str, limit: int = MAX_BODY_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [truncated {len(text) - limit} chars]"


def _code_block(text: str) -> list[str]:
    return ["```", _truncate(text), "```"]


def _format_headers(title: str, headers: dict[str, str]) -> list[str]:
    lines = [f"*{title}:*"]
    lines.extend(f"{key}: {value}" for key, value in headers.items())
    return lines


def _header_lines(request: CheckRequest, environment: str) -> list[str]:
    return [
        f"*Endpoint:* {request.url}",
        f"*Method:* {request.method}",
        f"*Environment:* {environment}",
    ]


def build_failure_alert(result: Failure, *, environment: str, service_name: str, timestamp: str | None = None) -> str:
    """Initial alert, sent once when a remediation episode starts."""
    env = environment.upper()
    ts = timestamp or utc_timestamp()
    lines = [f"🚨 *{service_name} Health Check FAILED* [{env}]", ""]
    lines.extend(_header_lines(result.request, env))

    if isinstance(result, NetworkFailure):
        lines.append(f"*Time:* {ts}")
        lines.append("*Error:* Network/Connection Error")
        lines.append("")
        lines.extend(_format_headers("Request Headers", result.request.headers))
        lines.append("")
        lines.append("*Error Details:*")
        lines.extend(_code_block(result.message))
    else:
        lines.append(f"*Status Code:* {result.status_code} {result.reason_phrase}".rstrip())
        lines.append(f"*Time:* {ts}")
        lines.append("")
        lines.extend(_format_headers("Request Headers", result.request.headers))
        lines.append("")
        lines.append("*Response Body:*")
        lines.extend(_code_block(result.body.display()))
        if result.headers:
            lines.append("")
            lines.extend(_format_headers("Response Headers", result.headers))

    lines.append("")
    lines.append(FAILURE_TRAILER)
    return "\n".join(lines)


def build_still_failing_alert(
    result: Failure, *, environment: str, service_name: str, timestamp: str | None = None
) -> str:
    """Follow-up alert while a deployment was already attempted."""
    env = environment.upper()
    ts = timestamp or utc_timestamp()
    lines = [f"🚨 *{service_name} Still Down After Deployment* [{env}]", ""]
    lines.extend(_header_lines(result.request, env))

    if isinstance(result, NetworkFailure):
        lines.append(f"*Time:* {ts}")
        lines.append("*Status:* Deployment attempted but service still failing")
        lines.append("*Error:* Network/Connection Error")
        lines.append("")
        lines.append("*Error Details:*")
        lines.extend(_code_block(result.message))
    else:
        lines.append(f"*Status Code:* {result.status_code} {result.reason_phrase}".rstrip())
        lines.append(f"*Time:* {ts}")
        lines.append("*Status:* Deployment attempted but service still failing")
        lines.append("")
        lines.append("*Response Body:*")
        lines.extend(_code_block(result.body.display()))

    lines.append("")
    lines.append(STILL_FAILING_TRAILER)
    return "\n".join(lines)


class WebhookNotifier:
    """Formats failure alerts and delivers them to the configured webhook.

    Delivery problems are logged and reported through the return value;
    they are never raised to the caller and never retried.
    """

    def __init__(self, client: httpx.AsyncClient, config: MonitorConfig):
        self.client = client
        self.config = config

    async def send_failure_alert(self, result: Failure) -> bool:
        text = build_failure_alert(
            result,
            environment=self.config.environment,
            service_name=self.config.service_name,
        )
        return await self._deliver(AlertKind.INITIAL_FAILURE, text)

    async def send_still_failing_alert(self, result: Failure) -> bool:
        text = build_still_failing_alert(
            result,
            environment=self.config.environment,
            service_name=self.config.service_name,
        )
        return await self._deliver(AlertKind.STILL_FAILING, text)

    async def _deliver(self, kind: AlertKind, text: str) -> bool:
        ok, resp = await send_webhook_message(
            self.client,
            self.config.webhook_url,
            text,
            timeout=self.config.webhook_timeout_seconds,
        )
        if ok:
            logger.info("Webhook alert sent", alert=kind.value)
        else:
            logger.error(
                "Failed to send webhook alert",
                alert=kind.value,
                response=format_webhook_response(resp),
            )
        return ok
