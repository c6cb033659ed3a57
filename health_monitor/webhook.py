from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlsplit

import httpx


MAX_ERROR_TEXT_LEN = 500


def redact_webhook_url(url: str) -> str:
    """Webhook URLs embed their secret in the path; keep only scheme and host."""
    s = (url or "").strip()
    if not s:
        return s
    try:
        parts = urlsplit(s)
    except ValueError:
        return "<redacted>"
    if not parts.netloc:
        return "<redacted>"
    return f"{parts.scheme}://{parts.netloc}/<redacted>"


def _redact(text: str, url: str) -> str:
    if url:
        text = text.replace(url, redact_webhook_url(url))
    return text


async def send_webhook_message(
    client: httpx.AsyncClient,
    url: str,
    text: str,
    *,
    timeout: float = 15.0,
) -> tuple[bool, dict[str, Any]]:
    """POST ``{"text": text}`` to an incoming webhook.

    Returns ``(ok, info)``. Never raises: non-2xx responses, transport
    errors and malformed URLs come back as ``ok=False`` with the secret
    URL stripped from the error text.
    """
    payload = {"text": text}
    try:
        resp = await client.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
    except Exception as e:
        msg = f"{type(e).__name__}: {e}"
        return False, {"ok": False, "error": _redact(msg, url)}

    if resp.is_success:
        return True, {"ok": True, "status_code": resp.status_code}

    body = (resp.text or "").strip()[:MAX_ERROR_TEXT_LEN]
    return False, {"ok": False, "status_code": resp.status_code, "error": _redact(body, url)}


def format_webhook_response(data: dict[str, Any]) -> str:
    safe: dict[str, Any] = {"ok": data.get("ok")}
    if data.get("status_code") is not None:
        safe["status_code"] = data.get("status_code")
    if data.get("error"):
        safe["error"] = data.get("error")
    return json.dumps(safe, ensure_ascii=False)
