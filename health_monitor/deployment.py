from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog

from health_monitor.config import MonitorConfig
from health_monitor.health_check import describe_error

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DeploymentOutcome:
    ok: bool
    status_code: int | None = None
    error: str | None = None


async def trigger_deployment(client: httpx.AsyncClient, config: MonitorConfig) -> DeploymentOutcome:
    """Call the deployment URL once.

    The response is only logged. A failed call still counts as an attempted
    remediation, so errors are returned rather than raised.
    """
    logger.info("Calling deployment URL", url=config.deployment_url)
    try:
        resp = await client.get(
            config.deployment_url,
            headers={"User-Agent": config.user_agent},
            timeout=config.deployment_timeout_seconds,
        )
    except Exception as e:
        # Includes httpx.InvalidURL, which is not an httpx.HTTPError.
        err = describe_error(e)
        logger.warning("Error triggering deployment", error=err)
        return DeploymentOutcome(ok=False, error=err)

    if resp.is_success:
        logger.info("Deployment triggered successfully", status_code=resp.status_code)
        return DeploymentOutcome(ok=True, status_code=resp.status_code)

    logger.warning(
        "Deployment trigger failed",
        status_code=resp.status_code,
        reason=resp.reason_phrase,
    )
    return DeploymentOutcome(ok=False, status_code=resp.status_code, error=f"{resp.status_code} {resp.reason_phrase}")
