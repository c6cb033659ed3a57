"""Polling loop and remediation state for a single health endpoint."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
import structlog

from health_monitor.alerts import WebhookNotifier
from health_monitor.config import MonitorConfig
from health_monitor.deployment import trigger_deployment
from health_monitor.health_check import CheckResult, Failure, HttpFailure, Success, check_health

logger = structlog.get_logger(__name__)


class HealthMonitor:
    """Polls the health endpoint and drives deployment-based remediation.

    State is a single ``remediation_in_progress`` flag. Every poll cycle,
    whether from the regular loop or the post-deployment re-check, runs
    under ``_cycle_lock``, so reading the flag, choosing the alert and
    starting a deployment happen as one step.

    Each deployment opens a numbered episode, and its deferred re-check
    resets the flag only if that episode is still current.
    """

    def __init__(
        self,
        config: MonitorConfig,
        client: httpx.AsyncClient,
        notifier: Optional[WebhookNotifier] = None,
    ):
        self.config = config
        self.client = client
        self.notifier = notifier or WebhookNotifier(client, config)
        self.remediation_in_progress = False
        self.last_result: Optional[CheckResult] = None
        self._episode = 0
        self._cycle_lock = asyncio.Lock()
        self._recheck_task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def recheck_task(self) -> Optional[asyncio.Task]:
        return self._recheck_task

    @property
    def stopping(self) -> bool:
        return self._stopping

    def status(self) -> dict[str, Any]:
        last = self.last_result
        return {
            "remediation_in_progress": self.remediation_in_progress,
            "episodes": self._episode,
            "recheck_pending": self._recheck_task is not None and not self._recheck_task.done(),
            "last_result": type(last).__name__ if last is not None else None,
            "last_check_at": last.request.timestamp if last is not None else None,
        }

    async def run_cycle(self) -> CheckResult:
        """Run one health check and apply its outcome to the remediation state."""
        async with self._cycle_lock:
            return await self._run_cycle_locked()

    async def _run_cycle_locked(self) -> CheckResult:
        logger.info("Checking health endpoint", url=self.config.health_check_url)
        result = await check_health(self.client, self.config)
        self.last_result = result

        if isinstance(result, Success):
            logger.info("Health check successful", status_code=result.status_code)
            # Also clears a flag left behind by an earlier episode.
            self.remediation_in_progress = False
            return result

        if isinstance(result, HttpFailure):
            logger.warning(
                "Health check failed",
                status_code=result.status_code,
                reason=result.reason_phrase,
            )
        else:
            logger.warning("Health check error", error=result.message)

        await self._handle_failure(result)
        return result

    async def _handle_failure(self, result: Failure) -> None:
        if self.remediation_in_progress:
            logger.warning("Service still failing after deployment attempt", episode=self._episode)
            await self.notifier.send_still_failing_alert(result)
            return

        # Set before any await so no other cycle can start a second deployment.
        self.remediation_in_progress = True
        self._episode += 1
        episode = self._episode
        logger.warning("Triggering deployment due to failure", episode=episode)

        try:
            await self.notifier.send_failure_alert(result)
            await trigger_deployment(self.client, self.config)
        finally:
            # Without a re-check nothing would ever reset the flag.
            self._schedule_recheck(episode)

    def _schedule_recheck(self, episode: int) -> None:
        if self._stopping:
            return
        previous = self._recheck_task
        if previous is not None and not previous.done() and previous is not asyncio.current_task():
            previous.cancel()
        logger.info(
            "Waiting for deployment to complete",
            episode=episode,
            delay_seconds=self.config.recheck_delay_seconds,
        )
        self._recheck_task = asyncio.create_task(self._deferred_recheck(episode))

    async def _deferred_recheck(self, episode: int) -> None:
        await asyncio.sleep(self.config.recheck_delay_seconds)
        async with self._cycle_lock:
            logger.info("Checking health after deployment", episode=episode)
            try:
                await self._run_cycle_locked()
            except Exception:
                logger.exception("Post-deployment health check crashed", episode=episode)

            # A re-check that opened a new episode leaves the reset to that episode's re-check.
            if episode == self._episode:
                self.remediation_in_progress = False
                logger.info(
                    "Resuming regular monitoring routine",
                    episode=episode,
                    interval_seconds=self.config.check_interval_seconds,
                )

    async def _safe_cycle(self) -> Optional[CheckResult]:
        try:
            return await self.run_cycle()
        except Exception:
            logger.exception("Health check cycle crashed")
            return None

    async def run(self, *, once: bool = False) -> Optional[CheckResult]:
        """Check immediately, then every ``check_interval_seconds`` until stopped.

        With ``once=True`` a single cycle runs and its result is returned;
        no re-check is awaited.
        """
        if once:
            try:
                return await self._safe_cycle()
            finally:
                self._cancel_recheck()

        self._loop_task = asyncio.current_task()
        loop = asyncio.get_running_loop()
        result: Optional[CheckResult] = None
        try:
            while not self._stopping:
                started = loop.time()
                result = await self._safe_cycle()
                elapsed = loop.time() - started
                sleep_for = max(0.0, self.config.check_interval_seconds - elapsed)
                logger.debug(
                    "Cycle complete",
                    elapsed_seconds=round(elapsed, 3),
                    sleep_seconds=round(sleep_for, 3),
                    **self.status(),
                )
                await asyncio.sleep(sleep_for)
        except asyncio.CancelledError:
            if not self._stopping:
                raise
        finally:
            self._loop_task = None
            self._cancel_recheck()
        return result

    def _cancel_recheck(self) -> None:
        task = self._recheck_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def stop(self, reason: str = "stop requested") -> bool:
        """Cancel the polling loop and any pending re-check.

        Safe to call repeatedly; only the first call has an effect.
        In-flight requests are abandoned.
        """
        if self._stopping:
            return False
        self._stopping = True
        logger.info("Health monitor stopping", reason=reason)
        self._cancel_recheck()
        task = self._loop_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        return True
