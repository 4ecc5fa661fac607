"""QueueMonitor — read-only health checks over the job store.

Four signals:

  - **backlog**: pending jobs above the warning / critical thresholds
  - **failure_rate**: escalated / (completed + escalated) over a rolling
    window, above the warning / critical thresholds
  - **stalled**: jobs are pending, none are active, and the oldest pending
    job has waited longer than the grace period (warning)
  - **stuck**: an ACTIVE attempt has run longer than the active lease, so
    its worker is likely gone (warning; the next claim reclaims it)

The overall status is the worst severity among the issues found, or
``healthy`` when there are none.  The monitor never changes job state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable

from packet_pipeline import constants
from packet_pipeline.models.job import HealthIssue, HealthReport
from packet_pipeline.queue.queue import Clock, utcnow
from packet_pipeline.queue.store import JobStore

logger = logging.getLogger(__name__)

AlertHandler = Callable[[HealthReport], Awaitable[None]]


@dataclass(frozen=True)
class MonitorThresholds:
    backlog_warning: int = constants.BACKLOG_WARNING
    backlog_critical: int = constants.BACKLOG_CRITICAL
    failure_rate_warning: float = constants.FAILURE_RATE_WARNING
    failure_rate_critical: float = constants.FAILURE_RATE_CRITICAL
    failure_window_seconds: float = constants.FAILURE_WINDOW_SECONDS
    stall_grace_seconds: float = constants.STALL_GRACE_SECONDS
    stuck_active_seconds: float = constants.ACTIVE_LEASE_SECONDS


class QueueMonitor:
    """Periodic or on-demand queue health checks.

    Args:
        store: job store to read from
        thresholds: alerting thresholds
        clock: returns the current time (UTC); injectable for tests
        alert_handler: awaited with every non-healthy report produced by
            the periodic loop
    """

    def __init__(
        self,
        store: JobStore,
        thresholds: MonitorThresholds | None = None,
        *,
        clock: Clock | None = None,
        alert_handler: AlertHandler | None = None,
    ) -> None:
        self._store = store
        self.thresholds = thresholds or MonitorThresholds()
        self._clock = clock or utcnow
        self._alert_handler = alert_handler
        self._task: asyncio.Task | None = None
        self.last_report: HealthReport | None = None

    async def check_health(self) -> HealthReport:
        """Compute the current health report."""
        t = self.thresholds
        now = self._clock()
        stats = await self._store.stats()
        outcomes = await self._store.outcomes_since(
            now - timedelta(seconds=t.failure_window_seconds)
        )
        issues: list[HealthIssue] = []

        # --- Backlog ---
        if stats.pending > t.backlog_critical:
            issues.append(HealthIssue(
                kind="backlog", severity="critical",
                message=f"Queue is backed up: {stats.pending} pending jobs",
            ))
        elif stats.pending > t.backlog_warning:
            issues.append(HealthIssue(
                kind="backlog", severity="warning",
                message=f"Queue backlog growing: {stats.pending} pending jobs",
            ))

        # --- Failure rate ---
        rate = outcomes.failure_rate
        if rate > t.failure_rate_critical:
            issues.append(HealthIssue(
                kind="failure_rate", severity="critical",
                message=f"High failure rate: {rate:.1%} of {outcomes.total} recent jobs",
            ))
        elif rate > t.failure_rate_warning:
            issues.append(HealthIssue(
                kind="failure_rate", severity="warning",
                message=f"Elevated failure rate: {rate:.1%} of {outcomes.total} recent jobs",
            ))

        # --- Stall ---
        if stats.pending > 0 and stats.active == 0 and stats.oldest_pending_at is not None:
            waited = (now - stats.oldest_pending_at).total_seconds()
            if waited > t.stall_grace_seconds:
                issues.append(HealthIssue(
                    kind="stalled", severity="warning",
                    message=(
                        f"Queue may be stalled: {stats.pending} pending, none active, "
                        f"oldest waiting {waited:.0f}s"
                    ),
                ))

        # --- Stuck ---
        if stats.oldest_active_at is not None:
            running = (now - stats.oldest_active_at).total_seconds()
            if running > t.stuck_active_seconds:
                issues.append(HealthIssue(
                    kind="stuck", severity="warning",
                    message=f"Job attempt running for {running:.0f}s; its worker may be gone",
                ))

        if any(i.severity == "critical" for i in issues):
            status = "critical"
        elif issues:
            status = "warning"
        else:
            status = "healthy"

        report = HealthReport(
            status=status, issues=issues, stats=stats, failure_rate=rate, checked_at=now,
        )
        self.last_report = report
        return report

    # ------------------------------------------------------------------
    # Periodic loop
    # ------------------------------------------------------------------

    async def start(self, interval: float = constants.MONITOR_INTERVAL_SECONDS) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(interval), name="queue-monitor")
        logger.info("QueueMonitor started (interval=%.0fs)", interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("QueueMonitor stopped")

    async def _loop(self, interval: float) -> None:
        while True:
            try:
                await self.run_check()
            except Exception:
                logger.exception("Queue health check failed")
            await asyncio.sleep(interval)

    async def run_check(self) -> HealthReport:
        """One monitoring tick: check, log, and alert if unhealthy."""
        report = await self.check_health()
        if report.status == "healthy":
            logger.debug("Queue health: %s", report.summary)
            return report

        log = logger.error if report.status == "critical" else logger.warning
        log("Queue health %s: %s", report.status, report.summary)
        if self._alert_handler is not None:
            try:
                await self._alert_handler(report)
            except Exception:
                logger.exception("Queue alert handler failed")
        return report
