"""
app/scheduler/batch.py

Sequential runner for the scheduled KPI recomputation batch.

Each trigger is a named zero-argument coroutine function.  Triggers run in
input order; a failing trigger is recorded and the batch moves on.  Only
one batch runs at a time per runner; an overlapping call is skipped and
reported as such.
"""

from __future__ import annotations

import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.logging_utils import elapsed_ms, log_event

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Any]

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class BatchTrigger:
    name: str
    run: Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class ServiceResult:
    service: str
    status: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"service": self.service, "status": self.status, "error": self.error}


@dataclass(frozen=True)
class BatchSummary:
    """
    Outcome of one batch run.

    ``skipped`` is set when another run was already active; such a summary
    carries no results.
    """

    job_id: str
    started_at: datetime
    completed_at: datetime
    duration_ms: float
    results: list[ServiceResult] = field(default_factory=list)
    skipped: bool = False

    @property
    def total_services(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.status == STATUS_SUCCESS)

    @property
    def failed_count(self) -> int:
        return sum(1 for result in self.results if result.status == STATUS_FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
            "results": [result.to_dict() for result in self.results],
            "total_services": self.total_services,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "skipped": self.skipped,
        }


class CronBatchRunner:
    """
    Runs batches of triggers with an is-running guard.
    """

    def __init__(self) -> None:
        self._running = False
        self._last_summary: BatchSummary | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_summary(self) -> BatchSummary | None:
        return self._last_summary

    async def run_batch(
        self,
        triggers: Sequence[BatchTrigger],
        *,
        job_id: str | None = None,
        started_at: datetime | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchSummary:
        """
        Run every trigger in order and summarise the outcome.

        Parameters
        ----------
        triggers:
            Named coroutine functions, run one after another.
        job_id:
            Identifier used in logs; generated when omitted.
        started_at:
            Nominal start instant (the scheduled fire time); defaults to now.
        on_progress:
            Called with an integer percentage after each trigger.  May be a
            plain function or a coroutine function.
        """
        job_id = job_id or uuid.uuid4().hex[:12]
        started_at = started_at or datetime.now(tz=timezone.utc)

        if self._running:
            logger.warning("Batch %s skipped: a previous batch is still running", job_id)
            now = datetime.now(tz=timezone.utc)
            return BatchSummary(
                job_id=job_id,
                started_at=started_at,
                completed_at=now,
                duration_ms=0.0,
                skipped=True,
            )

        self._running = True
        run_start = time.monotonic()
        results: list[ServiceResult] = []
        total = len(triggers)
        log_event(logger, logging.INFO, "cron_batch_started", job_id=job_id, total_services=total)

        try:
            for index, trigger in enumerate(triggers, start=1):
                try:
                    await trigger.run()
                    results.append(ServiceResult(service=trigger.name, status=STATUS_SUCCESS))
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Batch %s: %s failed: %s", job_id, trigger.name, exc)
                    results.append(
                        ServiceResult(service=trigger.name, status=STATUS_FAILED, error=str(exc))
                    )

                progress = int(index * 100 / total)
                log_event(
                    logger,
                    logging.INFO,
                    "cron_batch_progress",
                    job_id=job_id,
                    service=trigger.name,
                    progress=progress,
                )
                if on_progress is not None:
                    outcome = on_progress(progress)
                    if inspect.isawaitable(outcome):
                        await outcome
        finally:
            self._running = False

        summary = BatchSummary(
            job_id=job_id,
            started_at=started_at,
            completed_at=datetime.now(tz=timezone.utc),
            duration_ms=elapsed_ms(run_start),
            results=results,
        )
        self._last_summary = summary
        log_event(
            logger,
            logging.INFO,
            "cron_batch_completed",
            job_id=job_id,
            duration_ms=summary.duration_ms,
            total_services=summary.total_services,
            success_count=summary.success_count,
            failed_count=summary.failed_count,
        )
        return summary
