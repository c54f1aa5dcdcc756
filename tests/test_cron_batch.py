"""
tests/test_cron_batch.py

Pytest tests for the batch runner and the scheduled KPI job.

Coverage
--------
- Triggers run in order; failures recorded, batch continues
- Integer progress after each trigger (sync and async callbacks)
- Overlapping run skipped while one is active
- build_triggers: one per tenant and KPI
- A trigger whose periods all lack data succeeds
- A trigger whose source fails is recorded as failed
- run_kpi_batch summary and last_summary
- build_scheduler registers the cron job
"""

from __future__ import annotations

import asyncio

from apscheduler.triggers.cron import CronTrigger

from app.config import SchedulerSettings
from app.domain.records import RecordKind
from app.scheduler.batch import STATUS_FAILED, STATUS_SUCCESS, BatchTrigger, CronBatchRunner
from app.scheduler.jobs import BATCH_JOB_ID, build_scheduler, build_triggers, run_kpi_batch
from app.services.registry import build_services
from app.tenancy.loader import TenantDirectory
from conftest import FakeRecordSource, booking
from kpi.registry import FORMULA_REGISTRY


def _services(tenant, source, store, clock):
    return build_services(
        tenants=TenantDirectory([tenant]),
        sources=lambda t: source,
        session_factory=store,
        clock=clock,
    )


def _trigger(name: str, order: list, fail: bool = False) -> BatchTrigger:
    async def run() -> None:
        order.append(name)
        if fail:
            raise RuntimeError(f"{name} exploded")

    return BatchTrigger(name=name, run=run)


class TestCronBatchRunner:
    def test_failures_are_recorded_and_batch_continues(self) -> None:
        order: list = []
        progress: list = []
        runner = CronBatchRunner()
        triggers = [_trigger("a", order), _trigger("b", order, fail=True), _trigger("c", order)]

        summary = asyncio.run(runner.run_batch(triggers, job_id="job-1", on_progress=progress.append))

        assert order == ["a", "b", "c"]
        assert progress == [33, 66, 100]
        assert (summary.total_services, summary.success_count, summary.failed_count) == (3, 2, 1)
        assert summary.results[1].status == STATUS_FAILED
        assert summary.results[1].error == "b exploded"
        assert summary.results[0].status == STATUS_SUCCESS
        assert summary.completed_at >= summary.started_at
        assert runner.last_summary is summary
        assert runner.is_running is False

    def test_async_progress_callback(self) -> None:
        seen: list = []

        async def report(value: int) -> None:
            seen.append(value)

        asyncio.run(CronBatchRunner().run_batch([_trigger("a", []), _trigger("b", [])], on_progress=report))
        assert seen == [50, 100]

    def test_overlapping_run_is_skipped(self) -> None:
        runner = CronBatchRunner()

        async def scenario():
            gate = asyncio.Event()

            async def slow() -> None:
                await gate.wait()

            first = asyncio.ensure_future(runner.run_batch([BatchTrigger("slow", slow)]))
            await asyncio.sleep(0)
            second = await runner.run_batch([_trigger("other", [])])
            gate.set()
            return await first, second

        first, second = asyncio.run(scenario())
        assert second.skipped is True
        assert second.total_services == 0
        assert first.skipped is False
        assert first.success_count == 1

    def test_empty_batch(self) -> None:
        summary = asyncio.run(CronBatchRunner().run_batch([]))
        assert summary.total_services == 0
        assert summary.to_dict()["skipped"] is False


class TestKpiBatchJob:
    def test_one_trigger_per_tenant_and_kpi(self, tenant, reporting_store, fixed_clock) -> None:
        services = _services(tenant, FakeRecordSource(), reporting_store, fixed_clock)
        triggers = build_triggers(services)
        assert len(triggers) == len(FORMULA_REGISTRY)
        assert triggers[0].name == f"test:{next(iter(FORMULA_REGISTRY))}"

    def test_no_data_periods_do_not_fail_the_trigger(self, tenant, reporting_store, fixed_clock) -> None:
        services = _services(tenant, FakeRecordSource(), reporting_store, fixed_clock)
        summary = asyncio.run(
            services.batch_runner.run_batch(build_triggers(services, kpis=["bookings_revenue"]))
        )
        assert summary.success_count == 1

    def test_recompute_persists_rows(self, tenant, reporting_store, fixed_clock) -> None:
        source = FakeRecordSource({RecordKind.BOOKINGS: [booking(1, "100", 14)]})
        services = _services(tenant, source, reporting_store, fixed_clock)

        async def scenario():
            await services.batch_runner.run_batch(build_triggers(services, kpis=["bookings_revenue"]))
            return await services.orchestrator.snapshots(
                tenant="test", kpi="bookings_revenue", period="LAST_7_D"
            )

        stored = asyncio.run(scenario())
        assert len(stored) == 1
        assert stored[0].period == "LAST_7_D"

    def test_source_failure_fails_the_trigger(self, tenant, reporting_store, fixed_clock) -> None:
        source = FakeRecordSource(error=RuntimeError("operational store down"))
        services = _services(tenant, source, reporting_store, fixed_clock)
        summary = asyncio.run(
            services.batch_runner.run_batch(build_triggers(services, kpis=["revenue"]))
        )
        assert summary.failed_count == 1
        assert "operational store down" in summary.results[0].error

    def test_run_kpi_batch(self, tenant, reporting_store, fixed_clock) -> None:
        services = _services(tenant, FakeRecordSource(), reporting_store, fixed_clock)
        summary = asyncio.run(run_kpi_batch(services))
        assert summary.total_services == len(FORMULA_REGISTRY)
        assert summary.failed_count == 0
        assert services.batch_runner.last_summary is summary

    def test_build_scheduler_registers_job(self, tenant, reporting_store, fixed_clock) -> None:
        services = _services(tenant, FakeRecordSource(), reporting_store, fixed_clock)
        settings = SchedulerSettings(hours=(0, 6, 16), minute=15, timezone="UTC")
        scheduler = build_scheduler(services, settings)

        job = scheduler.get_job(BATCH_JOB_ID)
        assert job is not None
        assert isinstance(job.trigger, CronTrigger)
        assert job.args == (services,)
        assert job.max_instances == 1
        fields = {field.name: str(field) for field in job.trigger.fields}
        assert fields["hour"] == "0,6,16"
        assert fields["minute"] == "15"
