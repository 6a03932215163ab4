"""Sequential resolve, publish and trigger flow for one bridge run."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal, Protocol, TypeAlias

from jobbridge.core.errors import BridgeError
from jobbridge.core.publisher import CommitStatusSink, StatusPublisher
from jobbridge.core.resolver import JobResolver, PipelineSource
from jobbridge.core.status import translate_build_status
from jobbridge.core.trigger import JobTrigger, TriggerBackend
from jobbridge.host.client import HostError
from jobbridge.models.config import BridgeConfig
from jobbridge.models.pipeline import HostStatus, ResolvedTarget

Stage: TypeAlias = Literal["resolve", "translate", "publish", "trigger"]

logger = logging.getLogger(__name__)


class HostBackend(PipelineSource, CommitStatusSink, TriggerBackend, Protocol):
    """Host capabilities used by a full run."""


@dataclass(slots=True)
class StageEvent:
    """Outcome of one stage within a run."""

    stage: Stage
    success: bool
    detail: str
    timestamp: datetime


@dataclass(slots=True)
class RunReport:
    """Everything a run decided and did, in order."""

    status: HostStatus | None = None
    target: ResolvedTarget | None = None
    published: bool = False
    triggered: bool = False
    events: list[StageEvent] = field(default_factory=list)

    def stages(self) -> list[Stage]:
        return [event.stage for event in self.events]


class BridgeRunner:
    """Run resolve -> translate -> publish -> (maybe) trigger, strictly in order."""

    def __init__(
        self,
        config: BridgeConfig,
        backend: HostBackend,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._resolver = JobResolver(backend, playable_policy=config.playable_policy)
        self._publisher = StatusPublisher(backend, name=config.status_name)
        self._trigger = JobTrigger(backend, config.trigger_variables())
        self._clock = clock or (lambda: datetime.now(UTC))
        self._in_flight: Stage | None = None
        self.report = RunReport()

    async def run(self) -> RunReport:
        self.report = RunReport()
        try:
            async with asyncio.timeout(self._config.run_timeout):
                await self._run_stages()
        except TimeoutError as exc:
            raise self._deadline_error() from exc
        return self.report

    async def _run_stages(self) -> None:
        config = self._config
        target: ResolvedTarget | None = None
        if config.trigger_mode == "job":
            target = await self._resolve()

        status = self._translate()
        await self._publish(status, target)

        if status is not HostStatus.SUCCESS or not config.trigger_on_success:
            self._record("trigger", True, f"skipped: status is {status.value}")
            logger.info("Not triggering: status is %s", status.value)
            return
        await self._run_trigger(target)

    async def _resolve(self) -> ResolvedTarget:
        async with self._stage("resolve"):
            ctx = self._config.selection_context()
            target = await self._resolver.resolve(ctx, self._config.job_name)
        self.report.target = target
        self._record(
            "resolve",
            True,
            f"job {target.job_id} in pipeline {target.pipeline_numeric_id}",
        )
        return target

    def _translate(self) -> HostStatus:
        status = translate_build_status(self._config.build_status)
        self.report.status = status
        self._record("translate", True, f"{self._config.build_status!r} -> {status.value}")
        return status

    async def _publish(self, status: HostStatus, target: ResolvedTarget | None) -> None:
        config = self._config
        pipeline_id = target.pipeline_numeric_id if target is not None else None
        try:
            async with self._stage("publish"):
                await self._publisher.publish(
                    config.project_path,
                    pipeline_id,
                    config.commit_sha or "",
                    status,
                    config.build_url,
                )
        except asyncio.CancelledError:
            logger.error(
                "Status publish for %s@%s was cancelled; outcome unknown",
                config.project_path,
                config.commit_sha,
            )
            raise
        self.report.published = True
        self._record("publish", True, f"{status.value} on {config.commit_sha}")

    async def _run_trigger(self, target: ResolvedTarget | None) -> None:
        config = self._config
        async with self._stage("trigger"):
            if target is None:
                await self._trigger.trigger_by_project_ref(
                    config.project_path,
                    config.pipeline_trigger_token,
                    config.pipeline_ref,
                )
                detail = f"pipeline for ref {config.pipeline_ref}"
            else:
                await self._trigger.trigger_by_job_id(
                    config.project_path,
                    target.job_id,
                    via=config.play_via,
                )
                detail = f"job {target.job_id} via {config.play_via}"
        self.report.triggered = True
        self._record("trigger", True, detail)

    @asynccontextmanager
    async def _stage(self, stage: Stage) -> AsyncIterator[None]:
        self._in_flight = stage
        try:
            yield
        except BridgeError as exc:
            exc.stage = stage
            self._record(stage, False, str(exc))
            raise
        except asyncio.CancelledError:
            self._record(stage, False, "cancelled; outcome unknown")
            raise
        self._in_flight = None

    def _record(self, stage: Stage, success: bool, detail: str) -> None:
        self.report.events.append(
            StageEvent(stage=stage, success=success, detail=detail, timestamp=self._clock())
        )

    def _deadline_error(self) -> HostError:
        stage = self._in_flight
        if stage in {"publish", "trigger"}:
            msg = f"Run deadline expired during {stage}; the host may have applied it"
            return HostError(msg, category="outcome_unknown")
        msg = f"Run deadline expired during {stage or 'startup'}"
        return HostError(msg, category="network_timeout")

