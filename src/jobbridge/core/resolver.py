"""Pipeline/job resolution for a selection context."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Protocol

from jobbridge.core.errors import NotFoundError
from jobbridge.models.pipeline import PipelineGraph, ResolvedTarget, SelectionContext

logger = logging.getLogger(__name__)


class PlayablePolicy(StrEnum):
    """Whether a job's playability gates matching during the scan."""

    ANY = "any"
    PLAYABLE_ONLY = "playable_only"


class PipelineSource(Protocol):
    """Anything able to fetch a pipeline graph for a selection context."""

    async def fetch_pipeline_graph(self, ctx: SelectionContext) -> PipelineGraph:
        """Return pipelines and jobs in host order."""


def find_job(
    graph: PipelineGraph,
    job_name: str,
    policy: PlayablePolicy = PlayablePolicy.ANY,
) -> ResolvedTarget | None:
    """Return the first job named `job_name` in graph order.

    Names match exactly and case-sensitively. Pipelines are not reordered, so
    the first match wins even when a later pipeline is more recent.
    """
    for pipeline, job in graph.iter_jobs():
        if job.name != job_name:
            continue
        if policy is PlayablePolicy.PLAYABLE_ONLY and not job.can_play:
            continue
        return ResolvedTarget(
            job_id=job.id,
            pipeline_id=pipeline.id,
            pipeline_iid=pipeline.iid,
            job_name=job.name,
        )
    return None


class JobResolver:
    """Select exactly one job and its owning pipeline."""

    def __init__(
        self,
        source: PipelineSource,
        *,
        playable_policy: PlayablePolicy = PlayablePolicy.ANY,
    ) -> None:
        self._source = source
        self._playable_policy = playable_policy

    @property
    def playable_policy(self) -> PlayablePolicy:
        return self._playable_policy

    async def resolve(self, ctx: SelectionContext, job_name: str) -> ResolvedTarget:
        graph = await self._source.fetch_pipeline_graph(ctx)
        target = find_job(graph, job_name, self._playable_policy)
        if target is None:
            qualifier = " playable" if self._playable_policy is PlayablePolicy.PLAYABLE_ONLY else ""
            msg = (
                f"No{qualifier} job named {job_name!r} for {ctx.describe()} "
                f"({len(graph.pipelines)} pipeline(s) searched)"
            )
            raise NotFoundError(msg, job_name=job_name, context=ctx.describe())
        logger.info(
            "Resolved job %r to %s in pipeline %s",
            job_name,
            target.job_id,
            target.pipeline_numeric_id,
        )
        return target
