from __future__ import annotations

import pytest

from jobbridge.core.errors import NotFoundError
from jobbridge.core.resolver import JobResolver, PlayablePolicy, find_job
from jobbridge.models.pipeline import ByCommit, ByMergeRequest, HostID, PipelineGraph
from tests.support.host_helpers import FakeHost, graph, job, pipeline


@pytest.mark.asyncio
async def test_resolve_by_commit_returns_job_and_pipeline_numeric_id() -> None:
    host = FakeHost(graph(pipeline(42, job("build", 76), job("deploy", 77))))
    resolver = JobResolver(host)

    target = await resolver.resolve(ByCommit("group/app", "abc123"), "deploy")

    assert target.job_id == HostID("gid://gitlab/Ci::Build/77", "77")
    assert target.pipeline_numeric_id == "42"
    assert host.contexts == [ByCommit("group/app", "abc123")]


def test_find_job_prefers_first_pipeline_over_later_ones() -> None:
    pipeline_graph = graph(
        pipeline(10, job("test-job", 1)),
        pipeline(99, job("test-job", 2)),
    )

    target = find_job(pipeline_graph, "test-job")

    assert target is not None
    assert target.job_id.numeric_id == "1"
    assert target.pipeline_numeric_id == "10"


def test_find_job_prefers_first_duplicate_within_a_pipeline() -> None:
    pipeline_graph = graph(pipeline(5, job("lint", 3), job("test-job", 9), job("test-job", 4)))

    target = find_job(pipeline_graph, "test-job")

    assert target is not None
    assert target.job_id.numeric_id == "9"


def test_find_job_matches_names_exactly() -> None:
    pipeline_graph = graph(pipeline(5, job("Deploy", 1), job("deploy ", 2)))
    assert find_job(pipeline_graph, "deploy") is None


@pytest.mark.parametrize(
    "pipeline_graph",
    [PipelineGraph(), graph(pipeline(1)), graph(pipeline(1), pipeline(2))],
)
def test_find_job_on_empty_graphs_is_none(pipeline_graph: PipelineGraph) -> None:
    assert find_job(pipeline_graph, "deploy") is None


def test_any_policy_ignores_playability() -> None:
    pipeline_graph = graph(pipeline(1, job("deploy", 5, can_play=False)), pipeline(2, job("deploy", 6)))

    target = find_job(pipeline_graph, "deploy", PlayablePolicy.ANY)

    assert target is not None
    assert target.job_id.numeric_id == "5"


def test_playable_only_policy_skips_unplayable_jobs() -> None:
    pipeline_graph = graph(pipeline(1, job("deploy", 5, can_play=False)), pipeline(2, job("deploy", 6)))

    target = find_job(pipeline_graph, "deploy", PlayablePolicy.PLAYABLE_ONLY)

    assert target is not None
    assert target.job_id.numeric_id == "6"
    assert target.pipeline_numeric_id == "2"


@pytest.mark.asyncio
async def test_resolve_is_deterministic_across_calls() -> None:
    host = FakeHost(graph(pipeline(1, job("deploy", 5)), pipeline(2, job("deploy", 6))))
    resolver = JobResolver(host)
    ctx = ByCommit("group/app", "abc")

    results = [await resolver.resolve(ctx, "deploy") for _ in range(3)]

    assert results[0] == results[1] == results[2]


@pytest.mark.asyncio
async def test_resolve_raises_not_found_naming_job_and_context() -> None:
    resolver = JobResolver(FakeHost(graph(pipeline(1, job("build", 5)))))
    ctx = ByMergeRequest("group/app", "12")

    with pytest.raises(NotFoundError) as excinfo:
        await resolver.resolve(ctx, "deploy")

    assert excinfo.value.job_name == "deploy"
    assert excinfo.value.context == "project=group/app merge_request=!12"
    assert "'deploy'" in str(excinfo.value)
    assert "1 pipeline(s) searched" in str(excinfo.value)


@pytest.mark.asyncio
async def test_resolve_not_found_mentions_playable_policy() -> None:
    resolver = JobResolver(
        FakeHost(graph(pipeline(1, job("deploy", 5, can_play=False)))),
        playable_policy=PlayablePolicy.PLAYABLE_ONLY,
    )

    with pytest.raises(NotFoundError, match="No playable job named 'deploy'"):
        await resolver.resolve(ByCommit("group/app", "abc"), "deploy")
