from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from jobbridge.core.errors import NotFoundError, PreconditionError
from jobbridge.core.runner import BridgeRunner
from jobbridge.host.client import HostError, JSONObject
from jobbridge.models.config import BridgeConfig
from jobbridge.models.pipeline import HostStatus
from tests.support.host_helpers import FakeHost, graph, job, pipeline


def _config(**overrides: Any) -> BridgeConfig:
    env = {
        "gitlab_project_path": "group/app",
        "gitlab_job_name": "deploy",
        "gitlab_token": "secret-token",
        "gitlab_commit_sha": "abc123",
        "bitrise_build_status": "0",
        "bitrise_build_url": "https://ci.example.com/build/1",
        "BITRISE_API_TOKEN": "api-token",
        "BITRISE_APP_SLUG": "app-1",
        "BITRISE_BUILD_SLUG": "build-9",
    }
    env.update({key: str(value) for key, value in overrides.items()})
    return BridgeConfig.from_env(env)


def _host(**kwargs: Any) -> FakeHost:
    return FakeHost(graph(pipeline(42, job("build", 76), job("deploy", 77))), **kwargs)


@pytest.mark.asyncio
async def test_success_publishes_then_plays_resolved_job_once() -> None:
    host = _host()

    report = await BridgeRunner(_config(), host).run()

    assert host.calls == ["fetch", "status", "play_job"]
    assert len(host.job_plays) == 1
    assert host.job_plays[0][1].numeric_id == "77"
    assert host.status_updates[0][2]["pipeline_id"] == "42"
    assert report.status is HostStatus.SUCCESS
    assert report.published is True
    assert report.triggered is True
    assert report.stages() == ["resolve", "translate", "publish", "trigger"]
    assert all(event.success for event in report.events)


@pytest.mark.asyncio
async def test_failed_build_publishes_failed_and_never_triggers() -> None:
    host = _host()

    report = await BridgeRunner(_config(bitrise_build_status="1"), host).run()

    assert host.status_updates[0][2]["state"] == "failed"
    assert host.trigger_count == 0
    assert report.triggered is False
    assert report.events[-1].detail == "skipped: status is failed"


@pytest.mark.asyncio
async def test_unknown_outcome_publishes_pending_without_trigger() -> None:
    host = _host()

    await BridgeRunner(_config(bitrise_build_status="137"), host).run()

    assert host.status_updates[0][2]["state"] == "pending"
    assert host.trigger_count == 0


@pytest.mark.asyncio
async def test_publish_failure_aborts_before_trigger() -> None:
    host = _host(publish_error=HostError("http status 500", category="http_status", status_code=500))
    runner = BridgeRunner(_config(), host)

    with pytest.raises(HostError):
        await runner.run()

    assert host.trigger_count == 0
    assert runner.report.published is False
    assert runner.report.events[-1].stage == "publish"
    assert runner.report.events[-1].success is False


@pytest.mark.asyncio
async def test_not_found_aborts_before_any_side_effect() -> None:
    host = FakeHost(graph(pipeline(42, job("build", 76))))
    runner = BridgeRunner(_config(), host)

    with pytest.raises(NotFoundError):
        await runner.run()

    assert host.calls == ["fetch"]
    assert runner.report.stages() == ["resolve"]


@pytest.mark.asyncio
async def test_failures_carry_the_stage_they_happened_in() -> None:
    publish_error = HostError("http status 500", category="http_status", status_code=500)
    trigger_error = HostError("http status 403", category="http_status", status_code=403)

    with pytest.raises(HostError) as published:
        await BridgeRunner(_config(), _host(publish_error=publish_error)).run()
    with pytest.raises(HostError) as triggered:
        await BridgeRunner(_config(), _host(trigger_error=trigger_error)).run()

    assert published.value.stage == "publish"
    assert triggered.value.stage == "trigger"


@pytest.mark.asyncio
async def test_incomplete_trigger_variables_fail_after_publish() -> None:
    host = _host()

    with pytest.raises(PreconditionError):
        await BridgeRunner(_config(BITRISE_BUILD_SLUG=""), host).run()

    assert host.calls == ["fetch", "status"]


@pytest.mark.asyncio
async def test_pipeline_mode_triggers_by_ref_without_resolution() -> None:
    host = _host()
    config = _config(trigger_mode="pipeline", gitlab_branch_name="release", gitlab_job_name="")

    report = await BridgeRunner(config, host).run()

    assert host.calls == ["status", "trigger_pipeline"]
    assert "pipeline_id" not in host.status_updates[0][2]
    assert host.pipeline_triggers[0][:3] == ("group/app", "secret-token", "release")
    assert report.target is None
    assert report.triggered is True


@pytest.mark.asyncio
async def test_graphql_play_and_disabled_trigger() -> None:
    host = _host()
    await BridgeRunner(_config(play_via="graphql"), host).run()
    assert host.calls[-1] == "play_job_graphql"

    quiet = _host()
    report = await BridgeRunner(_config(trigger_on_success="false"), quiet).run()
    assert quiet.trigger_count == 0
    assert report.triggered is False


class _HangingPublishHost(FakeHost):
    async def update_commit_status(
        self,
        project_path: str,
        commit_sha: str,
        fields: Mapping[str, str],
    ) -> JSONObject:
        self.calls.append("status")
        await asyncio.sleep(10)
        return {}


@pytest.mark.asyncio
async def test_deadline_during_publish_is_reported_as_unknown_outcome() -> None:
    host = _HangingPublishHost(graph(pipeline(42, job("deploy", 77))))
    runner = BridgeRunner(_config(run_timeout="0.05"), host)

    with pytest.raises(HostError) as excinfo:
        await runner.run()

    assert excinfo.value.category == "outcome_unknown"
    assert "publish" in str(excinfo.value)
    assert host.trigger_count == 0
    assert runner.report.events[-1].detail == "cancelled; outcome unknown"
