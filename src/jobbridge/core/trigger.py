"""Downstream job triggering."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, Protocol, TypeAlias

from jobbridge.core.errors import ConfigurationError, PreconditionError
from jobbridge.host.client import JSONObject
from jobbridge.models.pipeline import HostID

PlayVia: TypeAlias = Literal["rest", "graphql"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TriggerVariables:
    """Variables the downstream job needs to call back into the build."""

    api_token: str
    app_slug: str
    build_slug: str

    def as_mapping(self) -> dict[str, str]:
        return {
            "BITRISE_API_TOKEN": self.api_token,
            "BITRISE_APP_SLUG": self.app_slug,
            "BITRISE_BUILD_SLUG": self.build_slug,
        }

    def missing(self) -> list[str]:
        return [key for key, value in self.as_mapping().items() if not value]


class TriggerBackend(Protocol):
    async def trigger_pipeline(
        self,
        project_path: str,
        *,
        token: str,
        ref: str,
        variables: Mapping[str, str],
    ) -> JSONObject: ...

    async def play_job(
        self,
        project_path: str,
        job_id: HostID,
        variables: Mapping[str, str],
    ) -> JSONObject: ...

    async def play_job_graphql(
        self,
        job_id: HostID,
        variables: Mapping[str, str],
    ) -> JSONObject: ...


class JobTrigger:
    """Start downstream work exactly once per call.

    Failures are never retried: the host may already have accepted a request
    whose response was lost, and a second attempt would start the work twice.
    """

    def __init__(self, backend: TriggerBackend, variables: TriggerVariables) -> None:
        self._backend = backend
        self._variables = variables

    def check_preconditions(self) -> dict[str, str]:
        missing = self._variables.missing()
        if missing:
            msg = f"Trigger variables missing or empty: {', '.join(missing)}"
            raise PreconditionError(msg, missing=missing)
        return self._variables.as_mapping()

    async def trigger_by_project_ref(self, project_path: str, token: str, ref: str) -> JSONObject:
        """Start a brand-new pipeline for `ref`."""
        variables = self.check_preconditions()
        if not ref:
            raise ConfigurationError("A ref is required to trigger a pipeline", keys=["git_ref"])
        result = await self._backend.trigger_pipeline(
            project_path,
            token=token,
            ref=ref,
            variables=variables,
        )
        logger.info("Triggered pipeline for %s ref %s (id %s)", project_path, ref, result.get("id"))
        return result

    async def trigger_by_job_id(
        self,
        project_path: str,
        job_id: HostID,
        *,
        via: PlayVia = "rest",
    ) -> JSONObject:
        """Play one job that already exists in a resolved pipeline."""
        variables = self.check_preconditions()
        if via == "graphql":
            result = await self._backend.play_job_graphql(job_id, variables)
        else:
            result = await self._backend.play_job(project_path, job_id, variables)
        logger.info("Played job %s in %s via %s", job_id, project_path, via)
        return result
