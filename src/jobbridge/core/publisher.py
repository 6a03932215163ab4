"""Commit status publishing."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Protocol

from jobbridge.core.errors import ConfigurationError
from jobbridge.host.client import JSONObject
from jobbridge.models.pipeline import HostStatus

DEFAULT_STATUS_NAME = "Bitrise"
DEFAULT_STATUS_DESCRIPTION = "Build status reported by Bitrise"

logger = logging.getLogger(__name__)


class CommitStatusSink(Protocol):
    async def update_commit_status(
        self,
        project_path: str,
        commit_sha: str,
        fields: Mapping[str, str],
    ) -> JSONObject:
        """Send one commit status update."""


class StatusPublisher:
    """Report a build outcome as a commit status on the host."""

    def __init__(
        self,
        sink: CommitStatusSink,
        *,
        name: str = DEFAULT_STATUS_NAME,
        description: str = DEFAULT_STATUS_DESCRIPTION,
    ) -> None:
        self._sink = sink
        self._name = name
        self._description = description

    def build_fields(
        self,
        status: str | HostStatus,
        *,
        pipeline_numeric_id: str | None,
        build_url: str | None,
    ) -> dict[str, str]:
        """Validate `status` and return the form fields to send."""
        state = HostStatus.parse(status)
        fields = {
            "name": self._name,
            "state": state.value,
            "description": self._description,
        }
        if build_url:
            fields["target_url"] = build_url
        if pipeline_numeric_id:
            fields["pipeline_id"] = pipeline_numeric_id
        return fields

    async def publish(
        self,
        project_path: str,
        pipeline_numeric_id: str | None,
        commit_sha: str,
        status: str | HostStatus,
        build_url: str | None = None,
    ) -> JSONObject:
        if not commit_sha:
            raise ConfigurationError(
                "A commit SHA is required to publish a status",
                keys=["gitlab_commit_sha"],
            )
        fields = self.build_fields(
            status,
            pipeline_numeric_id=pipeline_numeric_id,
            build_url=build_url,
        )
        result = await self._sink.update_commit_status(project_path, commit_sha, fields)
        logger.info(
            "Published status %s for %s@%s (pipeline %s)",
            fields["state"],
            project_path,
            commit_sha,
            pipeline_numeric_id or "-",
        )
        return result
