"""Pipeline graph domain models."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeAlias

from jobbridge.core.errors import ConfigurationError


class HostStatus(StrEnum):
    """Commit status vocabulary accepted by the code host."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"
    SKIPPED = "skipped"

    @classmethod
    def parse(cls, value: str | HostStatus) -> HostStatus:
        """Return the member for `value` or reject it."""
        if isinstance(value, HostStatus):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            msg = f"Invalid host status {value!r}; expected one of: {allowed}"
            raise ConfigurationError(msg, keys=["state"]) from None


@dataclass(frozen=True, slots=True)
class HostID:
    """Opaque host global ID together with its short numeric form."""

    global_id: str
    numeric_id: str

    @classmethod
    def from_global_id(cls, global_id: str) -> HostID:
        """Build from `gid://gitlab/<Type>/<number>`."""
        _, sep, tail = global_id.rpartition("/")
        if not sep or not tail.isdigit():
            msg = f"Not a host global ID: {global_id!r}"
            raise ValueError(msg)
        return cls(global_id=global_id, numeric_id=tail)

    def __str__(self) -> str:
        return self.global_id


@dataclass(frozen=True, slots=True)
class Job:
    id: HostID
    name: str
    status: str
    can_play: bool = False


@dataclass(frozen=True, slots=True)
class Pipeline:
    id: HostID
    iid: str
    jobs: tuple[Job, ...] = ()
    sha: str | None = None
    ref: str | None = None


@dataclass(frozen=True, slots=True)
class PipelineGraph:
    """Pipelines and their jobs in the order the host returned them."""

    pipelines: tuple[Pipeline, ...] = ()

    def iter_jobs(self) -> Iterator[tuple[Pipeline, Job]]:
        for pipeline in self.pipelines:
            for job in pipeline.jobs:
                yield pipeline, job


@dataclass(frozen=True, slots=True)
class ResolvedTarget:
    """Job selected for a run and the pipeline that owns it."""

    job_id: HostID
    pipeline_id: HostID
    pipeline_iid: str
    job_name: str

    @property
    def pipeline_numeric_id(self) -> str:
        return self.pipeline_id.numeric_id


@dataclass(frozen=True, slots=True)
class ByCommit:
    project_path: str
    commit_sha: str
    branch_name: str | None = None

    def describe(self) -> str:
        return f"project={self.project_path} commit={self.commit_sha}"


@dataclass(frozen=True, slots=True)
class ByBranch:
    project_path: str
    branch_name: str

    def describe(self) -> str:
        return f"project={self.project_path} branch={self.branch_name}"


@dataclass(frozen=True, slots=True)
class ByMergeRequest:
    project_path: str
    merge_request_iid: str
    branch_name: str | None = None

    def describe(self) -> str:
        branch = f" branch={self.branch_name}" if self.branch_name else ""
        return f"project={self.project_path} merge_request=!{self.merge_request_iid}{branch}"


SelectionContext: TypeAlias = ByCommit | ByBranch | ByMergeRequest


def selection_context(
    project_path: str,
    *,
    commit_sha: str | None = None,
    branch_name: str | None = None,
    merge_request_iid: str | None = None,
) -> SelectionContext:
    """Choose the lookup shape from whichever locating fields are set.

    A merge request IID wins over a commit SHA, which wins over a branch.
    The branch name, when given, narrows the merge request and commit lookups.
    """
    if not project_path:
        raise ConfigurationError("A project path is required", keys=["gitlab_project_path"])
    commit_sha = commit_sha or None
    branch_name = branch_name or None
    merge_request_iid = merge_request_iid or None

    if merge_request_iid is not None:
        if not merge_request_iid.isdigit():
            msg = f"Merge request IID must be numeric, got {merge_request_iid!r}"
            raise ConfigurationError(msg, keys=["gitlab_merge_request_iid"])
        return ByMergeRequest(project_path, merge_request_iid, branch_name)
    if commit_sha is not None:
        return ByCommit(project_path, commit_sha, branch_name)
    if branch_name is not None:
        return ByBranch(project_path, branch_name)
    raise ConfigurationError(
        "One of commit SHA, branch name or merge request IID is required",
        keys=["gitlab_commit_sha", "gitlab_branch_name", "gitlab_merge_request_iid"],
    )
