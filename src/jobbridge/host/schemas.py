"""Response schemas for host GraphQL payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jobbridge.models.pipeline import HostID, Job, Pipeline, PipelineGraph


class _HostModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JobNode(_HostModel):
    id: str
    name: str
    status: str | None = None
    can_play_job: bool = Field(default=False, alias="canPlayJob")

    @field_validator("id")
    @classmethod
    def _global_id(cls, value: str) -> str:
        HostID.from_global_id(value)
        return value

    @field_validator("can_play_job", mode="before")
    @classmethod
    def _null_is_false(cls, value: object) -> object:
        return False if value is None else value

    def to_job(self) -> Job:
        return Job(
            id=HostID.from_global_id(self.id),
            name=self.name,
            status=(self.status or "").lower(),
            can_play=self.can_play_job,
        )


class JobConnection(_HostModel):
    nodes: list[JobNode] = Field(default_factory=list)


class PipelineNode(_HostModel):
    id: str
    iid: str
    sha: str | None = None
    ref: str | None = None
    jobs: JobConnection | None = None

    @field_validator("id")
    @classmethod
    def _global_id(cls, value: str) -> str:
        HostID.from_global_id(value)
        return value

    def to_pipeline(self) -> Pipeline:
        jobs = self.jobs.nodes if self.jobs is not None else []
        return Pipeline(
            id=HostID.from_global_id(self.id),
            iid=self.iid,
            sha=self.sha,
            ref=self.ref,
            jobs=tuple(node.to_job() for node in jobs),
        )


class PipelineConnection(_HostModel):
    nodes: list[PipelineNode] = Field(default_factory=list)

    def to_graph(self) -> PipelineGraph:
        return PipelineGraph(pipelines=tuple(node.to_pipeline() for node in self.nodes))


class MergeRequestNode(_HostModel):
    iid: str
    pipelines: PipelineConnection | None = None


class MergeRequestConnection(_HostModel):
    nodes: list[MergeRequestNode] = Field(default_factory=list)


class ProjectNode(_HostModel):
    pipelines: PipelineConnection | None = None
    merge_request: MergeRequestNode | None = Field(default=None, alias="mergeRequest")
    merge_requests: MergeRequestConnection | None = Field(default=None, alias="mergeRequests")

    def to_graph(self) -> PipelineGraph:
        """Flatten whichever lookup shape was queried into one graph."""
        if self.pipelines is not None:
            return self.pipelines.to_graph()
        merge_request = self.merge_request
        if merge_request is None and self.merge_requests is not None:
            merge_request = next(iter(self.merge_requests.nodes), None)
        if merge_request is None or merge_request.pipelines is None:
            return PipelineGraph()
        return merge_request.pipelines.to_graph()


class ProjectData(_HostModel):
    project: ProjectNode | None = None


class JobPlayPayload(_HostModel):
    errors: list[str] = Field(default_factory=list)


class JobPlayData(_HostModel):
    job_play: JobPlayPayload | None = Field(default=None, alias="jobPlay")
