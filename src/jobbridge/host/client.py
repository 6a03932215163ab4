"""Code host REST/GraphQL client with normalized error handling."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Literal, TypeAlias, cast
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from jobbridge.core.errors import BridgeError
from jobbridge.host.queries import JOB_PLAY, GraphQLVariables, pipeline_query
from jobbridge.host.schemas import JobPlayData, ProjectData
from jobbridge.models.pipeline import HostID, PipelineGraph, SelectionContext

JSONValue: TypeAlias = "None | bool | int | float | str | list[JSONValue] | dict[str, JSONValue]"
JSONObject: TypeAlias = dict[str, JSONValue]
ErrorCategory: TypeAlias = Literal[
    "http_status",
    "transport_error",
    "network_timeout",
    "outcome_unknown",
    "malformed_response",
    "graphql_error",
]

_NO_RESPONSE_CATEGORIES = frozenset({"transport_error", "network_timeout", "outcome_unknown"})
_BODY_PREVIEW_LIMIT = 2000

logger = logging.getLogger(__name__)


class HostError(BridgeError):
    """Host request failure with explicit category."""

    stage = "host"

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory,
        status_code: int | None = None,
        body: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code
        self.body = body
        self.url = url

    @property
    def transport(self) -> bool:
        """True when no response from the host was observed."""
        return self.category in _NO_RESPONSE_CATEGORIES

    @property
    def malformed_response(self) -> bool:
        return self.category == "malformed_response"

    @property
    def outcome_unknown(self) -> bool:
        """True when the request may have been accepted by the host."""
        return self.category == "outcome_unknown"


class HostAPIClient:
    """Authenticated access to the host's REST and GraphQL endpoints.

    REST calls authenticate with a `PRIVATE-TOKEN` header, GraphQL calls with
    a bearer token. Requests are never retried here.
    """

    def __init__(
        self,
        *,
        api_url: str,
        graphql_url: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._graphql_url = graphql_url
        self._token = token
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> HostAPIClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def query(self, document: str, variables: GraphQLVariables | JSONObject) -> JSONObject:
        """Run one GraphQL document and return its `data` object."""
        response = await self._send(
            "POST",
            self._graphql_url,
            headers={"Authorization": f"Bearer {self._token}"},
            json={"query": document, "variables": variables},
        )
        payload = self._decode_json(response)
        errors = payload.get("errors")
        if errors:
            messages = [
                str(item.get("message", item)) if isinstance(item, dict) else str(item)
                for item in cast(list[JSONValue], errors)
            ]
            msg = f"GraphQL errors: {'; '.join(messages)}"
            raise HostError(
                msg,
                category="graphql_error",
                status_code=response.status_code,
                body=_preview(response.text),
                url=self._graphql_url,
            )
        data = payload.get("data")
        if not isinstance(data, dict):
            msg = "GraphQL response has no data object"
            raise HostError(
                msg,
                category="malformed_response",
                status_code=response.status_code,
                body=_preview(response.text),
                url=self._graphql_url,
            )
        return data

    async def fetch_pipeline_graph(self, ctx: SelectionContext) -> PipelineGraph:
        """Query pipelines and jobs for one selection context."""
        document, variables = pipeline_query(ctx)
        data = await self.query(document, variables)
        try:
            decoded = ProjectData.model_validate(data)
        except ValidationError as exc:
            msg = f"Unexpected pipeline payload for {ctx.describe()}: {exc.error_count()} error(s)"
            raise HostError(
                msg,
                category="malformed_response",
                body=_preview(str(data)),
                url=self._graphql_url,
            ) from exc
        if decoded.project is None:
            logger.warning("Project not visible to the token: %s", ctx.project_path)
            return PipelineGraph()
        return decoded.project.to_graph()

    async def trigger_pipeline(
        self,
        project_path: str,
        *,
        token: str,
        ref: str,
        variables: Mapping[str, str],
    ) -> JSONObject:
        """Start a new pipeline for `ref` through the trigger API."""
        url = f"{self._project_url(project_path)}/trigger/pipeline"
        form = {"token": token, "ref": ref}
        for key, value in variables.items():
            form[f"variables[{key}]"] = value
        response = await self._send("POST", url, headers=self._rest_headers(), data=form)
        return self._decode_json(response)

    async def play_job(
        self,
        project_path: str,
        job_id: HostID,
        variables: Mapping[str, str],
    ) -> JSONObject:
        """Play one manual job through the REST API."""
        url = f"{self._project_url(project_path)}/jobs/{job_id.numeric_id}/play"
        body: JSONObject = {
            "job_variables_attributes": [
                {"key": key, "value": value} for key, value in variables.items()
            ]
        }
        response = await self._send("POST", url, headers=self._rest_headers(), json=body)
        return self._decode_json(response)

    async def play_job_graphql(
        self,
        job_id: HostID,
        variables: Mapping[str, str],
    ) -> JSONObject:
        """Play one manual job through the `jobPlay` mutation."""
        data = await self.query(
            JOB_PLAY,
            {
                "id": job_id.global_id,
                "variables": [{"key": key, "value": value} for key, value in variables.items()],
            },
        )
        try:
            decoded = JobPlayData.model_validate(data)
        except ValidationError as exc:
            msg = f"Unexpected jobPlay payload for {job_id}"
            raise HostError(
                msg,
                category="malformed_response",
                body=_preview(str(data)),
                url=self._graphql_url,
            ) from exc
        if decoded.job_play is not None and decoded.job_play.errors:
            msg = f"jobPlay rejected {job_id}: {'; '.join(decoded.job_play.errors)}"
            raise HostError(msg, category="graphql_error", url=self._graphql_url)
        return data

    async def update_commit_status(
        self,
        project_path: str,
        commit_sha: str,
        fields: Mapping[str, str],
    ) -> JSONObject:
        """Create or update a commit status."""
        url = f"{self._project_url(project_path)}/statuses/{quote(commit_sha, safe='')}"
        response = await self._send("POST", url, headers=self._rest_headers(), data=dict(fields))
        return self._decode_json(response)

    def _project_url(self, project_path: str) -> str:
        return f"{self._api_url}/projects/{quote(project_path, safe='')}"

    def _rest_headers(self) -> dict[str, str]:
        return {"PRIVATE-TOKEN": self._token}

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        data: Mapping[str, str] | None = None,
        json: JSONObject | None = None,
    ) -> httpx.Response:
        logger.debug("%s %s", method, url)
        try:
            response = await self._client.request(method, url, headers=headers, data=data, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            message = f"http status {status_code} from {method} {url}"
            raise HostError(
                message,
                category="http_status",
                status_code=status_code,
                body=_preview(exc.response.text),
                url=url,
            ) from exc
        except httpx.HTTPError as exc:
            raise HostError(
                f"{type(exc).__name__} on {method} {url}: {exc}",
                category=self._error_category_from_exception(exc),
                url=url,
            ) from exc
        return response

    @staticmethod
    def _decode_json(response: httpx.Response) -> JSONObject:
        url = str(response.request.url)
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            msg = f"Response from {url} is not JSON"
            raise HostError(
                msg,
                category="malformed_response",
                status_code=response.status_code,
                body=_preview(response.text),
                url=url,
            ) from exc
        if not isinstance(payload, dict):
            msg = f"Response from {url} is not a JSON object"
            raise HostError(
                msg,
                category="malformed_response",
                status_code=response.status_code,
                body=_preview(response.text),
                url=url,
            )
        return cast(JSONObject, payload)

    @staticmethod
    def _error_category_from_exception(exc: httpx.HTTPError) -> ErrorCategory:
        # Connect and pool failures happen before the request leaves the process.
        if isinstance(exc, httpx.ConnectTimeout | httpx.PoolTimeout):
            return "network_timeout"
        if isinstance(exc, httpx.ConnectError):
            return "transport_error"
        if isinstance(exc, httpx.TimeoutException | httpx.NetworkError | httpx.RemoteProtocolError):
            return "outcome_unknown"
        return "transport_error"


def _preview(text: str) -> str:
    if len(text) <= _BODY_PREVIEW_LIMIT:
        return text
    return text[:_BODY_PREVIEW_LIMIT] + "..."
