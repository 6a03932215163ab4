"""Bridge configuration built once from a key-value environment."""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import (
    AliasChoices,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from jobbridge.core.errors import ConfigurationError
from jobbridge.core.publisher import DEFAULT_STATUS_NAME
from jobbridge.core.resolver import PlayablePolicy
from jobbridge.core.trigger import TriggerVariables
from jobbridge.models.pipeline import SelectionContext, selection_context

DEFAULT_API_URL = "https://gitlab.com/api/v4"

_REPOSITORY_PATH_PATTERN = re.compile(r"(?://[^/]+?/|[^:/]+?:)([^/]+?/.+?)(?:\.git)?/?$")
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def project_path_from_repository_url(url: str) -> str:
    """Extract `group/project` from an https or scp-style git URL."""
    match = _REPOSITORY_PATH_PATTERN.search(url.strip())
    if match is None:
        return ""
    return match.group(1)


def graphql_url_for(api_url: str) -> str:
    trimmed = api_url.rstrip("/")
    if trimmed.endswith("/api/v4"):
        return f"{trimmed.removesuffix('/v4')}/graphql"
    return f"{trimmed}/graphql"


class BridgeConfig(BaseSettings):
    """Inputs for one bridge run, read from step inputs and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    project_path: str = Field(default="", alias="gitlab_project_path")
    repository_url: str = ""
    branch_name: str | None = Field(default=None, alias="gitlab_branch_name")
    commit_sha: str | None = Field(
        default=None,
        validation_alias=AliasChoices("gitlab_commit_sha", "bitrise_git_commit", "commit_sha"),
    )
    merge_request_iid: str | None = Field(default=None, alias="gitlab_merge_request_iid")
    job_name: str = Field(default="", alias="gitlab_job_name")
    token: SecretStr = Field(validation_alias=AliasChoices("gitlab_token", "private_token"))
    trigger_token: SecretStr | None = Field(default=None, alias="gitlab_trigger_token")
    build_status: str = Field(default="", alias="bitrise_build_status")
    build_url: str | None = Field(default=None, alias="bitrise_build_url")
    git_ref: str | None = None

    api_url: str = Field(
        default=DEFAULT_API_URL,
        validation_alias=AliasChoices("gitlab_api_url", "api_base_url"),
    )
    graphql_url: str | None = Field(default=None, alias="gitlab_graphql_url")
    trigger_mode: Literal["job", "pipeline"] = "job"
    play_via: Literal["rest", "graphql"] = "rest"
    require_playable: bool = False
    trigger_on_success: bool = True
    status_name: str = DEFAULT_STATUS_NAME
    request_timeout: float = Field(default=30.0, gt=0)
    run_timeout: float | None = Field(default=None, gt=0)
    log_level: str = "INFO"

    bitrise_api_token: SecretStr = Field(default=SecretStr(""), alias="BITRISE_API_TOKEN")
    bitrise_app_slug: str = Field(default="", alias="BITRISE_APP_SLUG")
    bitrise_build_slug: str = Field(default="", alias="BITRISE_BUILD_SLUG")

    @field_validator(
        "branch_name",
        "commit_sha",
        "merge_request_iid",
        "build_url",
        "git_ref",
        "graphql_url",
        "trigger_token",
        "run_timeout",
        mode="before",
    )
    @classmethod
    def _blank_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("project_path", "job_name", "build_status", "repository_url")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("log_level")
    @classmethod
    def _log_level(cls, value: str) -> str:
        normalized = value.strip().upper() or "INFO"
        if normalized not in _LOG_LEVELS:
            msg = f"unknown log level {value!r}"
            raise ValueError(msg)
        return normalized

    @model_validator(mode="after")
    def _finalize(self) -> BridgeConfig:
        if not self.token.get_secret_value():
            msg = "gitlab_token (or private_token) must not be empty"
            raise ValueError(msg)
        if not self.project_path and self.repository_url:
            derived = project_path_from_repository_url(self.repository_url)
            self.project_path = derived
        if not self.project_path:
            msg = "gitlab_project_path is required (or a parseable repository_url)"
            raise ValueError(msg)
        if self.trigger_mode == "job" and not self.job_name:
            msg = "gitlab_job_name is required when trigger_mode is 'job'"
            raise ValueError(msg)
        if not self.commit_sha:
            msg = "gitlab_commit_sha (or bitrise_git_commit) is required to publish a status"
            raise ValueError(msg)
        if self.trigger_mode == "pipeline" and not self.pipeline_ref:
            msg = "git_ref or gitlab_branch_name is required when trigger_mode is 'pipeline'"
            raise ValueError(msg)
        if self.graphql_url is None:
            self.graphql_url = graphql_url_for(self.api_url)
        return self

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        env_file: Path | None = None,
    ) -> BridgeConfig:
        """Load inputs, raising `ConfigurationError`.

        Explicit `environ` values win over the process environment, which wins
        over `env_file`.
        """
        values = dict(environ or {})
        try:
            return cls(_env_file=env_file, **values)
        except ValidationError as exc:
            keys: list[str] = []
            problems: list[str] = []
            for error in exc.errors():
                loc = ".".join(str(part) for part in error["loc"])
                if loc:
                    keys.append(loc)
                problems.append(f"{loc or 'config'}: {error['msg']}")
            msg = "Invalid configuration: " + "; ".join(problems)
            raise ConfigurationError(msg, keys=keys) from exc

    @property
    def playable_policy(self) -> PlayablePolicy:
        if self.require_playable:
            return PlayablePolicy.PLAYABLE_ONLY
        return PlayablePolicy.ANY

    @property
    def pipeline_trigger_token(self) -> str:
        secret = self.trigger_token or self.token
        return secret.get_secret_value()

    @property
    def pipeline_ref(self) -> str:
        return self.git_ref or self.branch_name or ""

    def selection_context(self) -> SelectionContext:
        return selection_context(
            self.project_path,
            commit_sha=self.commit_sha,
            branch_name=self.branch_name,
            merge_request_iid=self.merge_request_iid,
        )

    def trigger_variables(self) -> TriggerVariables:
        return TriggerVariables(
            api_token=self.bitrise_api_token.get_secret_value(),
            app_slug=self.bitrise_app_slug,
            build_slug=self.bitrise_build_slug,
        )
