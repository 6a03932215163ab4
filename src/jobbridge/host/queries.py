"""GraphQL documents for the fixed set of pipeline/job lookups."""

from __future__ import annotations

from typing import TypeAlias

from jobbridge.models.pipeline import ByBranch, ByCommit, ByMergeRequest, SelectionContext

GraphQLVariables: TypeAlias = dict[str, str | list[str]]

_PIPELINE_FIELDS = """
        nodes {
          id
          iid
          sha
          ref
          jobs {
            nodes {
              id
              name
              status
              canPlayJob
            }
          }
        }
"""

PIPELINES_BY_COMMIT = (
    """
query pipelinesByCommit($projectPath: ID!, $sha: String!, $ref: String) {
  project(fullPath: $projectPath) {
    pipelines(sha: $sha, ref: $ref) {"""
    + _PIPELINE_FIELDS
    + """    }
  }
}
"""
)

PIPELINES_BY_BRANCH = (
    """
query pipelinesByBranch($projectPath: ID!, $ref: String!) {
  project(fullPath: $projectPath) {
    pipelines(ref: $ref) {"""
    + _PIPELINE_FIELDS
    + """    }
  }
}
"""
)

MERGE_REQUEST_PIPELINES = (
    """
query mergeRequestPipelines($projectPath: ID!, $iid: String!) {
  project(fullPath: $projectPath) {
    mergeRequest(iid: $iid) {
      iid
      pipelines {"""
    + _PIPELINE_FIELDS
    + """      }
    }
  }
}
"""
)

BRANCH_MERGE_REQUESTS_PIPELINES = (
    """
query branchMergeRequestsPipelines($projectPath: ID!, $iids: [String!], $branches: [String!]) {
  project(fullPath: $projectPath) {
    mergeRequests(iids: $iids, sourceBranches: $branches) {
      nodes {
        iid
        pipelines {"""
    + _PIPELINE_FIELDS
    + """        }
      }
    }
  }
}
"""
)

JOB_PLAY = """
mutation jobPlay($id: CiProcessableID!, $variables: [CiVariableInput!]) {
  jobPlay(input: {id: $id, variables: $variables}) {
    job {
      id
      status
    }
    errors
  }
}
"""


def pipeline_query(ctx: SelectionContext) -> tuple[str, GraphQLVariables]:
    """Return the document and variables for one selection context."""
    if isinstance(ctx, ByCommit):
        variables: GraphQLVariables = {"projectPath": ctx.project_path, "sha": ctx.commit_sha}
        if ctx.branch_name:
            variables["ref"] = ctx.branch_name
        return PIPELINES_BY_COMMIT, variables
    if isinstance(ctx, ByBranch):
        return PIPELINES_BY_BRANCH, {"projectPath": ctx.project_path, "ref": ctx.branch_name}
    if isinstance(ctx, ByMergeRequest):
        if ctx.branch_name:
            return BRANCH_MERGE_REQUESTS_PIPELINES, {
                "projectPath": ctx.project_path,
                "iids": [ctx.merge_request_iid],
                "branches": [ctx.branch_name],
            }
        return MERGE_REQUEST_PIPELINES, {
            "projectPath": ctx.project_path,
            "iid": ctx.merge_request_iid,
        }
    msg = f"Unsupported selection context: {type(ctx).__name__}"
    raise TypeError(msg)
