"""GraphQL request envelopes, typed inputs and query documents.

Queries are static documents; every caller-provided value is passed through
``variables`` so nothing is spliced into query text.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class GraphQLRequest(BaseModel):
    """GraphQL query and variables."""

    model_config = ConfigDict(extra="forbid")

    query: str
    variables: dict[str, Any] = Field(default_factory=dict)


class GraphQLResponse(BaseModel):
    """GraphQL response with data and errors."""

    data: dict[str, Any] | None = None
    errors: list[dict[str, Any]] | None = None


class BranchProtectionRuleInput(BaseModel):
    """Settings for a branch pattern protection rule.

    Field names are snake_case here and camelCase on the wire. Unset fields
    are omitted so GitHub applies its own defaults.
    """

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    pattern: str = Field(min_length=1, description="Branch name pattern, e.g. 'release/*'")
    requires_approving_reviews: bool | None = None
    required_approving_review_count: int | None = Field(default=None, ge=0, le=6)
    dismisses_stale_reviews: bool | None = None
    requires_code_owner_reviews: bool | None = None
    require_last_push_approval: bool | None = None
    requires_status_checks: bool | None = None
    requires_strict_status_checks: bool | None = None
    required_status_check_contexts: list[str] | None = None
    is_admin_enforced: bool | None = None
    requires_linear_history: bool | None = None
    requires_commit_signatures: bool | None = None
    requires_conversation_resolution: bool | None = None
    allows_force_pushes: bool | None = None
    allows_deletions: bool | None = None
    lock_branch: bool | None = None
    restricts_pushes: bool | None = None
    push_actor_ids: list[str] | None = None
    restricts_review_dismissals: bool | None = None
    review_dismissal_actor_ids: list[str] | None = None
    bypass_pull_request_actor_ids: list[str] | None = None
    bypass_force_push_actor_ids: list[str] | None = None

    @model_validator(mode="after")
    def imply_parent_flags(self) -> BranchProtectionRuleInput:
        # Dependent settings are ignored by GitHub unless their parent flag is on.
        if self.required_approving_review_count is not None and self.requires_approving_reviews is None:
            self.requires_approving_reviews = True
        if self.required_status_check_contexts and self.requires_status_checks is None:
            self.requires_status_checks = True
        if self.push_actor_ids and self.restricts_pushes is None:
            self.restricts_pushes = True
        if self.review_dismissal_actor_ids and self.restricts_review_dismissals is None:
            self.restricts_review_dismissals = True
        return self

    def to_variables(self, repository_id: str) -> dict[str, Any]:
        """CreateBranchProtectionRuleInput for the given repository node id."""
        return {
            "repositoryId": repository_id,
            **self.model_dump(by_alias=True, exclude_none=True),
        }


REPOSITORY_ID_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    id
  }
}
"""

USER_ID_QUERY = """
query($login: String!) {
  user(login: $login) {
    id
  }
}
"""

TEAM_ID_QUERY = """
query($org: String!, $slug: String!) {
  organization(login: $org) {
    team(slug: $slug) {
      id
    }
  }
}
"""

APP_ID_QUERY = """
query($slug: String!) {
  app(slug: $slug) {
    id
  }
}
"""

_RULE_FIELDS = """
      id
      pattern
      requiresApprovingReviews
      requiredApprovingReviewCount
      dismissesStaleReviews
      requiresCodeOwnerReviews
      requiresStatusChecks
      requiresStrictStatusChecks
      requiredStatusCheckContexts
      isAdminEnforced
      requiresLinearHistory
      allowsForcePushes
      allowsDeletions
      lockBranch
      restrictsPushes
      restrictsReviewDismissals
"""

BRANCH_PROTECTION_RULES_QUERY = """
query($owner: String!, $name: String!, $cursor: String) {
  repository(owner: $owner, name: $name) {
    branchProtectionRules(first: 100, after: $cursor) {
      nodes {
%s
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
""" % _RULE_FIELDS

CREATE_BRANCH_PROTECTION_RULE_MUTATION = """
mutation($input: CreateBranchProtectionRuleInput!) {
  createBranchProtectionRule(input: $input) {
    branchProtectionRule {
%s
    }
  }
}
""" % _RULE_FIELDS

DELETE_BRANCH_PROTECTION_RULE_MUTATION = """
mutation($input: DeleteBranchProtectionRuleInput!) {
  deleteBranchProtectionRule(input: $input) {
    clientMutationId
  }
}
"""
