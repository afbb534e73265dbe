"""Tests for GraphQL envelopes, rule inputs and Executor.graphql."""

import json

import httpx
import pytest
from pydantic import ValidationError

from ghrequest.errors import GitHubRequestError
from ghrequest.executor import Executor
from ghrequest.graphql import REPOSITORY_ID_QUERY, BranchProtectionRuleInput
from ghrequest.models import EngineConfig, ErrorKind
from tests.conftest import MockGitHub, Reply


class TestBranchProtectionRuleInput:
    def test_camel_case_variables(self) -> None:
        rule = BranchProtectionRuleInput(pattern="release/*", requires_linear_history=True)
        assert rule.to_variables("R_1") == {
            "repositoryId": "R_1",
            "pattern": "release/*",
            "requiresLinearHistory": True,
        }

    def test_populate_by_alias(self) -> None:
        rule = BranchProtectionRuleInput.model_validate({"pattern": "main", "allowsDeletions": False})
        assert rule.allows_deletions is False

    def test_review_count_implies_reviews(self) -> None:
        variables = BranchProtectionRuleInput(pattern="main", required_approving_review_count=2).to_variables("R")
        assert variables["requiresApprovingReviews"] is True
        assert variables["requiredApprovingReviewCount"] == 2

    def test_explicit_parent_flag_kept(self) -> None:
        rule = BranchProtectionRuleInput(
            pattern="main", required_approving_review_count=0, requires_approving_reviews=False
        )
        assert rule.requires_approving_reviews is False

    def test_contexts_and_actors_imply_flags(self) -> None:
        rule = BranchProtectionRuleInput(
            pattern="main",
            required_status_check_contexts=["ci/build"],
            push_actor_ids=["U_1"],
            review_dismissal_actor_ids=["T_1"],
        )
        assert rule.requires_status_checks is True
        assert rule.restricts_pushes is True
        assert rule.restricts_review_dismissals is True

    def test_empty_lists_imply_nothing(self) -> None:
        rule = BranchProtectionRuleInput(pattern="main", push_actor_ids=[])
        assert rule.restricts_pushes is None

    @pytest.mark.parametrize("count", [-1, 7])
    def test_review_count_range(self, count: int) -> None:
        with pytest.raises(ValidationError):
            BranchProtectionRuleInput(pattern="main", required_approving_review_count=count)

    def test_pattern_required(self) -> None:
        with pytest.raises(ValidationError):
            BranchProtectionRuleInput(pattern="")

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BranchProtectionRuleInput(pattern="main", requires_everything=True)


class TestExecutorGraphQL:
    def test_posts_query_and_variables(self, executor: Executor, mock_github: MockGitHub) -> None:
        """Values go in ``variables``; the document is sent unchanged."""
        mock_github.add("POST", "/graphql", Reply(200, {"data": {"repository": {"id": "R_kgDO"}}}))

        data = executor.graphql(REPOSITORY_ID_QUERY, {"owner": "o", "name": 'r" }'})

        assert data == {"repository": {"id": "R_kgDO"}}
        request = mock_github.requests[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        payload = json.loads(request.content)
        assert payload == {"query": REPOSITORY_ID_QUERY, "variables": {"owner": "o", "name": 'r" }'}}

    def test_per_call_token(self, executor: Executor, mock_github: MockGitHub) -> None:
        mock_github.add("POST", "/graphql", Reply(200, {"data": {}}))
        executor.graphql("{ viewer { login } }", token="other")
        assert mock_github.requests[0].headers["Authorization"] == "Bearer other"

    def test_errors_raise(self, executor: Executor, mock_github: MockGitHub) -> None:
        body = {
            "data": {"repository": None},
            "errors": [{"type": "NOT_FOUND", "message": "Could not resolve to a Repository"}],
        }
        mock_github.add("POST", "/graphql", Reply(200, body))

        with pytest.raises(GitHubRequestError) as exc_info:
            executor.graphql(REPOSITORY_ID_QUERY, {"owner": "o", "name": "missing"})

        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert "Could not resolve" in str(exc_info.value)
        assert len(mock_github.requests) == 1

    def test_missing_data(self, executor: Executor, mock_github: MockGitHub) -> None:
        mock_github.add("POST", "/graphql", Reply(200, {}))
        with pytest.raises(GitHubRequestError, match="No data returned"):
            executor.graphql("{ viewer { login } }")

    def test_http_failure_retried(self, executor: Executor, mock_github: MockGitHub) -> None:
        mock_github.add("POST", "/graphql", Reply(502), Reply(200, {"data": {"viewer": {"login": "me"}}}))
        assert executor.graphql("{ viewer { login } }") == {"viewer": {"login": "me"}}
        assert mock_github.count("POST", "/graphql") == 2

    def test_unauthorized(self, executor: Executor, mock_github: MockGitHub) -> None:
        mock_github.add("POST", "/graphql", Reply(401, {"message": "Bad credentials"}))
        with pytest.raises(GitHubRequestError) as exc_info:
            executor.graphql("{ viewer { login } }")
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED

    def test_enterprise_endpoint(self) -> None:
        mock = MockGitHub()
        mock.add("POST", "/api/graphql", Reply(200, {"data": {"ok": True}}))
        config = EngineConfig(base_url="https://ghe.example.com/api/v3")
        with Executor(config, transport=mock.transport) as executor:
            assert executor.graphql("{ ok }") == {"ok": True}
        assert str(mock.requests[0].url) == "https://ghe.example.com/api/graphql"

    def test_malformed_envelope(self, executor: Executor, mock_github: MockGitHub) -> None:
        mock_github.add("POST", "/graphql", lambda request: httpx.Response(200, json={"data": [1, 2]}))
        with pytest.raises(GitHubRequestError, match="Unexpected GraphQL response"):
            executor.graphql("{ ok }")
