"""Thin GitHub operations built on the Executor.

Each operation resolves owner/repo into a path, builds a CallDescriptor and
hands it to the engine. Results come back as ResultRecords.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator
from urllib.parse import quote

from ghrequest.cancellation import CancellationToken
from ghrequest.errors import GitHubRequestError
from ghrequest.executor import Executor
from ghrequest.graphql import (
    APP_ID_QUERY,
    BRANCH_PROTECTION_RULES_QUERY,
    CREATE_BRANCH_PROTECTION_RULE_MUTATION,
    DELETE_BRANCH_PROTECTION_RULE_MUTATION,
    REPOSITORY_ID_QUERY,
    TEAM_ID_QUERY,
    USER_ID_QUERY,
    BranchProtectionRuleInput,
)
from ghrequest.models import (
    CallDescriptor,
    ClassifiedError,
    ErrorKind,
    ResourceContext,
    ResultRecord,
)
from ghrequest.normalizer import normalize

logger = logging.getLogger(__name__)

BRANCH_PROTECTION_RULES_COLLECTION = "branch_protection_rules"


def _segment(value: str) -> str:
    """Percent-encode one path segment (branch names may contain '/')."""
    return quote(str(value), safe="")


def _not_found(message: str) -> GitHubRequestError:
    return GitHubRequestError(ClassifiedError(kind=ErrorKind.NOT_FOUND, message=message))


class GitHubClient:
    """Representative repository, branch, issue, user and alert operations.

    Every method takes an optional per-call ``token`` and ``cancel`` token,
    forwarded unchanged to the engine.
    """

    def __init__(self, executor: Executor) -> None:
        self._executor = executor

    def _repo_path(self, owner: str, repo: str, *rest: str) -> str:
        parts = ["repos", _segment(owner), _segment(repo), *rest]
        return "/" + "/".join(parts)

    def _context(self, owner: str, repo: str, collection: str | None = None) -> ResourceContext:
        return ResourceContext(
            owner=owner, repo=repo, collection=collection, web_url=self._executor.web_url
        )

    def _get(
        self,
        path: str,
        token: str | None,
        cancel: CancellationToken | None,
        context: ResourceContext | None = None,
        query: Any = None,
    ) -> ResultRecord | None:
        descriptor = CallDescriptor(method="GET", path=path, query=query, token=token)
        return self._executor.invoke(descriptor, context=context, cancel=cancel)

    def _list(
        self,
        path: str,
        token: str | None,
        cancel: CancellationToken | None,
        context: ResourceContext | None = None,
        query: Any = None,
    ) -> Iterator[ResultRecord]:
        descriptor = CallDescriptor(method="GET", path=path, query=query, token=token)
        return self._executor.paginate(descriptor, context=context, cancel=cancel)

    def _exists(self, path: str, token: str | None, cancel: CancellationToken | None) -> bool:
        """204 means yes, NotFound means no. Other failures propagate."""
        try:
            self._executor.send(CallDescriptor(method="GET", path=path, token=token), cancel=cancel)
        except GitHubRequestError as e:
            if e.kind is ErrorKind.NOT_FOUND:
                return False
            raise
        return True

    # -------------------------------------------------------------------------
    # Repositories
    # -------------------------------------------------------------------------

    def get_repository(
        self, owner: str, repo: str, token: str | None = None, cancel: CancellationToken | None = None
    ) -> ResultRecord:
        record = self._get(self._repo_path(owner, repo), token, cancel, self._context(owner, repo))
        if record is None:
            raise _not_found(f"Repository {owner}/{repo} returned no content")
        return record

    def list_repositories(
        self,
        owner: str | None = None,
        type: str | None = None,
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> Iterator[ResultRecord]:
        """Repositories of ``owner``, or of the authenticated user when omitted."""
        path = f"/users/{_segment(owner)}/repos" if owner else "/user/repos"
        return self._list(path, token, cancel, query={"type": type})

    def list_topics(
        self, owner: str, repo: str, token: str | None = None, cancel: CancellationToken | None = None
    ) -> list[str]:
        record = self._get(self._repo_path(owner, repo, "topics"), token, cancel)
        if record is None or not isinstance(record.data, dict):
            return []
        return list(record.data.get("names") or [])

    # -------------------------------------------------------------------------
    # Branches and REST branch protection
    # -------------------------------------------------------------------------

    def list_branches(
        self,
        owner: str,
        repo: str,
        protected: bool | None = None,
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> Iterator[ResultRecord]:
        return self._list(
            self._repo_path(owner, repo, "branches"),
            token,
            cancel,
            self._context(owner, repo, "branches"),
            query={"protected": protected},
        )

    def get_branch(
        self,
        owner: str,
        repo: str,
        branch: str,
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> ResultRecord | None:
        return self._get(
            self._repo_path(owner, repo, "branches", _segment(branch)),
            token,
            cancel,
            self._context(owner, repo, "branches"),
        )

    def get_branch_protection(
        self,
        owner: str,
        repo: str,
        branch: str,
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> ResultRecord | None:
        return self._get(
            self._repo_path(owner, repo, "branches", _segment(branch), "protection"),
            token,
            cancel,
            self._context(owner, repo, "branch_protection"),
        )

    def set_branch_protection(
        self,
        owner: str,
        repo: str,
        branch: str,
        settings: dict[str, Any],
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> ResultRecord | None:
        """Replace the branch's protection with ``settings`` (REST PUT body)."""
        descriptor = CallDescriptor(
            method="PUT",
            path=self._repo_path(owner, repo, "branches", _segment(branch), "protection"),
            body=settings,
            token=token,
        )
        return self._executor.invoke(
            descriptor, context=self._context(owner, repo, "branch_protection"), cancel=cancel
        )

    def remove_branch_protection(
        self,
        owner: str,
        repo: str,
        branch: str,
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> None:
        descriptor = CallDescriptor(
            method="DELETE",
            path=self._repo_path(owner, repo, "branches", _segment(branch), "protection"),
            token=token,
        )
        self._executor.send(descriptor, cancel=cancel)

    # -------------------------------------------------------------------------
    # Branch pattern protection rules (GraphQL)
    # -------------------------------------------------------------------------

    def list_branch_pattern_protection_rules(
        self, owner: str, repo: str, token: str | None = None, cancel: CancellationToken | None = None
    ) -> Iterator[ResultRecord]:
        """Lazily yield every rule, following GraphQL ``pageInfo`` cursors."""
        context = self._context(owner, repo, BRANCH_PROTECTION_RULES_COLLECTION)
        cursor: str | None = None
        seen_cursors: set[str] = set()

        while True:
            data = self._executor.graphql(
                BRANCH_PROTECTION_RULES_QUERY,
                {"owner": owner, "name": repo, "cursor": cursor},
                token=token,
                cancel=cancel,
            )
            repository = data.get("repository")
            if repository is None:
                raise _not_found(f"Repository {owner}/{repo} not found")

            connection = repository.get("branchProtectionRules") or {}
            for node in connection.get("nodes") or []:
                yield normalize(node, context)

            page_info = connection.get("pageInfo") or {}
            cursor = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not cursor or cursor in seen_cursors:
                return
            seen_cursors.add(cursor)

    def new_branch_pattern_protection_rule(
        self,
        owner: str,
        repo: str,
        rule: BranchProtectionRuleInput,
        push_actors: Iterable[str] = (),
        review_dismissal_actors: Iterable[str] = (),
        bypass_pull_request_actors: Iterable[str] = (),
        bypass_force_push_actors: Iterable[str] = (),
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> ResultRecord:
        """Create a branch pattern protection rule.

        Actor names are resolved to node ids first: ``org/team-slug`` names a
        team, anything else a user, falling back to a GitHub App slug.

        Raises:
            GitHubRequestError: NotFound for an unknown repository or actor,
                or whatever the mutation itself fails with.
        """
        repository_id = self.repository_node_id(owner, repo, token=token, cancel=cancel)

        updates: dict[str, Any] = {}
        for field, actors in (
            ("push_actor_ids", push_actors),
            ("review_dismissal_actor_ids", review_dismissal_actors),
            ("bypass_pull_request_actor_ids", bypass_pull_request_actors),
            ("bypass_force_push_actor_ids", bypass_force_push_actors),
        ):
            names = list(actors)
            if names:
                updates[field] = self.resolve_actor_ids(names, token=token, cancel=cancel)

        if updates:
            # Revalidate so the parent flags (restricts_pushes, ...) are implied.
            rule = BranchProtectionRuleInput.model_validate(
                {**rule.model_dump(exclude_none=True), **updates}
            )

        data = self._executor.graphql(
            CREATE_BRANCH_PROTECTION_RULE_MUTATION,
            {"input": rule.to_variables(repository_id)},
            token=token,
            cancel=cancel,
        )
        created = (data.get("createBranchProtectionRule") or {}).get("branchProtectionRule")
        if created is None:
            raise GitHubRequestError(
                ClassifiedError(
                    kind=ErrorKind.UNKNOWN,
                    message=f"No rule returned for pattern '{rule.pattern}'",
                )
            )
        return normalize(created, self._context(owner, repo, BRANCH_PROTECTION_RULES_COLLECTION))

    def remove_branch_pattern_protection_rule(
        self,
        owner: str,
        repo: str,
        pattern: str,
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> None:
        rule_id = None
        for record in self.list_branch_pattern_protection_rules(owner, repo, token=token, cancel=cancel):
            if record.data.get("pattern") == pattern:
                rule_id = record.data.get("id")
                break
        if rule_id is None:
            raise _not_found(f"No branch protection rule with pattern '{pattern}' in {owner}/{repo}")

        self._executor.graphql(
            DELETE_BRANCH_PROTECTION_RULE_MUTATION,
            {"input": {"branchProtectionRuleId": rule_id}},
            token=token,
            cancel=cancel,
        )

    def repository_node_id(
        self, owner: str, repo: str, token: str | None = None, cancel: CancellationToken | None = None
    ) -> str:
        data = self._executor.graphql(
            REPOSITORY_ID_QUERY, {"owner": owner, "name": repo}, token=token, cancel=cancel
        )
        repository = data.get("repository")
        if not repository or not repository.get("id"):
            raise _not_found(f"Repository {owner}/{repo} not found")
        return repository["id"]

    def resolve_actor_ids(
        self,
        names: Iterable[str],
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[str]:
        """Resolve user logins, ``org/team`` slugs and app slugs to node ids, in order."""
        return [self._resolve_actor_id(name, token, cancel) for name in names]

    def _resolve_actor_id(
        self, name: str, token: str | None, cancel: CancellationToken | None
    ) -> str:
        if "/" in name:
            org, slug = name.split("/", 1)
            data = self._executor.graphql(
                TEAM_ID_QUERY, {"org": org, "slug": slug}, token=token, cancel=cancel
            )
            team = (data.get("organization") or {}).get("team")
            if not team:
                raise _not_found(f"Team '{name}' not found")
            return team["id"]

        try:
            data = self._executor.graphql(USER_ID_QUERY, {"login": name}, token=token, cancel=cancel)
            user = data.get("user")
            if user:
                return user["id"]
        except GitHubRequestError as e:
            if e.kind is not ErrorKind.NOT_FOUND:
                raise

        logger.debug("No user named %s, trying GitHub App slug", name)
        try:
            data = self._executor.graphql(APP_ID_QUERY, {"slug": name}, token=token, cancel=cancel)
        except GitHubRequestError as e:
            if e.kind is ErrorKind.NOT_FOUND:
                raise _not_found(f"Actor '{name}' not found as user or app") from e
            raise
        app = data.get("app")
        if not app:
            raise _not_found(f"Actor '{name}' not found as user or app")
        return app["id"]

    # -------------------------------------------------------------------------
    # Issues and assignees
    # -------------------------------------------------------------------------

    def list_issues(
        self,
        owner: str,
        repo: str,
        state: str = "open",
        token: str | None = None,
        cancel: CancellationToken | None = None,
        **filters: Any,
    ) -> Iterator[ResultRecord]:
        """Issues of a repository. ``filters`` become query parameters (labels, since, ...)."""
        return self._list(
            self._repo_path(owner, repo, "issues"),
            token,
            cancel,
            self._context(owner, repo, "issues"),
            query={"state": state, **filters},
        )

    def get_issue(
        self,
        owner: str,
        repo: str,
        number: int,
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> ResultRecord | None:
        return self._get(
            self._repo_path(owner, repo, "issues", str(number)),
            token,
            cancel,
            self._context(owner, repo, "issues"),
        )

    def list_assignees(
        self, owner: str, repo: str, token: str | None = None, cancel: CancellationToken | None = None
    ) -> Iterator[ResultRecord]:
        return self._list(
            self._repo_path(owner, repo, "assignees"),
            token,
            cancel,
            self._context(owner, repo, "assignees"),
        )

    def test_assignee(
        self,
        owner: str,
        repo: str,
        assignee: str,
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> bool:
        """True if ``assignee`` can be assigned issues in the repository."""
        return self._exists(
            self._repo_path(owner, repo, "assignees", _segment(assignee)), token, cancel
        )

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def get_user(
        self, login: str | None = None, token: str | None = None, cancel: CancellationToken | None = None
    ) -> ResultRecord | None:
        """A user by login, or the authenticated user when ``login`` is None."""
        path = f"/users/{_segment(login)}" if login else "/user"
        return self._get(path, token, cancel)

    # -------------------------------------------------------------------------
    # Vulnerability alerts
    # -------------------------------------------------------------------------

    def get_vulnerability_alert_status(
        self, owner: str, repo: str, token: str | None = None, cancel: CancellationToken | None = None
    ) -> bool:
        """True when Dependabot vulnerability alerts are enabled."""
        return self._exists(self._repo_path(owner, repo, "vulnerability-alerts"), token, cancel)

    def enable_vulnerability_alerts(
        self, owner: str, repo: str, token: str | None = None, cancel: CancellationToken | None = None
    ) -> None:
        descriptor = CallDescriptor(
            method="PUT", path=self._repo_path(owner, repo, "vulnerability-alerts"), token=token
        )
        self._executor.send(descriptor, cancel=cancel)

    def disable_vulnerability_alerts(
        self, owner: str, repo: str, token: str | None = None, cancel: CancellationToken | None = None
    ) -> None:
        descriptor = CallDescriptor(
            method="DELETE", path=self._repo_path(owner, repo, "vulnerability-alerts"), token=token
        )
        self._executor.send(descriptor, cancel=cancel)

    # -------------------------------------------------------------------------
    # Rate limit
    # -------------------------------------------------------------------------

    def get_rate_limit(
        self, token: str | None = None, cancel: CancellationToken | None = None
    ) -> ResultRecord | None:
        return self._get("/rate_limit", token, cancel)
