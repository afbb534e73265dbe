"""Tests for normalize and ResourceContext.from_path."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ghrequest.models import ResourceContext, ResultRecord
from ghrequest.normalizer import normalize

REPO = ResourceContext(owner="octo", repo="hello", collection=None)
ISSUES = ResourceContext(owner="octo", repo="hello", collection="issues")


class TestCanonicalUrl:
    """Derivation order: html_url, collection route, repository, full_name, login."""

    def test_html_url_wins(self) -> None:
        record = normalize({"number": 3, "html_url": "https://github.com/octo/hello/pull/3"}, ISSUES)
        assert record.canonical_url == "https://github.com/octo/hello/pull/3"

    @pytest.mark.parametrize(
        "collection,item,expected",
        [
            ("issues", {"number": 12}, "https://github.com/octo/hello/issues/12"),
            ("pulls", {"number": 4}, "https://github.com/octo/hello/pull/4"),
            ("branches", {"name": "main"}, "https://github.com/octo/hello/tree/main"),
            ("releases", {"tag_name": "v1.0"}, "https://github.com/octo/hello/releases/tag/v1.0"),
            ("milestones", {"number": 2}, "https://github.com/octo/hello/milestone/2"),
            ("commits", {"sha": "abc123"}, "https://github.com/octo/hello/commit/abc123"),
        ],
    )
    def test_collection_routes(self, collection: str, item: dict, expected: str) -> None:
        context = ResourceContext(owner="octo", repo="hello", collection=collection)
        assert normalize(item, context).canonical_url == expected

    def test_repository_itself(self) -> None:
        assert normalize({"id": 1, "name": "hello"}, REPO).canonical_url == "https://github.com/octo/hello"

    def test_full_name(self) -> None:
        record = normalize({"full_name": "octo/other"}, ResourceContext())
        assert record.canonical_url == "https://github.com/octo/other"

    def test_login(self) -> None:
        assert normalize({"login": "octocat"}).canonical_url == "https://github.com/octocat"

    def test_enterprise_web_url(self) -> None:
        context = ResourceContext(owner="o", repo="r", collection="issues", web_url="https://ghe.example.com")
        assert normalize({"number": 1}, context).canonical_url == "https://ghe.example.com/o/r/issues/1"

    def test_route_missing_key_falls_through(self) -> None:
        """An issue without a number falls back to later rules."""
        assert normalize({"login": "bot"}, ISSUES).canonical_url == "https://github.com/bot"

    def test_unknown_collection(self) -> None:
        context = ResourceContext(owner="octo", repo="hello", collection="topics")
        assert normalize({"names": ["a"]}, context).canonical_url is None


class TestDerivedFields:
    def test_repository_url_from_context(self) -> None:
        assert normalize({"number": 1}, ISSUES).repository_url == "https://github.com/octo/hello"

    def test_repository_url_from_item(self) -> None:
        item = {"number": 1, "repository": {"html_url": "https://github.com/octo/x"}}
        assert normalize(item).repository_url == "https://github.com/octo/x"

    @pytest.mark.parametrize(
        "value,expected",
        [(42, 42), ("42", 42), ("MDQ6VXNlcjE=", None), (True, None), (None, None), ("٣", None), (1.5, None)],
    )
    def test_resource_id(self, value, expected) -> None:
        assert normalize({"id": value}).resource_id == expected

    def test_missing_fields_leave_derived_unset(self) -> None:
        record = normalize({"title": "x"})
        assert record == ResultRecord(data={"title": "x"})

    @pytest.mark.parametrize("item", [[1, 2], "text", 3, None])
    def test_non_object_items(self, item) -> None:
        record = normalize(item, ISSUES)
        assert record.data == item
        assert record.canonical_url is None
        assert record.repository_url is None


class TestCopySemantics:
    def test_input_not_mutated(self) -> None:
        item = {"number": 1, "labels": [{"name": "bug"}]}
        record = normalize(item, ISSUES)
        assert item == {"number": 1, "labels": [{"name": "bug"}]}
        assert "canonical_url" not in record.data

    def test_record_owns_its_data(self) -> None:
        item = {"number": 1, "labels": [{"name": "bug"}]}
        record = normalize(item, ISSUES)
        item["labels"][0]["name"] = "changed"
        assert record.data["labels"][0]["name"] == "bug"

    def test_idempotent(self) -> None:
        once = normalize({"number": 9, "id": "9"}, ISSUES)
        assert normalize(once, ISSUES) == once

    @given(
        st.dictionaries(
            st.sampled_from(["id", "number", "name", "login", "full_name", "html_url", "sha"]),
            st.one_of(st.none(), st.booleans(), st.integers(), st.text(max_size=10)),
        ),
        st.sampled_from([None, "issues", "pulls", "branches", "commits", "labels"]),
    )
    def test_idempotent_for_any_item(self, item: dict, collection) -> None:
        context = ResourceContext(owner="o", repo="r", collection=collection)
        once = normalize(item, context)
        assert normalize(once, context) == once
        assert once.data == item


class TestFromPath:
    @pytest.mark.parametrize(
        "path,owner,repo,collection",
        [
            ("/repos/o/r", "o", "r", None),
            ("/repos/o/r/issues", "o", "r", "issues"),
            ("/repos/o/r/issues/5/comments", "o", "r", "issues"),
            ("https://api.github.com/repos/o/r/pulls", "o", "r", "pulls"),
            ("https://ghe.example.com/api/v3/repos/o/r/branches", "o", "r", "branches"),
            ("/users/octocat/repos", "octocat", None, None),
            ("/orgs/acme/repos", "acme", None, None),
            ("/user/repos", None, None, None),
            ("/repos/o", None, None, None),
            ("/search/issues", None, None, None),
        ],
    )
    def test_paths(self, path: str, owner, repo, collection) -> None:
        context = ResourceContext.from_path(path)
        assert (context.owner, context.repo, context.collection) == (owner, repo, collection)

    def test_web_url_trailing_slash(self) -> None:
        context = ResourceContext.from_path("/repos/o/r", "https://ghe.example.com/")
        assert context.repository_url == "https://ghe.example.com/o/r"
