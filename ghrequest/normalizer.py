"""Response Normalizer - Maps decoded JSON items into ResultRecords.

Derived fields live on the record, never inside ``data``. Missing optional
source fields simply leave the derived field unset.
"""

from __future__ import annotations

import copy
from typing import Any

from ghrequest.models import DEFAULT_WEB_URL, ResourceContext, ResultRecord


# API collection -> (web path segment, item field holding the identifier)
_COLLECTION_ROUTES: dict[str, tuple[str, str]] = {
    "issues": ("issues", "number"),
    "pulls": ("pull", "number"),
    "branches": ("tree", "name"),
    "releases": ("releases/tag", "tag_name"),
    "milestones": ("milestone", "number"),
    "commits": ("commit", "sha"),
}


def normalize(item: Any, context: ResourceContext | None = None) -> ResultRecord:
    """Normalize one decoded item. Applying it to its own output is a no-op.

    Args:
        item: A decoded JSON value, or a ResultRecord to re-normalize.
        context: Owner/repo information for URL derivation.

    Returns:
        ResultRecord holding a private copy of the item.
    """
    if isinstance(item, ResultRecord):
        item = item.data

    data = copy.deepcopy(item)
    if not isinstance(data, dict):
        return ResultRecord(data=data)

    return ResultRecord(
        data=data,
        canonical_url=_canonical_url(data, context),
        repository_url=_repository_url(data, context),
        resource_id=_resource_id(data),
    )


def _canonical_url(item: dict[str, Any], context: ResourceContext | None) -> str | None:
    html_url = item.get("html_url")
    if isinstance(html_url, str) and html_url:
        return html_url

    web_url = context.web_url if context is not None else DEFAULT_WEB_URL

    if context is not None and context.repository_url:
        route = _COLLECTION_ROUTES.get(context.collection or "")
        if route is not None:
            segment, key = route
            value = item.get(key)
            if value is not None and value != "":
                return f"{context.repository_url}/{segment}/{value}"
        elif context.collection is None:
            return context.repository_url

    full_name = item.get("full_name")
    if isinstance(full_name, str) and "/" in full_name:
        return f"{web_url}/{full_name}"

    login = item.get("login")
    if isinstance(login, str) and login:
        return f"{web_url}/{login}"

    return None


def _repository_url(item: dict[str, Any], context: ResourceContext | None) -> str | None:
    if context is not None and context.repository_url:
        return context.repository_url
    repository = item.get("repository")
    if isinstance(repository, dict):
        html_url = repository.get("html_url")
        if isinstance(html_url, str) and html_url:
            return html_url
    return None


def _resource_id(item: dict[str, Any]) -> int | None:
    value = item.get("id")
    # bool is an int subclass
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    return None
