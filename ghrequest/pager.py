"""Pager - Follows ``Link: rel="next"`` relations across response pages.

Pagination is strictly sequential: each page's continuation comes from the
previous response. Records are yielded lazily as pages arrive.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Iterator

from ghrequest.errors import decode_body
from ghrequest.models import CallDescriptor, RawPage, ResourceContext, ResultRecord
from ghrequest.normalizer import normalize

if TYPE_CHECKING:
    from ghrequest.cancellation import CancellationToken
    from ghrequest.executor import Executor

logger = logging.getLogger(__name__)

# <url>; rel="next"; title="..." (RFC 5988). Params stop at the next comma or '<'.
_LINK_PATTERN = re.compile(r"<([^>]*)>((?:\s*;\s*[^;,<]+)*)")
_REL_PATTERN = re.compile(r'rel\s*=\s*"?([^";]+)"?', re.IGNORECASE)


def parse_link_header(value: str | None) -> dict[str, str]:
    """Parse a Link header into {rel: url}. The first URL wins per rel."""
    links: dict[str, str] = {}
    if not value:
        return links
    for match in _LINK_PATTERN.finditer(value):
        url, params = match.groups()
        rel = _REL_PATTERN.search(params)
        if rel is None:
            continue
        for name in rel.group(1).split():
            links.setdefault(name.lower(), url.strip())
    return links


def next_link(page: RawPage) -> str | None:
    """URL of the next page, or None on the terminal page."""
    header = ", ".join(page.headers.get_list("link"))
    return parse_link_header(header).get("next")


def page_items(body: Any) -> list[Any]:
    """Split a decoded page body into items.

    Arrays yield their elements, search results ({"items": [...]}) yield
    their items, any other value is a single item, empty bodies yield nothing.
    """
    if body is None:
        return []
    if isinstance(body, list):
        return body
    if isinstance(body, dict) and isinstance(body.get("items"), list):
        return body["items"]
    return [body]


class Pager:
    """Drains paginated endpoints through an Executor.

    Usage:
        pager = Pager(executor)
        for record in pager.drain(descriptor):
            ...
    """

    def __init__(self, executor: Executor) -> None:
        self._executor = executor

    def drain(
        self,
        descriptor: CallDescriptor,
        context: ResourceContext | None = None,
        cancel: CancellationToken | None = None,
    ) -> Iterator[ResultRecord]:
        """Lazily yield every record across all pages.

        The descriptor is validated eagerly. The returned iterator is finite
        and single-use: restart by calling ``drain`` again.

        Args:
            descriptor: The first page's request.
            context: Owner/repo context for normalization. Derived from the
                descriptor's path when omitted.
            cancel: Checked before each page request.

        Raises:
            InvalidDescriptor: Immediately, if the descriptor cannot be built.
            GitHubRequestError: From the iterator, when any page fails.
            CanceledError: From the iterator, when cancellation is requested.
        """
        self._executor.url_for(descriptor)
        if context is None:
            context = ResourceContext.from_path(descriptor.path, self._executor.web_url)
        return self._drain(descriptor, context, cancel)

    def _drain(
        self,
        descriptor: CallDescriptor,
        context: ResourceContext,
        cancel: CancellationToken | None,
    ) -> Iterator[ResultRecord]:
        visited: set[str] = set()
        current = descriptor
        page_number = 0

        while True:
            if cancel is not None:
                cancel.raise_if_cancelled()

            visited.add(self._executor.url_for(current))
            page = self._executor.send(current, cancel=cancel)
            page_number += 1

            items = page_items(decode_body(page))
            logger.debug("Page %d of %s: %d items", page_number, page.url, len(items))
            for item in items:
                yield normalize(item, context)

            url = next_link(page)
            if url is None:
                return

            following = current.with_target(url)
            if self._executor.url_for(following) in visited:
                logger.warning(
                    "Stopping pagination: next link %s was already visited", url
                )
                return
            current = following
