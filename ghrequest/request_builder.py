"""Request Builder - Turns a CallDescriptor into a ConcreteRequest.

Pure function of the descriptor and config: no I/O, no state.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote, urlencode, urlsplit

from pydantic import BaseModel

from ghrequest.errors import InvalidDescriptor
from ghrequest.models import CallDescriptor, ConcreteRequest, EngineConfig

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "PATCH", "PUT", "DELETE")


def build(descriptor: CallDescriptor, config: EngineConfig) -> ConcreteRequest:
    """Assemble URL, headers and body for a descriptor.

    Args:
        descriptor: The call to build.
        config: Supplies base URL, default Accept, API version and token.

    Returns:
        ConcreteRequest with a fully-qualified URL.

    Raises:
        InvalidDescriptor: If the method is unsupported or the path is empty
            or carries its own query string.
    """
    method = (descriptor.method or "").strip().upper()
    if method not in ALLOWED_METHODS:
        raise InvalidDescriptor(
            f"Unsupported method '{descriptor.method}'. Expected one of {', '.join(ALLOWED_METHODS)}"
        )

    url = _build_url(descriptor, config)

    headers: dict[str, str] = {
        "Accept": descriptor.accept or config.accept,
        "User-Agent": config.user_agent,
    }
    if config.api_version:
        headers["X-GitHub-Api-Version"] = config.api_version

    token = descriptor.token or config.token
    if token:
        if _same_origin(url, config):
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning(
                "Not sending credentials to %s: not the configured API host", urlsplit(url).netloc
            )

    content: bytes | None = None
    if descriptor.body is not None:
        headers["Content-Type"] = "application/json"
        content = _serialize_body(descriptor.body)

    return ConcreteRequest(method=method, url=url, headers=headers, content=content)


def encode_query(query: tuple[tuple[str, Any], ...]) -> str:
    """URL-encode query pairs in order. None values are dropped."""
    pairs = [(key, _query_value(value)) for key, value in query if value is not None]
    return urlencode(pairs, quote_via=quote)


def _build_url(descriptor: CallDescriptor, config: EngineConfig) -> str:
    path = (descriptor.path or "").strip()
    if not path:
        raise InvalidDescriptor("Descriptor path must not be empty")

    if path.startswith(("http://", "https://")):
        url = path
    else:
        if "?" in path:
            raise InvalidDescriptor(
                f"Path '{path}' contains a query string; pass query parameters separately"
            )
        url = f"{config.base_url.rstrip('/')}/{path.lstrip('/')}"

    query_string = encode_query(descriptor.query)
    if query_string:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{query_string}"
    return url


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _serialize_body(body: Any) -> bytes:
    if isinstance(body, BaseModel):
        body = body.model_dump(mode="json", by_alias=True, exclude_none=True)
    try:
        return json.dumps(body).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise InvalidDescriptor(f"Body is not JSON-serializable: {e}") from e


def _origin(url: str) -> tuple[str, str]:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower()


def _same_origin(url: str, config: EngineConfig) -> bool:
    """True when ``url`` points at the configured REST or GraphQL host."""
    return _origin(url) in (_origin(config.base_url), _origin(config.graphql_endpoint))
