"""Error taxonomy and response classification.

Every non-2xx response and every transport failure is mapped onto a
ClassifiedError. The retry policy reads ``retryable``; callers read ``kind``.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from ghrequest.models import ClassifiedError, ErrorKind, RawPage


class EngineError(Exception):
    """Base class for engine errors."""


class InvalidDescriptor(EngineError):
    """Raised when a CallDescriptor cannot be turned into a request."""


class CanceledError(EngineError):
    """Raised when a cancellation check fires."""


class GitHubRequestError(EngineError):
    """Raised when a request ends in a classified failure.

    Branch on ``kind`` rather than on the message text.
    """

    def __init__(self, error: ClassifiedError) -> None:
        self.error = error
        if error.status is not None:
            super().__init__(f"{error.kind.value} ({error.status}): {error.message}")
        else:
            super().__init__(f"{error.kind.value}: {error.message}")

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @property
    def status(self) -> int | None:
        return self.error.status

    @property
    def retryable(self) -> bool:
        return self.error.retryable


_GRAPHQL_ERROR_KINDS = {
    "NOT_FOUND": ErrorKind.NOT_FOUND,
    "FORBIDDEN": ErrorKind.UNAUTHORIZED,
    "UNAUTHORIZED": ErrorKind.UNAUTHORIZED,
    "RATE_LIMITED": ErrorKind.RATE_LIMITED,
    "UNPROCESSABLE": ErrorKind.VALIDATION,
    "ARGUMENT_ERROR": ErrorKind.VALIDATION,
    "INTERNAL": ErrorKind.SERVER_ERROR,
    "SERVICE_UNAVAILABLE": ErrorKind.SERVER_ERROR,
}

_RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR, ErrorKind.NETWORK})


def has_rate_limit_signal(headers: httpx.Headers) -> bool:
    """True if headers show the request was throttled."""
    if "retry-after" in headers:
        return True
    return headers.get("x-ratelimit-remaining", "").strip() == "0"


def classify(page: RawPage) -> ClassifiedError | None:
    """Classify a response. Returns None for 2xx."""
    status = page.status_code
    if page.is_success:
        return None

    throttled = has_rate_limit_signal(page.headers)

    if status == 429 or (status == 403 and throttled):
        kind = ErrorKind.RATE_LIMITED
    elif status in (401, 403):
        kind = ErrorKind.UNAUTHORIZED
    elif status == 404:
        kind = ErrorKind.NOT_FOUND
    elif status == 422:
        return ClassifiedError(
            kind=ErrorKind.VALIDATION,
            message=_validation_message(page),
            status=status,
            retryable=False,
        )
    elif 500 <= status < 600:
        kind = ErrorKind.SERVER_ERROR
    else:
        kind = ErrorKind.UNKNOWN

    return ClassifiedError(
        kind=kind,
        message=_error_message(page),
        status=status,
        retryable=kind in _RETRYABLE_KINDS,
    )


def classify_exception(exc: httpx.RequestError) -> ClassifiedError:
    """Classify a request that produced no usable response.

    Transport failures are retryable NETWORK errors. A redirect loop is not a
    transient condition and comes back as a non-retryable UNKNOWN.
    """
    if isinstance(exc, httpx.TooManyRedirects):
        return ClassifiedError(kind=ErrorKind.UNKNOWN, message=f"Too many redirects: {exc}")
    if isinstance(exc, httpx.TimeoutException):
        message = f"Request timeout: {exc}"
    elif isinstance(exc, httpx.ConnectError):
        message = f"Connection error: {exc}"
    else:
        message = f"Request error: {exc}"
    return ClassifiedError(kind=ErrorKind.NETWORK, message=message, retryable=True)


def graphql_error(errors: list[dict[str, Any]], status: int | None = None) -> ClassifiedError:
    """Map a GraphQL ``errors`` list onto the taxonomy using the first typed entry."""
    kind = ErrorKind.UNKNOWN
    for entry in errors:
        error_type = entry.get("type")
        if isinstance(error_type, str) and error_type in _GRAPHQL_ERROR_KINDS:
            kind = _GRAPHQL_ERROR_KINDS[error_type]
            break

    messages = [str(entry.get("message")) for entry in errors if entry.get("message")]
    return ClassifiedError(
        kind=kind,
        message="; ".join(messages) or "GraphQL request failed",
        status=status,
        retryable=kind in _RETRYABLE_KINDS,
    )


def decode_body(page: RawPage) -> Any:
    """Decode a successful page's JSON body, raising a classified error if malformed."""
    try:
        return page.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise GitHubRequestError(
            ClassifiedError(
                kind=ErrorKind.UNKNOWN,
                message=f"Response body is not valid JSON: {e}",
                status=page.status_code,
            )
        ) from e


def _parsed_body(page: RawPage) -> Any:
    """Best-effort JSON parse of an error body. None if not JSON."""
    try:
        return page.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _error_message(page: RawPage) -> str:
    body = _parsed_body(page)
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    text = page.text.strip()
    if text:
        return text
    return httpx.codes.get_reason_phrase(page.status_code) or f"HTTP {page.status_code}"


def _validation_message(page: RawPage) -> str:
    """Build a 422 message from GitHub's structured ``errors`` list when present.

    GitHub entries look like {"resource": "Issue", "field": "title",
    "code": "missing_field"} or carry a free-form "message".
    """
    body = _parsed_body(page)
    if not isinstance(body, dict):
        return page.text.strip() or "Validation failed"

    details: list[str] = []
    for entry in body.get("errors") or []:
        if isinstance(entry, str):
            details.append(entry)
        elif isinstance(entry, dict):
            if entry.get("message"):
                details.append(str(entry["message"]))
            else:
                target = ".".join(str(entry[k]) for k in ("resource", "field") if entry.get(k))
                code = entry.get("code", "invalid")
                details.append(f"{target} {code}".strip())

    summary = str(body.get("message") or "Validation failed")
    if details:
        return f"{summary}: {'; '.join(details)}"
    return summary
