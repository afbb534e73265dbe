"""Executor - Sends GitHub REST and GraphQL requests.

The Executor owns the HTTP client and runs the request pipeline:
build -> send -> retry policy -> classify. Paginated calls go through the
Pager, single-item calls return one normalized record.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterator

import httpx
from tenacity import RetryCallState

from ghrequest.cancellation import CancellationToken
from ghrequest.errors import (
    CanceledError,
    GitHubRequestError,
    InvalidDescriptor,
    classify,
    classify_exception,
    decode_body,
    graphql_error,
)
from ghrequest.graphql import GraphQLRequest, GraphQLResponse
from ghrequest.models import (
    CallDescriptor,
    ClassifiedError,
    ConcreteRequest,
    EngineConfig,
    ErrorKind,
    RateLimitStatus,
    RawPage,
    ResourceContext,
    ResultRecord,
)
from ghrequest.normalizer import normalize
from ghrequest.pager import Pager
from ghrequest.request_builder import build
from ghrequest.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


class Executor:
    """Executes CallDescriptors against the GitHub API.

    Usage:
        with Executor(EngineConfig(token=token)) as executor:
            repo = executor.invoke(CallDescriptor(method="GET", path="/repos/o/r"))
            for issue in executor.paginate(CallDescriptor(method="GET", path="/repos/o/r/issues")):
                ...

    The executor holds no per-call state. Independent calls may run from
    several threads; the only shared value is the advisory ``rate_limit``
    snapshot, which is replaced wholesale on each response.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        policy: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            config: Engine configuration. Defaults to public GitHub settings.
            policy: Retry policy. Defaults to one built from ``config.retry``.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
        """
        self._config = config or EngineConfig()
        self._policy = policy or RetryPolicy(self._config.retry)
        self._pager = Pager(self)
        self._rate_limit: RateLimitStatus | None = None
        self._client = httpx.Client(**self._build_client_kwargs(self._config, transport))

    def __enter__(self) -> Executor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def web_url(self) -> str:
        return self._config.web_endpoint

    @property
    def rate_limit(self) -> RateLimitStatus | None:
        """Most recently observed rate-limit budget, if any response carried one."""
        return self._rate_limit

    def _build_client_kwargs(
        self,
        config: EngineConfig,
        transport: httpx.BaseTransport | None,
    ) -> dict[str, Any]:
        """Build kwargs for httpx.Client including TLS configuration."""
        kwargs: dict[str, Any] = {
            "timeout": config.timeout,
            "follow_redirects": True,
        }

        if config.ca_bundle:
            kwargs["verify"] = config.ca_bundle
        elif not config.verify_ssl:
            kwargs["verify"] = False
        # else: use httpx default (True)

        if transport is not None:
            kwargs["transport"] = transport

        return kwargs

    def url_for(self, descriptor: CallDescriptor) -> str:
        """Fully-qualified URL a descriptor resolves to."""
        return build(descriptor, self._config).url

    def send(
        self,
        descriptor: CallDescriptor,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> RawPage:
        """Send one request, retrying per policy, and return the successful page.

        Args:
            descriptor: The call to send.
            cancel: Checked before sending and interrupts backoff sleeps.
            timeout: Per round trip timeout override in seconds.

        Returns:
            RawPage with a 2xx status.

        Raises:
            InvalidDescriptor: If the descriptor cannot be built.
            GitHubRequestError: On a classified failure, after any retries.
            CanceledError: If cancellation is requested.
        """
        if cancel is not None:
            cancel.raise_if_cancelled()

        request = build(descriptor, self._config)
        retrying = self._policy.retrying(
            sleep=self._sleeper(cancel),
            before_sleep=self._log_retry,
        )

        try:
            page = retrying(self._send_once, request, timeout)
        except httpx.RequestError as e:
            raise GitHubRequestError(classify_exception(e)) from e

        error = classify(page)
        if error is not None:
            raise GitHubRequestError(error)
        return page

    def invoke(
        self,
        descriptor: CallDescriptor,
        context: ResourceContext | None = None,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> ResultRecord | None:
        """Call a single-item endpoint. Returns None for an empty body (e.g. 204)."""
        page = self.send(descriptor, cancel=cancel, timeout=timeout)
        body = decode_body(page)
        if body is None:
            return None
        if context is None:
            context = ResourceContext.from_path(descriptor.path, self.web_url)
        return normalize(body, context)

    def paginate(
        self,
        descriptor: CallDescriptor,
        context: ResourceContext | None = None,
        cancel: CancellationToken | None = None,
    ) -> Iterator[ResultRecord]:
        """Lazily yield records from every page. See Pager.drain."""
        return self._pager.drain(descriptor, context=context, cancel=cancel)

    def graphql(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        token: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """Run a GraphQL query or mutation and return its ``data``.

        Values travel in ``variables``; the query text is never interpolated.

        Raises:
            GitHubRequestError: On HTTP failure, on a non-empty ``errors``
                list, or when no data is returned.
        """
        envelope = GraphQLRequest(query=query, variables=variables or {})
        descriptor = CallDescriptor(
            method="POST",
            path=self._config.graphql_endpoint,
            body=envelope.model_dump(),
            token=token,
        )
        page = self.send(descriptor, cancel=cancel)
        body = decode_body(page)

        try:
            result = GraphQLResponse.model_validate(body or {})
        except ValueError as e:
            raise GitHubRequestError(
                ClassifiedError(
                    kind=ErrorKind.UNKNOWN,
                    message=f"Unexpected GraphQL response: {e}",
                    status=page.status_code,
                )
            ) from e

        if result.errors:
            raise GitHubRequestError(graphql_error(result.errors, status=page.status_code))
        if result.data is None:
            raise GitHubRequestError(
                ClassifiedError(
                    kind=ErrorKind.UNKNOWN,
                    message="No data returned from GitHub GraphQL API",
                    status=page.status_code,
                )
            )
        return result.data

    def _send_once(self, request: ConcreteRequest, timeout: float | None) -> RawPage:
        """Send a single round trip. Transport errors propagate to the retry loop."""
        logger.debug("%s %s", request.method, request.url)
        try:
            response = self._client.request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                content=request.content,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except UnicodeEncodeError as e:
            # Non-ASCII in a header or URL is a caller error, not a transient one.
            raise InvalidDescriptor(
                f"Request contains characters that cannot be sent: "
                f"{e.object[e.start:e.end]!r} at position {e.start}"
            ) from e

        page = RawPage.from_response(response)
        status = RateLimitStatus.from_headers(page.headers)
        if status is not None:
            self._rate_limit = status
        return page

    def _sleeper(self, cancel: CancellationToken | None) -> Callable[[float], None]:
        """Backoff sleep that wakes up and raises CanceledError on cancellation."""

        def sleep(seconds: float) -> None:
            if cancel is None:
                time.sleep(seconds)
            elif cancel.wait(seconds):
                raise CanceledError("Operation was canceled during retry backoff")

        return sleep

    def _log_retry(self, retry_state: RetryCallState) -> None:
        decision = self._policy.decision_for(retry_state)
        request = retry_state.args[0] if retry_state.args else None
        logger.warning(
            "Retrying %s %s in %.1fs (attempt %d of %d): %s",
            getattr(request, "method", "?"),
            getattr(request, "url", "?"),
            decision.wait,
            retry_state.attempt_number + 1,
            self._policy.max_retries + 1,
            decision.reason,
        )
