"""Cooperative cancellation for paginated drains and retry backoff."""

from __future__ import annotations

import threading

from ghrequest.errors import CanceledError


class CancellationToken:
    """Thread-safe cancellation flag.

    Usage:
        token = CancellationToken()
        for record in executor.paginate(descriptor, cancel=token):
            if done(record):
                token.cancel()
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``. Returns True early if cancelled."""
        return self._event.wait(seconds)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CanceledError("Operation was canceled")
