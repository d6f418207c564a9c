"""
Correlation ids.

An HTTP request opens a correlation scope in the middleware; a webhook run
nests a second scope named after its request id. Logs and error payloads
read both from here.

Usage:
    with correlator.scope("R1234xyz"):
        with correlator.scope("digest-1", request_id="digest-1"):
            get_correlation_id()  # R1234xyz::digest-1
            get_request_id()      # digest-1
"""

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import nanoid

REQUEST_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
REQUEST_ID_SIZE = 12


def generate_request_id(size: int = REQUEST_ID_SIZE) -> str:
    """Random id matching ``^[A-Za-z0-9_-]{1,100}$``."""
    return nanoid.generate(size=size, alphabet=REQUEST_ID_ALPHABET)


@dataclass(frozen=True)
class Correlation:
    correlation_id: str = ""
    request_id: str | None = None

    def nested(self, scope_id: str, request_id: str | None) -> "Correlation":
        return Correlation(
            correlation_id=f"{self.correlation_id}::{scope_id}" if self.correlation_id else scope_id,
            request_id=request_id or self.request_id,
        )


_current: contextvars.ContextVar[Correlation] = contextvars.ContextVar(
    "correlation", default=Correlation()
)


class Correlator:
    """Nested correlation scopes kept in a context variable."""

    @contextmanager
    def scope(self, scope_id: str, request_id: str | None = None) -> Iterator[str]:
        correlation = _current.get().nested(scope_id, request_id)
        token = _current.set(correlation)
        try:
            yield correlation.correlation_id
        finally:
            _current.reset(token)

    @property
    def correlation_id(self) -> str:
        return _current.get().correlation_id or "-"

    @property
    def request_id(self) -> str | None:
        return _current.get().request_id


correlator = Correlator()


def get_correlation_id() -> str:
    return correlator.correlation_id


def get_request_id() -> str | None:
    """Webhook request id of the current run, if any."""
    return correlator.request_id
