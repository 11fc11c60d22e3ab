"""Errors raised by the LeetCode GraphQL clients."""

from __future__ import annotations

from typing import Any, Sequence


class LeetCodeError(Exception):
    """Base class for every failure talking to LeetCode."""


class TransportError(LeetCodeError):
    """Network failure or non-2xx HTTP status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(LeetCodeError):
    """The payload could not be decompressed, parsed or validated."""


class UpstreamError(LeetCodeError):
    """The GraphQL envelope carried an ``errors`` list."""

    def __init__(self, errors: Sequence[Any]) -> None:
        self.errors = list(errors)
        messages = [
            str(err.get("message", err)) if isinstance(err, dict) else str(err)
            for err in self.errors
        ]
        super().__init__("GraphQL errors: " + "; ".join(messages))


class IdentityNotAvailable(LeetCodeError):
    """LeetCode has no public profile for the username."""

    def __init__(self, username: str) -> None:
        super().__init__(f"user {username!r} is not available")
        self.username = username


class MissingAggregateStat(LeetCodeError):
    """The profile lacks the ``All`` difficulty submission stat."""

    def __init__(self, username: str) -> None:
        super().__init__(f"missing AC 'All' stat for {username!r}")
        self.username = username
