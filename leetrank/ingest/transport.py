"""GraphQL-over-HTTP transport for leetcode.com."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from leetrank.ingest.errors import DecodeError, TransportError, UpstreamError

logger = logging.getLogger(__name__)

LEETCODE_GRAPHQL_URL = "https://leetcode.com/graphql"

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    # br is decoded by httpx when the brotli package is installed
    "Accept-Encoding": "gzip, deflate, br",
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36"
    ),
    "Origin": "https://leetcode.com",
    "Referer": "https://leetcode.com/contest/globalranking/",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
}


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


def truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[:limit] + "..."


class GraphQLTransport:
    def __init__(
        self,
        *,
        url: str | None = None,
        session: httpx.AsyncClient | None = None,
        debug: bool | None = None,
    ) -> None:
        self.url = url or os.environ.get("LEETCODE_GRAPHQL_URL", LEETCODE_GRAPHQL_URL)
        self.session = session or httpx.AsyncClient(timeout=30.0)
        self.debug = _env_flag("LEETCODE_DEBUG") if debug is None else debug

    async def close(self) -> None:
        await self.session.aclose()

    async def execute(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """POST one GraphQL document and return the ``data`` object."""
        payload = {"query": query, "variables": variables}
        try:
            response = await self.session.post(self.url, json=payload, headers=DEFAULT_HEADERS)
        except httpx.DecodingError as exc:
            raise DecodeError(f"decompress: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"http: {exc}") from exc

        if self.debug:
            logger.debug(
                "POST %s status=%s body=%s",
                self.url,
                response.status_code,
                truncate(response.text, 800),
            )

        if not response.is_success:
            raise TransportError(
                f"non-2xx: {response.status_code} body: {truncate(response.text, 400)}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise DecodeError(f"unmarshal: {exc}") from exc
        if not isinstance(body, dict):
            raise DecodeError(f"unexpected envelope type {type(body).__name__}")

        errors = body.get("errors")
        if errors:
            raise UpstreamError(errors if isinstance(errors, list) else [errors])

        data = body.get("data")
        if not isinstance(data, dict):
            raise DecodeError("envelope has no data object")
        return data
