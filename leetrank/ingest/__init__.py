"""Ingestion helpers."""

from __future__ import annotations

import httpx

from leetrank.ingest.identity import IdentityStatsClient
from leetrank.ingest.ranking import RankingPageClient
from leetrank.ingest.transport import GraphQLTransport


def build_clients(
    session: httpx.AsyncClient | None = None,
) -> tuple[GraphQLTransport, RankingPageClient, IdentityStatsClient]:
    """Create both LeetCode clients over one shared transport."""
    transport = GraphQLTransport(session=session)
    return transport, RankingPageClient(transport), IdentityStatsClient(transport)
