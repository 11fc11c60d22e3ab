import gzip
import json

import brotli
import httpx
import pytest
import respx

from conftest import identity_payload, ranking_payload
from leetrank.ingest.errors import (
    DecodeError,
    IdentityNotAvailable,
    MissingAggregateStat,
    TransportError,
    UpstreamError,
)
from leetrank.ingest.identity import IdentityStatsClient, flatten_identity
from leetrank.ingest.ranking import RankingPageClient
from leetrank.ingest.schemas import IdentityStatsResponse
from leetrank.ingest.transport import GraphQLTransport

GRAPHQL_URL = "https://leetcode.com/graphql"


def json_response(body: dict, *, encoding: str | None = None, status: int = 200) -> httpx.Response:
    raw = json.dumps(body).encode()
    headers = {"Content-Type": "application/json"}
    if encoding == "gzip":
        raw = gzip.compress(raw)
        headers["Content-Encoding"] = "gzip"
    elif encoding == "br":
        raw = brotli.compress(raw)
        headers["Content-Encoding"] = "br"
    return httpx.Response(status, content=raw, headers=headers)


@pytest.mark.asyncio
async def test_fetch_ranking_page_gzip():
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(GRAPHQL_URL).mock(
            return_value=json_response({"data": ranking_payload(["alice", "bob"], total_pages=7)}, encoding="gzip")
        )
        async with httpx.AsyncClient() as session:
            client = RankingPageClient(GraphQLTransport(url=GRAPHQL_URL, session=session))
            page = await client.fetch_page(3)
    assert page.total_pages == 7
    assert [entry.user.username for entry in page.ranking_nodes] == ["alice", "bob"]
    assert page.ranking_nodes[0].current_rating == 3000.5
    sent = json.loads(route.calls.last.request.content)
    assert sent["variables"] == {"page": 3}
    assert "globalRanking" in sent["query"]
    assert route.calls.last.request.headers["Accept-Encoding"] == "gzip, deflate, br"


@pytest.mark.asyncio
async def test_fetch_identity_brotli():
    async with respx.mock(assert_all_called=True) as router:
        route = router.post(GRAPHQL_URL).mock(
            return_value=json_response({"data": identity_payload("alice", solved=321, submissions=400)}, encoding="br")
        )
        async with httpx.AsyncClient() as session:
            client = IdentityStatsClient(GraphQLTransport(url=GRAPHQL_URL, session=session))
            record = await client.fetch_record("alice")
    assert record.username == "alice"
    assert record.total_problems_solved == 321
    assert record.total_submissions == 400
    assert record.country_code == "SG"
    assert record.typename == "UserProfileNode"
    assert json.loads(route.calls.last.request.content)["variables"] == {"username": "alice"}


@pytest.mark.asyncio
async def test_non_2xx_is_transport_error():
    async with respx.mock() as router:
        router.post(GRAPHQL_URL).mock(return_value=httpx.Response(429, text="slow down"))
        async with httpx.AsyncClient() as session:
            client = RankingPageClient(GraphQLTransport(url=GRAPHQL_URL, session=session))
            with pytest.raises(TransportError) as excinfo:
                await client.fetch_page(1)
    assert excinfo.value.status_code == 429


@pytest.mark.asyncio
async def test_network_failure_is_transport_error():
    async with respx.mock() as router:
        router.post(GRAPHQL_URL).mock(side_effect=httpx.ConnectError("connection refused"))
        async with httpx.AsyncClient() as session:
            client = RankingPageClient(GraphQLTransport(url=GRAPHQL_URL, session=session))
            with pytest.raises(TransportError):
                await client.fetch_page(1)


@pytest.mark.asyncio
async def test_graphql_errors_under_200():
    body = {"data": None, "errors": [{"message": "rate limited"}]}
    async with respx.mock() as router:
        router.post(GRAPHQL_URL).mock(return_value=json_response(body))
        async with httpx.AsyncClient() as session:
            client = RankingPageClient(GraphQLTransport(url=GRAPHQL_URL, session=session))
            with pytest.raises(UpstreamError) as excinfo:
                await client.fetch_page(1)
    assert excinfo.value.errors == [{"message": "rate limited"}]
    assert "rate limited" in str(excinfo.value)


@pytest.mark.asyncio
async def test_malformed_payloads_are_decode_errors():
    async with respx.mock() as router:
        router.post(GRAPHQL_URL).mock(
            side_effect=[
                httpx.Response(200, text="<html>challenge</html>"),
                json_response({"data": {"globalRanking": {"totalPages": "many"}}}),
            ]
        )
        async with httpx.AsyncClient() as session:
            client = RankingPageClient(GraphQLTransport(url=GRAPHQL_URL, session=session))
            with pytest.raises(DecodeError):
                await client.fetch_page(1)
            with pytest.raises(DecodeError):
                await client.fetch_page(2)


@pytest.mark.asyncio
async def test_missing_matched_user_is_not_available():
    body = {"data": {"allQuestionsCount": [], "matchedUser": None}}
    async with respx.mock() as router:
        router.post(GRAPHQL_URL).mock(return_value=json_response(body))
        async with httpx.AsyncClient() as session:
            client = IdentityStatsClient(GraphQLTransport(url=GRAPHQL_URL, session=session))
            with pytest.raises(IdentityNotAvailable) as excinfo:
                await client.fetch_identity("ghost")
    assert excinfo.value.username == "ghost"


def test_flatten_requires_all_tier():
    response = IdentityStatsResponse.model_validate(identity_payload("carol", with_all=False))
    with pytest.raises(MissingAggregateStat):
        flatten_identity("carol", response)
