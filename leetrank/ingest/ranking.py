"""Global ranking page client."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from leetrank.ingest.errors import DecodeError
from leetrank.ingest.schemas import LeaderboardPage, RankingData
from leetrank.ingest.transport import GraphQLTransport

logger = logging.getLogger(__name__)

GLOBAL_RANKING_QUERY = """
query globalRanking($page: Int) {
  globalRanking(page: $page) {
    totalUsers
    totalPages
    userPerPage
    rankingNodes {
      ranking
      currentRating
      currentGlobalRanking
      dataRegion
      user {
        username
        nameColor
        activeBadge { displayName icon __typename }
        profile {
          userSlug
          userAvatar
          countryCode
          countryName
          realName
          __typename
        }
        __typename
      }
      __typename
    }
    __typename
  }
}
"""


class RankingPageClient:
    def __init__(self, transport: GraphQLTransport) -> None:
        self.transport = transport

    async def fetch_page(self, page_number: int) -> LeaderboardPage:
        data = await self.transport.execute(GLOBAL_RANKING_QUERY, {"page": page_number})
        try:
            page = RankingData.model_validate(data).global_ranking
        except ValidationError as exc:
            raise DecodeError(f"ranking page {page_number}: {exc}") from exc
        logger.debug(
            "Fetched ranking page %s/%s with %s entries",
            page_number,
            page.total_pages,
            len(page.ranking_nodes),
        )
        return page
