"""Per-user profile and submission stats client."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from leetrank.ingest.errors import DecodeError, IdentityNotAvailable, MissingAggregateStat
from leetrank.ingest.models import EnrichedRecord
from leetrank.ingest.schemas import IdentityStatsResponse
from leetrank.ingest.transport import GraphQLTransport

logger = logging.getLogger(__name__)

USER_PROFILE_QUERY = """
query userProfilePublicProfile($username: String!) {
  allQuestionsCount {
    difficulty
    count
  }
  matchedUser(username: $username) {
    submitStats {
      acSubmissionNum {
        difficulty
        count
        submissions
      }
      totalSubmissionNum {
        difficulty
        count
        submissions
      }
    }
    profile {
      userSlug
      userAvatar
      countryCode
      countryName
      realName
      __typename
    }
  }
}
"""


class IdentityStatsClient:
    def __init__(self, transport: GraphQLTransport) -> None:
        self.transport = transport

    async def fetch_identity(self, username: str) -> IdentityStatsResponse:
        data = await self.transport.execute(USER_PROFILE_QUERY, {"username": username})
        try:
            response = IdentityStatsResponse.model_validate(data)
        except ValidationError as exc:
            raise DecodeError(f"user {username!r}: {exc}") from exc
        if response.matched_user is None:
            raise IdentityNotAvailable(username)
        return response

    async def fetch_record(self, username: str) -> EnrichedRecord:
        response = await self.fetch_identity(username)
        return flatten_identity(username, response)


def flatten_identity(username: str, response: IdentityStatsResponse) -> EnrichedRecord:
    """Build the persisted record from the ``All`` accepted-submission stat."""
    if response.matched_user is None:
        raise IdentityNotAvailable(username)
    accepted = response.accepted_all()
    if accepted is None:
        raise MissingAggregateStat(username)
    profile = response.matched_user.profile
    return EnrichedRecord(
        username=username,
        user_slug=profile.user_slug,
        user_avatar=profile.user_avatar,
        country_code=profile.country_code,
        country_name=profile.country_name,
        real_name=profile.real_name,
        typename=profile.typename,
        total_problems_solved=accepted.count,
        total_submissions=accepted.submissions,
    )
