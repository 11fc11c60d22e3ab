"""Pydantic models for the LeetCode GraphQL responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Badge(_WireModel):
    display_name: str | None = Field(default=None, alias="displayName")
    icon: str | None = None


class Profile(_WireModel):
    user_slug: str = Field(default="", alias="userSlug")
    user_avatar: str | None = Field(default=None, alias="userAvatar")
    country_code: str | None = Field(default=None, alias="countryCode")
    country_name: str | None = Field(default=None, alias="countryName")
    real_name: str | None = Field(default=None, alias="realName")
    typename: str | None = Field(default=None, alias="__typename")


class UserLite(_WireModel):
    username: str | None = None
    name_color: str | None = Field(default=None, alias="nameColor")
    active_badge: Badge | None = Field(default=None, alias="activeBadge")
    profile: Profile | None = None


class RankingEntry(_WireModel):
    ranking: str | int | None = None
    current_rating: float | None = Field(default=None, alias="currentRating")
    current_global_ranking: int | None = Field(default=None, alias="currentGlobalRanking")
    data_region: str | None = Field(default=None, alias="dataRegion")
    user: UserLite | None = None


class LeaderboardPage(_WireModel):
    total_users: int = Field(alias="totalUsers")
    total_pages: int = Field(alias="totalPages")
    user_per_page: int = Field(alias="userPerPage")
    ranking_nodes: list[RankingEntry] = Field(default_factory=list, alias="rankingNodes")


class SubmissionStat(_WireModel):
    difficulty: str
    count: int
    submissions: int


class SubmitStats(_WireModel):
    ac_submission_num: list[SubmissionStat] = Field(default_factory=list, alias="acSubmissionNum")
    total_submission_num: list[SubmissionStat] = Field(
        default_factory=list, alias="totalSubmissionNum"
    )


class MatchedUser(_WireModel):
    submit_stats: SubmitStats = Field(alias="submitStats")
    profile: Profile


class QuestionCount(_WireModel):
    difficulty: str
    count: int


class IdentityStatsResponse(_WireModel):
    all_questions_count: list[QuestionCount] = Field(default_factory=list, alias="allQuestionsCount")
    matched_user: MatchedUser | None = Field(default=None, alias="matchedUser")

    def accepted_all(self) -> SubmissionStat | None:
        """Return the accepted-submission aggregate for the ``All`` tier."""
        if self.matched_user is None:
            return None
        for stat in self.matched_user.submit_stats.ac_submission_num:
            if stat.difficulty == "All":
                return stat
        return None


class RankingData(_WireModel):
    global_ranking: LeaderboardPage = Field(alias="globalRanking")
