import pytest
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, MetaData, Table, Text, create_engine, func
from sqlalchemy.pool import StaticPool

from leetrank.ingest.models import EnrichedRecord
from leetrank.ingest.schemas import LeaderboardPage

metadata = MetaData()

user_data = Table(
    "user_data",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", Text, nullable=False, unique=True),
    Column("user_slug", Text, nullable=False),
    Column("user_avatar", Text),
    Column("country_code", Text),
    Column("country_name", Text),
    Column("real_name", Text),
    Column("typename", Text),
    Column("total_problems_solved", Integer, CheckConstraint("total_problems_solved >= 0"), nullable=False, default=0),
    Column("total_submissions", Integer, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
    Column("updated_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

staging_user_data = Table(
    "staging_user_data",
    metadata,
    Column("username", Text, nullable=False, unique=True),
    Column("user_slug", Text, nullable=False),
    Column("user_avatar", Text),
    Column("country_code", Text),
    Column("country_name", Text),
    Column("real_name", Text),
    Column("typename", Text),
    Column("total_problems_solved", Integer, nullable=False, server_default="0"),
    Column("total_submissions", Integer, nullable=False, server_default="0"),
)


@pytest.fixture()
def engine():
    # one shared connection so executor threads see the same in-memory db
    engine = create_engine(
        "sqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


def make_record(username: str, **overrides) -> EnrichedRecord:
    values = {
        "username": username,
        "user_slug": username,
        "user_avatar": f"https://assets.leetcode.com/users/{username}/avatar.png",
        "country_code": "US",
        "country_name": "United States",
        "real_name": username.title(),
        "typename": "UserProfileNode",
        "total_problems_solved": 100,
        "total_submissions": 150,
    }
    values.update(overrides)
    return EnrichedRecord(**values)


def ranking_payload(usernames, *, total_pages: int = 1, per_page: int = 25) -> dict:
    return {
        "globalRanking": {
            "totalUsers": total_pages * per_page,
            "totalPages": total_pages,
            "userPerPage": per_page,
            "rankingNodes": [
                {
                    "ranking": "[3000]",
                    "currentRating": "3000.5",
                    "currentGlobalRanking": idx + 1,
                    "dataRegion": "US",
                    "user": {
                        "username": name,
                        "nameColor": None,
                        "activeBadge": None,
                        "profile": {"userSlug": name.strip(), "countryCode": "US"},
                        "__typename": "PublicUserNode",
                    },
                    "__typename": "GlobalRankingNode",
                }
                for idx, name in enumerate(usernames)
            ],
            "__typename": "GlobalRankingNode",
        }
    }


def make_page(usernames, *, total_pages: int = 1) -> LeaderboardPage:
    return LeaderboardPage.model_validate(ranking_payload(usernames, total_pages=total_pages)["globalRanking"])


def identity_payload(username: str, *, solved: int = 120, submissions: int = 180, with_all: bool = True) -> dict:
    stats = [
        {"difficulty": "Easy", "count": solved // 2, "submissions": submissions // 2},
        {"difficulty": "Medium", "count": solved - solved // 2, "submissions": submissions - submissions // 2},
    ]
    if with_all:
        stats.insert(0, {"difficulty": "All", "count": solved, "submissions": submissions})
    return {
        "allQuestionsCount": [{"difficulty": "All", "count": 3300}],
        "matchedUser": {
            "submitStats": {"acSubmissionNum": stats, "totalSubmissionNum": stats},
            "profile": {
                "userSlug": username,
                "userAvatar": f"https://assets.leetcode.com/users/{username}/avatar.png",
                "countryCode": "SG",
                "countryName": "Singapore",
                "realName": username.title(),
                "__typename": "UserProfileNode",
            },
        },
    }
