"""Ingestion data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(slots=True, frozen=True)
class EnrichedRecord:
    username: str
    user_slug: str
    user_avatar: str | None
    country_code: str | None
    country_name: str | None
    real_name: str | None
    typename: str | None
    total_problems_solved: int
    total_submissions: int

    def as_row(self) -> dict[str, Any]:
        return asdict(self)


RECORD_COLUMNS: tuple[str, ...] = (
    "username",
    "user_slug",
    "user_avatar",
    "country_code",
    "country_name",
    "real_name",
    "typename",
    "total_problems_solved",
    "total_submissions",
)
