"""Username extraction from ranking pages."""

from __future__ import annotations

from leetrank.ingest.schemas import LeaderboardPage


def extract_usernames(page: LeaderboardPage) -> list[str]:
    seen: set[str] = set()
    usernames: list[str] = []
    for entry in page.ranking_nodes:
        username = ((entry.user.username if entry.user else None) or "").strip()
        # blank names are upstream noise
        if not username or username in seen:
            continue
        seen.add(username)
        usernames.append(username)
    return usernames


def sorted_usernames(page: LeaderboardPage) -> list[str]:
    return sorted(extract_usernames(page))
