"""Single-record reads and writes on ``user_data``."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

from leetrank.ingest.models import RECORD_COLUMNS, EnrichedRecord

logger = logging.getLogger(__name__)

UPDATABLE_COLUMNS = (
    "user_slug",
    "user_avatar",
    "country_code",
    "country_name",
    "real_name",
    "typename",
    "total_problems_solved",
    "total_submissions",
)


def _require_username(username: str) -> str:
    username = username.strip()
    if not username:
        raise ValueError("username is required")
    return username


class UserRepository:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def upsert(self, record: EnrichedRecord) -> dict[str, Any]:
        """Insert or overwrite one user without going through staging."""
        _require_username(record.username)
        columns = ", ".join(RECORD_COLUMNS)
        params = ", ".join(f":{col}" for col in RECORD_COLUMNS)
        updates = ",\n                      ".join(f"{col} = EXCLUDED.{col}" for col in UPDATABLE_COLUMNS)
        with self.engine.begin() as conn:
            row = conn.execute(
                text(
                    f"""
                    INSERT INTO user_data ({columns})
                    VALUES ({params})
                    ON CONFLICT (username) DO UPDATE SET
                      {updates},
                      updated_at = CURRENT_TIMESTAMP
                    RETURNING *
                    """
                ),
                record.as_row(),
            ).mappings().one()
        logger.info("Upserted user %s", record.username)
        return dict(row)

    def get_by_username(self, username: str) -> dict[str, Any] | None:
        username = _require_username(username)
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT * FROM user_data WHERE username = :username LIMIT 1"),
                {"username": username},
            ).mappings().first()
        return dict(row) if row else None

    def list_by_country(self, country_code: str, *, limit: int, offset: int = 0) -> list[dict[str, Any]]:
        with self.engine.connect() as conn:
            result = conn.execute(
                text(
                    """
                    SELECT * FROM user_data
                    WHERE country_code = :country_code
                    ORDER BY total_problems_solved DESC, total_submissions ASC, username ASC
                    LIMIT :limit OFFSET :offset
                    """
                ),
                {"country_code": country_code, "limit": limit, "offset": offset},
            )
            return [dict(row) for row in result.mappings()]

    def count_by_country(self, country_code: str) -> int:
        with self.engine.connect() as conn:
            return int(
                conn.execute(
                    text("SELECT COUNT(*) FROM user_data WHERE country_code = :country_code"),
                    {"country_code": country_code},
                ).scalar_one()
            )

    def update_by_username(self, username: str, **fields: Any) -> dict[str, Any] | None:
        """Overwrite the given columns; ``None`` values keep the stored value."""
        username = _require_username(username)
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"unknown columns: {', '.join(sorted(unknown))}")
        params: dict[str, Any] = {col: fields.get(col) for col in UPDATABLE_COLUMNS}
        params["username"] = username
        assignments = ",\n                  ".join(
            f"{col} = COALESCE(:{col}, {col})" for col in UPDATABLE_COLUMNS
        )
        with self.engine.begin() as conn:
            result = conn.execute(
                text(
                    f"""
                    UPDATE user_data SET
                      {assignments},
                      updated_at = CURRENT_TIMESTAMP
                    WHERE username = :username
                    """
                ),
                params,
            )
            if result.rowcount == 0:
                return None
        logger.info("Updated user %s", username)
        return self.get_by_username(username)

    def delete_by_username(self, username: str) -> bool:
        username = _require_username(username)
        with self.engine.begin() as conn:
            result = conn.execute(
                text("DELETE FROM user_data WHERE username = :username"),
                {"username": username},
            )
        deleted = result.rowcount > 0
        logger.info("Delete user %s: %s", username, "ok" if deleted else "not found")
        return deleted
