"""Staging-table bulk upsert of enriched user records."""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Any, Sequence

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import text

from leetrank.ingest.models import RECORD_COLUMNS, EnrichedRecord

logger = logging.getLogger(__name__)

USER_TABLE = "user_data"
STAGING_TABLE = "staging_user_data"


class PersistenceError(Exception):
    """A batch could not be merged; nothing from it was committed."""


class BatchUpsertSink:
    """Merge batches into ``user_data`` through a staging table.

    Each batch runs in one transaction: clear staging, bulk-load the batch
    (COPY on PostgreSQL/psycopg2, executemany elsewhere), then a single
    ``INSERT ... SELECT ... ON CONFLICT (username) DO UPDATE``. The staging
    table is shared, so callers must not run two batches at once.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        table: str = USER_TABLE,
        staging_table: str = STAGING_TABLE,
    ) -> None:
        self.engine = engine
        self.table = table
        self.staging_table = staging_table

    async def upsert_async(self, batch: Sequence[EnrichedRecord]) -> int:
        return await asyncio.get_running_loop().run_in_executor(None, self.upsert, batch)

    def upsert(self, batch: Sequence[EnrichedRecord]) -> int:
        if not batch:
            return 0
        try:
            with self.engine.begin() as conn:
                self._clear_staging(conn)
                self._load_staging(conn, batch)
                conn.execute(text(self._merge_sql()))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"upsert of {len(batch)} users failed: {exc}") from exc
        logger.info("Merged %s users into %s", len(batch), self.table)
        return len(batch)

    def _clear_staging(self, conn: Connection) -> None:
        if conn.dialect.name == "postgresql":
            conn.execute(text(f"TRUNCATE {self.staging_table}"))
        else:
            conn.execute(text(f"DELETE FROM {self.staging_table}"))

    def _load_staging(self, conn: Connection, batch: Sequence[EnrichedRecord]) -> None:
        if conn.dialect.name == "postgresql" and conn.dialect.driver == "psycopg2":
            self._copy_staging(conn, batch)
            return
        columns = ", ".join(RECORD_COLUMNS)
        params = ", ".join(f":{col}" for col in RECORD_COLUMNS)
        conn.execute(
            text(f"INSERT INTO {self.staging_table} ({columns}) VALUES ({params})"),
            [record.as_row() for record in batch],
        )

    def _copy_staging(self, conn: Connection, batch: Sequence[EnrichedRecord]) -> None:
        buffer = io.StringIO()
        for record in batch:
            row = record.as_row()
            buffer.write("\t".join(_copy_value(row[col]) for col in RECORD_COLUMNS))
            buffer.write("\n")
        buffer.seek(0)
        statement = (
            f"COPY {self.staging_table} ({', '.join(RECORD_COLUMNS)}) FROM STDIN"
        )
        try:
            # raw DBAPI cursor on the same connection, so COPY joins the transaction
            cursor = conn.connection.cursor()
            try:
                cursor.copy_expert(statement, buffer)
            finally:
                cursor.close()
        except conn.dialect.loaded_dbapi.Error as exc:
            raise PersistenceError(f"copy into {self.staging_table} failed: {exc}") from exc

    def _merge_sql(self) -> str:
        columns = ", ".join(RECORD_COLUMNS)
        updates = ",\n              ".join(
            f"{col} = EXCLUDED.{col}" for col in RECORD_COLUMNS if col != "username"
        )
        # WHERE TRUE keeps SQLite from reading ON CONFLICT as a join clause
        return f"""
            INSERT INTO {self.table} ({columns})
            SELECT {columns}
            FROM {self.staging_table}
            WHERE TRUE
            ON CONFLICT (username) DO UPDATE SET
              {updates},
              updated_at = CURRENT_TIMESTAMP
        """


def _copy_value(value: Any) -> str:
    if value is None:
        return r"\N"
    return (
        str(value)
        .replace("\\", "\\\\")
        .replace("\t", "\\t")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
