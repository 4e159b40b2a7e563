"""PostgreSQL adapter for the parked mailbox ledger.

The ledger is the only state this system owns: an append-only audit trail of
extensions vacated by conflict resolution. The workflow reads it once per run
(the roster of parked extensions, to seed the exclusion set) and appends one
row per conflict resolved.

Rows are exposed in the same shape the automation host uses for the audit
system, so RoutingLookup / RoutingAction can put the ledger in place of the
host for those names without the workflow noticing.
"""

import logging
from typing import TYPE_CHECKING, Any

from ...api.database import database_connection, database_transaction
from ...api.exceptions import RequestValidationError

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS parked_mailboxes (
    id BIGSERIAL PRIMARY KEY,
    unity_user_object_id TEXT NOT NULL,
    unity_user_alias TEXT NOT NULL,
    unity_user_extension TEXT NOT NULL,
    date_created TEXT NOT NULL,
    deleted BOOLEAN NOT NULL DEFAULT FALSE,
    inserted_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_parked_mailboxes_active
    ON parked_mailboxes (unity_user_extension) WHERE NOT deleted;
"""


class PostgresParkingLedger:
    """asyncpg-backed store for ParkedMailboxCreate records."""

    def __init__(self, pool: "asyncpg.Pool"):
        """Initialize the ledger.

        Args:
            pool: asyncpg connection pool for database operations
        """
        self.pool = pool

    async def ensure_schema(self) -> None:
        async with database_connection(self.pool) as conn:
            await conn.execute(SCHEMA)
        logger.info("Parked mailbox ledger schema ready")

    async def schema_exists(self) -> bool:
        """Check for the ledger table without creating anything."""
        async with database_connection(self.pool) as conn:
            return bool(await conn.fetchval("SELECT to_regclass('parked_mailboxes') IS NOT NULL"))

    async def list_parked(self) -> list[dict[str, Any]]:
        """Return every non-deleted parked mailbox as an audit row."""
        async with database_connection(self.pool) as conn:
            records = await conn.fetch(
                """
                SELECT unity_user_object_id, unity_user_alias,
                       unity_user_extension, date_created, deleted
                FROM parked_mailboxes
                WHERE NOT deleted
                """
            )

        rows = [
            {
                "UnityUserObjectId": r["unity_user_object_id"],
                "UnityUserAlias": r["unity_user_alias"],
                "UnityUserExtension": r["unity_user_extension"],
                "DateCreated": r["date_created"],
                "Deleted": "1" if r["deleted"] else "0",
            }
            for r in records
        ]
        logger.debug(f"Loaded {len(rows)} parked mailboxes from ledger")
        return rows

    async def append(self, params: dict[str, Any]) -> dict[str, Any]:
        """Append one audit row from a ParkedMailboxCreate payload.

        Raises:
            RequestValidationError: If a required key is missing
            DatabaseError: If the insert fails
        """
        for key in ("UnityUserObjectId", "UnityUserAlias", "UnityUserExtension", "DateCreated"):
            if not str(params.get(key) or "").strip():
                raise RequestValidationError(f"Parked mailbox record is missing [{key}]", field=key)

        async with database_transaction(self.pool) as conn:
            record_id = await conn.fetchval(
                """
                INSERT INTO parked_mailboxes (
                    unity_user_object_id, unity_user_alias,
                    unity_user_extension, date_created, deleted
                ) VALUES ($1, $2, $3, $4, $5)
                RETURNING id
                """,
                str(params["UnityUserObjectId"]),
                str(params["UnityUserAlias"]),
                str(params["UnityUserExtension"]),
                str(params["DateCreated"]),
                str(params.get("Deleted", "0")) == "1",
            )

        logger.info(
            f"Recorded parked mailbox [{params['UnityUserAlias']}] "
            f"on extension [{params['UnityUserExtension']}]"
        )
        return {"id": record_id}
