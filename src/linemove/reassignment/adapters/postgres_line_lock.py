"""PostgreSQL advisory lock adapter for per-line mutual exclusion.

Two runs reassigning the same line would interleave their writes across three
backends with nothing to arbitrate. PostgresLineLock takes a session-level
advisory lock keyed on the line id for the whole run, so the second run fails
fast with LineLockedError instead.

The lock lives on a connection held for the duration of the run; it is
released explicitly on exit, and by the server if the connection drops.
"""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from ...api.database import database_connection
from ...api.exceptions import LineLockedError
from ..domain.ports import ILineLock

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)


class PostgresLineLock(ILineLock):
    """pg_try_advisory_lock keyed on hashtext(line_id)."""

    def __init__(self, pool: "asyncpg.Pool"):
        self.pool = pool

    @asynccontextmanager
    async def hold(self, line_id: str) -> AsyncIterator[None]:
        async with database_connection(self.pool) as conn:
            acquired = await conn.fetchval(
                "SELECT pg_try_advisory_lock(hashtext($1))",
                line_id,
            )
            if not acquired:
                logger.warning(f"Line [{line_id}] is locked by another run")
                raise LineLockedError(line_id)

            logger.info(f"Acquired advisory lock for line [{line_id}]")
            try:
                yield
            finally:
                await conn.fetchval(
                    "SELECT pg_advisory_unlock(hashtext($1))",
                    line_id,
                )
                logger.info(f"Released advisory lock for line [{line_id}]")
