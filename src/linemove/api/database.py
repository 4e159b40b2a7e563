#!/usr/bin/env python3
"""Database Utilities for the parking ledger and line lock.

This module provides database utilities including:
    - Connection pool management
    - Connection and transaction context managers
    - Conversion of driver errors into DatabaseError subtypes

Example:
    async with database_transaction(pool) as conn:
        await conn.execute("INSERT INTO parked_mailboxes ...")
        # Automatic commit on success, rollback on exception
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from .exceptions import (
    ConnectionPoolError,
    DatabaseError,
    IntegrityError,
    TransactionError,
)

logger = logging.getLogger(__name__)

ACQUIRE_TIMEOUT_SECONDS = 30.0


# ============================================
# Connection Context Managers
# ============================================

@asynccontextmanager
async def database_connection(pool) -> AsyncIterator[Any]:
    """Context manager for a pooled connection without a transaction.

    Args:
        pool: asyncpg connection pool

    Yields:
        Database connection

    Raises:
        ConnectionPoolError: If no connection can be acquired
    """
    if pool is None:
        raise ConnectionPoolError("Database connection pool is not initialized")

    try:
        conn = await asyncio.wait_for(pool.acquire(), timeout=ACQUIRE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        raise ConnectionPoolError(
            "Timeout acquiring database connection",
            details={"timeout_seconds": ACQUIRE_TIMEOUT_SECONDS},
        )

    try:
        yield conn
    finally:
        await pool.release(conn)


@asynccontextmanager
async def database_transaction(pool) -> AsyncIterator[Any]:
    """Context manager for database transactions with automatic commit/rollback.

    Args:
        pool: asyncpg connection pool

    Yields:
        Database connection within transaction

    Raises:
        ConnectionPoolError: If connection cannot be acquired
        DatabaseError: If the transaction body fails (converted subtype)
    """
    async with database_connection(pool) as conn:
        transaction = conn.transaction()
        await transaction.start()

        try:
            yield conn
        except Exception as e:
            try:
                await transaction.rollback()
                logger.debug("Transaction rolled back due to exception")
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            raise _convert_db_exception(e) from e

        await transaction.commit()
        logger.debug("Transaction committed successfully")


# ============================================
# Error Conversion
# ============================================

def _convert_db_exception(e: Exception) -> DatabaseError:
    """Convert a driver exception to the matching DatabaseError subtype."""
    if isinstance(e, DatabaseError):
        return e

    if isinstance(e, asyncpg.UniqueViolationError):
        return IntegrityError(f"Duplicate entry: {e}", constraint="unique", cause=e)

    if isinstance(e, asyncpg.NotNullViolationError):
        return IntegrityError(f"Not null violation: {e}", constraint="not_null", cause=e)

    if isinstance(e, asyncpg.DeadlockDetectedError):
        return TransactionError(f"Deadlock detected: {e}", operation="transaction", cause=e)

    if isinstance(e, asyncio.TimeoutError):
        return TransactionError(f"Database operation timed out: {e}", operation="query", cause=e)

    return DatabaseError(f"Database operation failed: {e}", cause=e)


# ============================================
# Connection Pool Helpers
# ============================================

async def create_pool(
    database_url: str,
    min_size: int = 1,
    max_size: int = 5,
    command_timeout: float = 60.0,
    **kwargs,
):
    """Create a database connection pool with error handling.

    Returns:
        asyncpg.Pool instance

    Raises:
        ConnectionPoolError: If pool creation fails
    """
    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            **kwargs,
        )
    except (OSError, asyncpg.PostgresError) as e:
        raise ConnectionPoolError(
            f"Failed to create database pool: {e}",
            cause=e,
        )

    logger.info(f"Database pool created (min={min_size}, max={max_size})")
    return pool


async def close_pool(pool, timeout: float = 10.0):
    """Close database pool gracefully, terminating it if close hangs."""
    if pool is None:
        return

    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
        logger.info("Database pool closed")
    except asyncio.TimeoutError:
        logger.warning(f"Pool close timed out after {timeout}s, terminating")
        pool.terminate()


__all__ = [
    "database_connection",
    "database_transaction",
    "create_pool",
    "close_pool",
]
