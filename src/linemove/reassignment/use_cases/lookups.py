"""Cardinality helpers for named queries.

Every lookup in the workflow declares how many rows it expects. Zero rows
when one is required, and many rows when at most one is allowed, are distinct
fatal conditions (NotFoundError vs AmbiguousResultError) so that operators can
tell missing data from misconfigured data.
"""

import logging
from typing import Any, Optional

from ...api.exceptions import AmbiguousResultError, NotFoundError
from ..domain.ports import ILookupPort

logger = logging.getLogger(__name__)

Row = dict[str, Any]


async def expect_one(
    port: ILookupPort,
    query_name: str,
    params: dict[str, Any],
    resource_type: str,
    key: Any,
) -> Row:
    """Run a query that must return exactly one row.

    Raises:
        NotFoundError: If no row matched
        AmbiguousResultError: If more than one row matched
    """
    rows = await port.lookup(query_name, params)
    if not rows:
        logger.error(f"Cannot find {resource_type} for [{key}]")
        raise NotFoundError(resource_type, key, query_name=query_name, params=params)
    if len(rows) > 1:
        logger.error(f"Found multiple {resource_type} records for [{key}]")
        raise AmbiguousResultError(
            resource_type, key, query_name=query_name, row_count=len(rows), params=params
        )
    logger.info(f"Found {resource_type} for [{key}]")
    return rows[0]


async def expect_at_most_one(
    port: ILookupPort,
    query_name: str,
    params: dict[str, Any],
    resource_type: str,
    key: Any,
) -> Optional[Row]:
    """Run a query that may return no row but never more than one.

    Raises:
        AmbiguousResultError: If more than one row matched
    """
    rows = await port.lookup(query_name, params)
    if len(rows) > 1:
        logger.error(f"Found multiple {resource_type} records for [{key}]")
        raise AmbiguousResultError(
            resource_type, key, query_name=query_name, row_count=len(rows), params=params
        )
    if not rows:
        logger.info(f"No {resource_type} found for [{key}]")
        return None
    logger.info(f"Found {resource_type} for [{key}]")
    return rows[0]


async def expect_some(
    port: ILookupPort,
    query_name: str,
    params: dict[str, Any],
    resource_type: str,
    key: Any,
) -> list[Row]:
    """Run a query that must return at least one row.

    Raises:
        NotFoundError: If no row matched
    """
    rows = await port.lookup(query_name, params)
    if not rows:
        logger.error(f"Cannot find {resource_type} for [{key}]")
        raise NotFoundError(resource_type, key, query_name=query_name, params=params)
    logger.info(f"Found {len(rows)} {resource_type} records for [{key}]")
    return rows


async def expect_any(
    port: ILookupPort,
    query_name: str,
    params: dict[str, Any],
    resource_type: str,
    key: Any = None,
) -> list[Row]:
    """Run a query where any number of rows is acceptable."""
    rows = await port.lookup(query_name, params)
    suffix = f" for [{key}]" if key is not None else ""
    logger.info(f"Found {len(rows)} {resource_type} records{suffix}")
    return rows


def aliases_match(a: str, b: str) -> bool:
    """Case-insensitive alias comparison.

    Total over strings: two blank aliases never match, so an account with
    no alias cannot be mistaken for any owner.
    """
    left = a.strip().casefold()
    right = b.strip().casefold()
    return bool(left) and left == right
