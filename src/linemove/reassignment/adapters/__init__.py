"""Adapters layer - Infrastructure implementations for line reassignment.

This layer contains concrete implementations of the ports defined in the domain layer:
- RowMapper: Query row mapping implementation of IRowMapper
- HostRuntimeLookup: Automation host implementation of ILookupPort
- HostRuntimeAction: Automation host implementation of IActionPort
- PostgresParkingLedger: PostgreSQL store for parked mailbox records
- RoutingLookup / RoutingAction: Serve the audit system from the ledger
- PostgresLineLock: PostgreSQL advisory lock implementation of ILineLock
"""

from .host_runtime_gateway import HostRuntimeAction, HostRuntimeLookup
from .postgres_line_lock import PostgresLineLock
from .postgres_parking_ledger import PostgresParkingLedger
from .routing_gateway import RoutingAction, RoutingLookup
from .row_mapper import RowMapper

__all__ = [
    "RowMapper",
    "HostRuntimeLookup",
    "HostRuntimeAction",
    "PostgresParkingLedger",
    "RoutingLookup",
    "RoutingAction",
    "PostgresLineLock",
]
