"""Routing adapters that put the parking ledger in front of the host.

When a database is configured, the parked roster query and the audit
system's ParkedMailboxCreate action are served by PostgresParkingLedger;
everything else falls through to the automation host.
"""

import logging
from typing import Any

from ...api.exceptions import RemoteRejectionError
from ..domain.ports import IActionPort, ILookupPort
from ..domain.queries import Queries
from ..domain.requests import CreateParkedMailboxRecord
from .postgres_parking_ledger import PostgresParkingLedger

logger = logging.getLogger(__name__)


class RoutingLookup(ILookupPort):
    """Serves the parked roster from the ledger, other queries from fallback."""

    def __init__(self, ledger: PostgresParkingLedger, fallback: ILookupPort):
        self.ledger = ledger
        self.fallback = fallback

    async def lookup(self, query_name: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        if query_name == Queries.PARKED_MAILBOXES:
            return await self.ledger.list_parked()
        return await self.fallback.lookup(query_name, params)


class RoutingAction(IActionPort):
    """Serves the audit system from the ledger, other systems from fallback."""

    def __init__(
        self,
        ledger: PostgresParkingLedger,
        fallback: IActionPort,
        audit_system: str,
    ):
        """Initialize the router.

        Args:
            ledger: Parking ledger
            fallback: Port for every non-audit system
            audit_system: System identifier of the internal audit system
        """
        self.ledger = ledger
        self.fallback = fallback
        self.audit_system = audit_system

    async def run(self, system_name: str, action_name: str, params: dict[str, Any]) -> dict[str, Any]:
        if system_name != self.audit_system:
            return await self.fallback.run(system_name, action_name, params)

        if action_name != CreateParkedMailboxRecord.action:
            raise RemoteRejectionError(
                f"Audit system does not support action [{action_name}]",
                system=system_name,
                action=action_name,
            )
        return await self.ledger.append(params)
