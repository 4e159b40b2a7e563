"""Automation host adapters for named queries and actions.

These adapters implement ILookupPort and IActionPort by wrapping the
existing HostRuntimeClient. Queries are retried by the client on transport
errors; actions are single-shot.
"""

from typing import TYPE_CHECKING, Any

from ..domain.ports import IActionPort, ILookupPort

if TYPE_CHECKING:
    from ...api.client import HostRuntimeClient


class HostRuntimeLookup(ILookupPort):
    """Runs named queries on the automation host."""

    def __init__(self, client: "HostRuntimeClient"):
        """Initialize the adapter.

        Args:
            client: Open HostRuntimeClient (inside its async context)
        """
        self.client = client

    async def lookup(self, query_name: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        return await self.client.execute_query(query_name, params)


class HostRuntimeAction(IActionPort):
    """Runs target system functions on the automation host."""

    def __init__(self, client: "HostRuntimeClient"):
        self.client = client

    async def run(self, system_name: str, action_name: str, params: dict[str, Any]) -> dict[str, Any]:
        return await self.client.run_function(system_name, action_name, params)
