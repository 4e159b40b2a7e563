"""Port interfaces for line reassignment.

These are abstract interfaces (ports) that define how the workflow
interacts with the backend systems. Concrete implementations (adapters)
are provided in the adapters module.

This follows the Hexagonal Architecture pattern.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any

from .entities import (
    BuildingPolicy,
    CallManagerUser,
    Device,
    DirectoryIdentity,
    Line,
    PhoneTemplate,
    VoicemailAccount,
)


class ILookupPort(ABC):
    """Port for named read-only queries.

    Implementations might call the automation host, a database, or an
    in-memory fixture in tests.
    """

    @abstractmethod
    async def lookup(self, query_name: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        """Execute a named query.

        Args:
            query_name: Name of the query (see Queries)
            params: Query parameters

        Returns:
            Matching rows. Order carries no meaning; the caller decides
            whether zero, one or many rows are acceptable.
        """
        ...


class IActionPort(ABC):
    """Port for named mutations against a backend system.

    This is the only way the workflow changes remote state.
    """

    @abstractmethod
    async def run(self, system_name: str, action_name: str, params: dict[str, Any]) -> dict[str, Any]:
        """Run an action.

        Args:
            system_name: Backend system identifier (directory, call manager,
                voicemail, or the internal audit system)
            action_name: Action exposed by that system
            params: Wire payload

        Returns:
            Result object returned by the backend (may be empty)

        Raises:
            RemoteRejectionError: If the backend rejected the action
        """
        ...


class ILineLock(ABC):
    """Port for mutual exclusion between runs that target the same line."""

    @abstractmethod
    def hold(self, line_id: str) -> AbstractAsyncContextManager[None]:
        """Hold the lock for a line for the duration of an `async with` block.

        Raises:
            LineLockedError: If another run already holds it
        """
        ...


class IRowMapper(ABC):
    """Port for mapping query rows into domain entities.

    Rows carry the backend's own field names; implementations own that
    vocabulary so the workflow only ever sees entities.
    """

    @abstractmethod
    def to_directory_identity(self, row: dict[str, Any]) -> DirectoryIdentity:
        ...

    @abstractmethod
    def to_call_manager_user(self, row: dict[str, Any]) -> CallManagerUser:
        ...

    @abstractmethod
    def to_line(self, row: dict[str, Any]) -> Line:
        ...

    @abstractmethod
    def to_device(self, row: dict[str, Any]) -> Device:
        """Map a device row (owner device listing or phone lookup)."""
        ...

    @abstractmethod
    def to_voicemail_account(self, row: dict[str, Any]) -> VoicemailAccount:
        ...

    @abstractmethod
    def to_building_policy(self, row: dict[str, Any]) -> BuildingPolicy:
        ...

    @abstractmethod
    def to_phone_template(self, row: dict[str, Any]) -> PhoneTemplate:
        ...

    @abstractmethod
    def to_parked_extension(self, row: dict[str, Any]) -> str:
        """Extract the parked extension from a roster row ("" if absent)."""
        ...
