"""Single choke point for mutating calls.

Every ActionRequest the workflow or the conflict resolver issues goes through
MutationGate.submit(). The gate resolves the backend identifier from config,
logs the call, appends a MutationRecord to the run journal, and either runs
it through the action port or, in read-only mode, suppresses it.

Records are appended before the call is made, so the journal also shows the
attempt that failed when a run aborts.
"""

import logging
from typing import Any, Optional

from ..config import ReassignmentConfig
from ..domain.entities import MutationRecord
from ..domain.ports import IActionPort
from ..domain.requests import ActionRequest

logger = logging.getLogger(__name__)


class MutationGate:
    """Routes typed requests to the action port and journals them."""

    def __init__(
        self,
        action: IActionPort,
        config: ReassignmentConfig,
        journal: Optional[list[MutationRecord]] = None,
    ):
        self.action = action
        self.config = config
        self.journal: list[MutationRecord] = journal if journal is not None else []
        self.phase: Optional[str] = None

    @property
    def read_only(self) -> bool:
        return self.config.read_only

    async def submit(self, request: ActionRequest) -> Optional[dict[str, Any]]:
        """Issue one mutation.

        Returns:
            The backend result, or None when the call was suppressed

        Raises:
            RemoteRejectionError: If the backend rejected the call
        """
        system_name = self.config.system_name(request.system)
        params = request.to_params()

        self.journal.append(
            MutationRecord(
                system=system_name,
                action=request.action,
                params=params,
                suppressed=self.read_only,
                phase=self.phase,
            )
        )

        if self.read_only:
            logger.info(f"[READ-ONLY] Suppressed {system_name}.{request.describe()}")
            return None

        logger.info(f"{system_name}.{request.describe()}")
        return await self.action.run(system_name, request.action, params)

    def count_for_phase(self, phase: str) -> int:
        return sum(1 for record in self.journal if record.phase == phase)
