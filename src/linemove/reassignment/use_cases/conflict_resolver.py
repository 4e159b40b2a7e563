"""Extension Conflict Resolver.

Before the new owner can take the target extension in the voicemail system,
nobody else may hold it. The resolver:

1. Looks up the voicemail account holding the extension. None -> no conflict.
2. If the holder's alias is the new owner's id, the extension is already
   correctly assigned and the caller must not re-issue the update.
3. Otherwise the holder (the claimant) is moved to a freshly generated parked
   extension, an audit record is appended, and the parked value is mirrored
   into the claimant's directory phone attributes when a directory identity
   resolves.

Any failure while parking, other than a collision on the parked extension
itself, is fatal: a half-parked claimant must surface as an error.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from ..domain.entities import (
    ConflictOutcome,
    ConflictResolution,
    DirectoryIdentity,
    ParkedExtensionRecord,
    VoicemailAccount,
)
from ..domain.ports import ILookupPort, IRowMapper
from ..domain.queries import Queries
from ..domain.requests import (
    CreateParkedMailboxRecord,
    UpdateDirectoryPhone,
    UpdateVoicemailExtension,
)
from .extension_generator import ParkedExtensionAllocator
from .lookups import aliases_match, expect_at_most_one
from .mutation_gate import MutationGate

logger = logging.getLogger(__name__)


class ExtensionConflictResolver:
    """Frees a target extension held by another voicemail account."""

    def __init__(
        self,
        lookup: ILookupPort,
        mapper: IRowMapper,
        gate: MutationGate,
        allocator: ParkedExtensionAllocator,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.lookup = lookup
        self.mapper = mapper
        self.gate = gate
        self.allocator = allocator
        self._clock = clock

    async def resolve(
        self,
        extension: str,
        new_owner_id: str,
        current_owner: Optional[DirectoryIdentity] = None,
    ) -> ConflictResolution:
        """Make sure nobody but new_owner_id holds extension.

        Args:
            extension: Target extension (the line pattern)
            new_owner_id: Account name of the incoming owner
            current_owner: Directory snapshot of the outgoing owner, if any

        Returns:
            ConflictResolution describing what was found and done

        Raises:
            AmbiguousResultError: If several accounts hold the extension
            ExhaustedRetryError: If no parked extension could be committed
            RemoteRejectionError: If any other parking write was rejected
        """
        logger.info(f"Checking whether extension [{extension}] is taken in voicemail")
        row = await expect_at_most_one(
            self.lookup,
            Queries.VOICEMAIL_USER_BY_EXTENSION,
            {"DtmfAccessId": extension},
            "voicemail user",
            extension,
        )

        if row is None:
            logger.info(f"Extension [{extension}] is free")
            return ConflictResolution(ConflictOutcome.NO_CONFLICT, extension)

        claimant = self.mapper.to_voicemail_account(row)

        if aliases_match(claimant.alias, new_owner_id):
            logger.info(
                f"Extension [{extension}] already assigned to [{new_owner_id}], skipping"
            )
            return ConflictResolution(ConflictOutcome.ALREADY_ASSIGNED, extension, claimant)

        if not claimant.alias.strip():
            logger.warning(
                f"Extension [{extension}] is held by voicemail account "
                f"[{claimant.object_id}] with no alias; it cannot be parked"
            )
            return ConflictResolution(ConflictOutcome.UNPARKABLE_CLAIMANT, extension, claimant)

        record = await self._park(claimant, current_owner)
        return ConflictResolution(
            ConflictOutcome.PARKED,
            extension,
            claimant=claimant,
            parked_record=record,
        )

    async def _park(
        self,
        claimant: VoicemailAccount,
        current_owner: Optional[DirectoryIdentity],
    ) -> ParkedExtensionRecord:
        logger.info(
            f"Extension held by [{claimant.alias}], generating parked mailbox extension"
        )

        parked = await self.allocator.commit(
            lambda candidate: self.gate.submit(
                UpdateVoicemailExtension(object_id=claimant.object_id, extension=candidate)
            )
        )
        logger.info(
            f"Parked voicemail user [{claimant.object_id}] on extension [{parked}]"
        )

        record = ParkedExtensionRecord(
            claimant_object_id=claimant.object_id,
            claimant_alias=claimant.alias,
            extension=parked,
            created_at=self._clock(),
        )

        logger.info("Storing parked mailbox record")
        await self.gate.submit(
            CreateParkedMailboxRecord(
                object_id=record.claimant_object_id,
                alias=record.claimant_alias,
                extension=record.extension,
                created_at=record.created_at_text,
                deleted=record.deleted,
            )
        )

        identity = await self._claimant_identity(claimant, current_owner)
        if identity is None:
            logger.info(
                f"No directory account for [{claimant.alias}], skipping phone attribute update"
            )
        else:
            logger.info(
                f"Updating directory phone attributes of [{identity.account_name}] to [{parked}]"
            )
            await self.gate.submit(
                UpdateDirectoryPhone(object_guid=identity.object_guid, extension=parked)
            )

        return record

    async def _claimant_identity(
        self,
        claimant: VoicemailAccount,
        current_owner: Optional[DirectoryIdentity],
    ) -> Optional[DirectoryIdentity]:
        if current_owner is not None and aliases_match(
            current_owner.account_name, claimant.alias
        ):
            return current_owner

        row = await expect_at_most_one(
            self.lookup,
            Queries.DIRECTORY_USER,
            {"sAMAccountName": claimant.alias},
            "directory user",
            claimant.alias,
        )
        return self.mapper.to_directory_identity(row) if row else None
