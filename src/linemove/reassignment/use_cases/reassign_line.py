"""Reassign Line use case.

Moves a telephone line and its device from one owner to another across the
directory (AD), the call manager (CUCM) and the voicemail system (Unity).
There is no cross-system transaction, so the phases run strictly in order and
each one depends on the side effects of the ones before it:

PHASE 1: validate
├── Current owner directory account (optional)
├── New owner directory account (required)
├── Line and phone (required)
├── Building (optional) and phone templates (required, at least one)
└── Parked mailbox roster (seeds the parked extension exclusion set)

PHASE 2: evict_current_owner_devices (only with a current owner)
PHASE 3: ensure_call_manager_user (reuse or create)
PHASE 4: repoint_line_and_device (line text, device-to-line, device owner)
PHASE 5: evict_new_owner_devices
PHASE 6: bind_identity_to_device (remove-all-then-add mapping, owner name)
PHASE 7: propagate_directory_extension (ipPhone / telephoneNumber)
PHASE 8: resolve_extension_conflict (only with a current owner)
PHASE 9: provision_voicemail (create or update, best-effort SMTP/UM)
PHASE 10: sync_call_schedule
PHASE 11: sync_transfer_rules (only when the building enables them)

Key Design Decisions:
- Records are read once in PHASE 1 and threaded through the run; nothing is
  re-fetched after a mutation (except the voicemail account right after it
  is created, to learn its call handler).
- Devices whose name starts with the hardphone prefix are never deleted, and
  neither is the device being reassigned.
- Fatal errors propagate immediately. There is no rollback: some effects,
  like device deletion, cannot be safely reversed.
- SMTP proxy and unified-messaging attachments are best-effort; failures
  become warnings on the result.
- Read-only mode performs every lookup and decision and suppresses every
  mutation. Suppressed creates hand `dry-run:<owner>` placeholder ids to the
  phases that follow so the decision log stays complete.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from ...api.exceptions import (
    BestEffortFailure,
    LineMoveError,
    RemoteRejectionError,
    WorkflowTimeoutError,
)
from ...api.resilience import with_timeout
from ..config import ReassignmentConfig
from ..domain.entities import (
    BuildingPolicy,
    CallManagerUser,
    ConflictResolution,
    Device,
    DirectoryIdentity,
    Line,
    PhaseResult,
    PhaseStatus,
    PhoneTemplate,
    ReassignmentRequest,
    ReassignmentResult,
    VoicemailAccount,
)
from ..domain.ports import IActionPort, ILineLock, ILookupPort, IRowMapper
from ..domain.queries import Queries
from ..domain.requests import (
    ActionRequest,
    AssignPhoneOwner,
    CreateCallManagerUser,
    CreateSmtpProxyAddress,
    CreateUnifiedMessagingAccount,
    CreateVoicemailAccount,
    DeleteDeviceMapping,
    DeletePhone,
    ReplaceDeviceMapping,
    SetPhoneOwnerName,
    UpdateCallSchedule,
    UpdateDirectoryPhone,
    UpdateLineText,
    UpdatePhoneLine,
    UpdateTransferOption,
    UpdateVoicemailExtension,
)
from .conflict_resolver import ExtensionConflictResolver
from .extension_generator import ParkedExtensionAllocator
from .lookups import expect_any, expect_at_most_one, expect_one, expect_some
from .mutation_gate import MutationGate

logger = logging.getLogger(__name__)

DRY_RUN_PREFIX = "dry-run:"


@dataclass
class _RunContext:
    """Snapshot and working state of one run."""

    request: ReassignmentRequest
    result: ReassignmentResult
    gate: MutationGate

    current_owner: Optional[DirectoryIdentity] = None
    new_owner: Optional[DirectoryIdentity] = None
    line: Optional[Line] = None
    phone: Optional[Device] = None
    building: Optional[BuildingPolicy] = None
    templates: list[PhoneTemplate] = field(default_factory=list)
    allocator: Optional[ParkedExtensionAllocator] = None

    call_manager_user: Optional[CallManagerUser] = None
    conflict: Optional[ConflictResolution] = None
    voicemail: Optional[VoicemailAccount] = None

    @property
    def protected_device_ids(self) -> set[str]:
        """Devices that must survive eviction: the one being reassigned."""
        ids = {self.phone.pkid}
        if self.line.device_pkid:
            ids.add(self.line.device_pkid)
        return ids


Step = Callable[[_RunContext, PhaseResult], Awaitable[None]]


class ReassignLineUseCase:
    """Reassign a line and its device to a new owner.

    Usage:
        use_case = ReassignLineUseCase(lookup, action, config, RowMapper())
        result = await use_case.execute(request)
    """

    def __init__(
        self,
        lookup: ILookupPort,
        action: IActionPort,
        config: ReassignmentConfig,
        mapper: IRowMapper,
        line_lock: Optional[ILineLock] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the use case.

        Args:
            lookup: Port for named queries
            action: Port for mutations
            config: Deployment configuration
            mapper: Maps query rows into entities
            line_lock: Optional per-line mutual exclusion between runs
            rng: Random source for parked extensions (seeded in tests)
            clock: Timestamp source for parked mailbox records
        """
        self.lookup = lookup
        self.action = action
        self.config = config
        self.mapper = mapper
        self.line_lock = line_lock
        self._rng = rng or random.Random()
        self._clock = clock

        self._phases: tuple[tuple[str, Step], ...] = (
            ("validate", self._validate),
            ("evict_current_owner_devices", self._evict_current_owner_devices),
            ("ensure_call_manager_user", self._ensure_call_manager_user),
            ("repoint_line_and_device", self._repoint_line_and_device),
            ("evict_new_owner_devices", self._evict_new_owner_devices),
            ("bind_identity_to_device", self._bind_identity_to_device),
            ("propagate_directory_extension", self._propagate_directory_extension),
            ("resolve_extension_conflict", self._resolve_extension_conflict),
            ("provision_voicemail", self._provision_voicemail),
            ("sync_call_schedule", self._sync_call_schedule),
            ("sync_transfer_rules", self._sync_transfer_rules),
        )

    @property
    def phase_names(self) -> list[str]:
        return [name for name, _ in self._phases]

    async def execute(self, request: ReassignmentRequest) -> ReassignmentResult:
        """Run the reassignment.

        Args:
            request: Validated reassignment request

        Returns:
            ReassignmentResult describing every phase and mutation

        Raises:
            LineMoveError: Any fatal error, unchanged. Whatever was committed
                before it stays committed.
        """
        if self.line_lock is None:
            return await self._execute_with_deadline(request)

        async with self.line_lock.hold(request.line_id):
            return await self._execute_with_deadline(request)

    async def _execute_with_deadline(self, request: ReassignmentRequest) -> ReassignmentResult:
        timeout = self.config.run_timeout_seconds
        if timeout is None:
            return await self._run(request)

        try:
            return await with_timeout(self._run, timeout, request)
        except asyncio.TimeoutError as e:
            logger.error(f"Reassignment of line [{request.line_id}] exceeded {timeout}s")
            raise WorkflowTimeoutError(timeout, cause=e)

    async def _run(self, request: ReassignmentRequest) -> ReassignmentResult:
        started_at = datetime.now()
        result = ReassignmentResult(
            request=request,
            dry_run=self.config.read_only,
            started_at=started_at,
        )
        ctx = _RunContext(
            request=request,
            result=result,
            gate=MutationGate(self.action, self.config, result.mutations),
        )

        mode = " [READ-ONLY]" if self.config.read_only else ""
        logger.info(
            f"Starting line reassignment{mode}: line [{request.line_id}] "
            f"device [{request.device_id}] from [{request.current_owner_id or '-'}] "
            f"to [{request.new_owner_id}]"
        )

        total = len(self._phases)
        for index, (name, step) in enumerate(self._phases, start=1):
            logger.info(f"Phase {index}/{total}: {name}")
            await self._run_phase(ctx, name, step)

        result.completed_at = datetime.now()
        result.total_duration_seconds = (result.completed_at - started_at).total_seconds()

        logger.info(
            f"Line reassignment completed{mode}: {len(result.mutations)} mutations, "
            f"{len(result.warnings)} warnings, "
            f"{result.total_duration_seconds:.1f}s"
        )
        return result

    async def _run_phase(self, ctx: _RunContext, name: str, step: Step) -> None:
        phase = PhaseResult(name=name)
        ctx.result.phases.append(phase)
        ctx.gate.phase = name
        phase_start = datetime.now()

        try:
            await step(ctx, phase)
        finally:
            phase.mutations = ctx.gate.count_for_phase(name)
            phase.duration_seconds = (datetime.now() - phase_start).total_seconds()

    def _skip(self, phase: PhaseResult, reason: str) -> None:
        logger.info(f"Skipping {phase.name}: {reason}")
        phase.status = PhaseStatus.SKIPPED
        phase.notes.append(reason)

    def _placeholder(self, key: str) -> str:
        return f"{DRY_RUN_PREFIX}{key}"

    # ========================================
    # PHASE 1: Validate
    # ========================================

    async def _validate(self, ctx: _RunContext, phase: PhaseResult) -> None:
        request = ctx.request
        logger.info("Validating resources prior to executing changes")

        if request.has_current_owner:
            logger.info("Retrieving current owner directory account")
            row = await expect_at_most_one(
                self.lookup,
                Queries.DIRECTORY_USER,
                {"sAMAccountName": request.current_owner_id},
                "directory user",
                request.current_owner_id,
            )
            ctx.current_owner = self.mapper.to_directory_identity(row) if row else None
        else:
            logger.info("No current owner, skipping current owner lookup")

        logger.info("Retrieving new owner directory account")
        ctx.new_owner = self.mapper.to_directory_identity(
            await expect_one(
                self.lookup,
                Queries.DIRECTORY_USER,
                {"sAMAccountName": request.new_owner_id},
                "directory user",
                request.new_owner_id,
            )
        )

        logger.info("Retrieving line")
        ctx.line = self.mapper.to_line(
            await expect_one(
                self.lookup,
                Queries.LINE,
                {"UUID": request.line_id},
                "call manager line",
                request.line_id,
            )
        )

        logger.info("Retrieving phone")
        ctx.phone = self.mapper.to_device(
            await expect_one(
                self.lookup,
                Queries.PHONE,
                {"UUID": request.device_id},
                "call manager phone",
                request.device_id,
            )
        )

        logger.info("Retrieving building")
        row = await expect_at_most_one(
            self.lookup,
            Queries.BUILDING,
            {"BuildingID": request.building_id},
            "building",
            request.building_id,
        )
        ctx.building = self.mapper.to_building_policy(row) if row else None

        logger.info("Retrieving phone templates")
        ctx.templates = [
            self.mapper.to_phone_template(r)
            for r in await expect_some(
                self.lookup,
                Queries.PHONE_TEMPLATES,
                {"BuildingID": request.building_id},
                "phone template",
                request.building_id,
            )
        ]

        logger.info("Retrieving parked mailboxes")
        roster = await expect_any(self.lookup, Queries.PARKED_MAILBOXES, {}, "parked mailbox")
        parked = [e for e in (self.mapper.to_parked_extension(r) for r in roster) if e]
        ctx.allocator = ParkedExtensionAllocator(
            self.config.parked_extension_lower,
            self.config.parked_extension_upper,
            excluded=parked,
            max_attempts=self.config.parked_commit_attempts,
            rng=self._rng,
        )

        phase.notes.append(f"line pattern {ctx.line.pattern}")
        logger.info("Validation completed")

    # ========================================
    # PHASE 2 / 5: Device eviction
    # ========================================

    async def _evict_current_owner_devices(self, ctx: _RunContext, phase: PhaseResult) -> None:
        if not ctx.request.has_current_owner:
            self._skip(phase, "no current owner")
            return
        logger.info("Removing devices associated with the current owner")
        await self._evict_devices(ctx, ctx.request.current_owner_id)

    async def _evict_new_owner_devices(self, ctx: _RunContext, phase: PhaseResult) -> None:
        logger.info("Removing devices associated with the new owner")
        await self._evict_devices(ctx, ctx.request.new_owner_id)

    async def _evict_devices(self, ctx: _RunContext, owner_id: str) -> None:
        rows = await expect_any(
            self.lookup,
            Queries.USER_DEVICES,
            {"UserId": owner_id},
            "associated device",
            owner_id,
        )
        if not rows:
            logger.info(f"No devices found for owner [{owner_id}]")
            return

        prefix = self.config.hardphone_prefix
        protected = ctx.protected_device_ids

        for device in (self.mapper.to_device(r) for r in rows):
            if device.is_hardphone(prefix):
                logger.info(f"Skipping device removal [{device.name}] - PKID [{device.pkid}]: hardphone")
                ctx.result.devices_skipped.append(device.name)
                continue

            if device.pkid in protected:
                logger.info(
                    f"Skipping device removal [{device.name}] - PKID [{device.pkid}]: "
                    f"device being reassigned"
                )
                ctx.result.devices_skipped.append(device.name)
                continue

            logger.info(f"Remove device [{device.name}] - PKID [{device.pkid}]")
            await ctx.gate.submit(DeletePhone(device_pkid=device.pkid, device_name=device.name))
            await ctx.gate.submit(DeleteDeviceMapping(device_pkid=device.pkid))
            ctx.result.devices_removed.append(device.name)

    # ========================================
    # PHASE 3: Call manager user
    # ========================================

    async def _ensure_call_manager_user(self, ctx: _RunContext, phase: PhaseResult) -> None:
        owner_id = ctx.request.new_owner_id
        logger.info("Checking if new owner has a call manager user account")

        row = await expect_at_most_one(
            self.lookup,
            Queries.CALL_MANAGER_USER,
            {"UserId": owner_id},
            "call manager user",
            owner_id,
        )
        if row is not None:
            ctx.call_manager_user = self.mapper.to_call_manager_user(row)
            logger.info("New owner exists in call manager, skipping creating user")
            phase.notes.append("reused existing user")
            return

        logger.info("New owner doesn't exist in call manager, creating user")
        request = CreateCallManagerUser(
            user_id=ctx.new_owner.account_name,
            first_name=ctx.new_owner.given_name,
            last_name=ctx.new_owner.surname,
        )
        created = await ctx.gate.submit(request)
        ctx.result.created_call_manager_user = True

        if created is None:
            pkid = self._placeholder(owner_id)
        else:
            pkid = str(created.get("pkid") or "")
            if not pkid:
                raise RemoteRejectionError(
                    f"{request.action} returned no pkid for [{owner_id}]",
                    system=self.config.call_manager_system,
                    action=request.action,
                )

        ctx.call_manager_user = CallManagerUser(pkid=pkid, user_id=request.user_id)
        phase.notes.append("created user")

    # ========================================
    # PHASE 4: Line and device
    # ========================================

    async def _repoint_line_and_device(self, ctx: _RunContext, phase: PhaseResult) -> None:
        request = ctx.request
        line = ctx.line
        external_mask = request.external_mask
        if not external_mask and ctx.building is not None:
            external_mask = ctx.building.external_phone_number_mask

        logger.info("Updating directory number description")
        await ctx.gate.submit(
            UpdateLineText(
                dirn_uuid=line.dirn_uuid,
                description=request.new_label,
                alerting_name=request.new_display_name,
            )
        )

        logger.info("Updating device-to-line description")
        await ctx.gate.submit(
            UpdatePhoneLine(
                line_uuid=line.uuid,
                phone_uuid=ctx.phone.pkid,
                index=line.index,
                pattern=line.pattern,
                route_partition_name=line.route_partition_name,
                label=request.new_label,
                display=request.new_display_name,
                external_mask=external_mask,
            )
        )

        logger.info("Updating phone owner (remove all other users)")
        await ctx.gate.submit(
            AssignPhoneOwner(phone_uuid=ctx.phone.pkid, owner_user_id=request.new_owner_id)
        )

    # ========================================
    # PHASE 6: Identity to device
    # ========================================

    async def _bind_identity_to_device(self, ctx: _RunContext, phase: PhaseResult) -> None:
        device_pkid = ctx.line.device_pkid or ctx.phone.pkid

        logger.info("Mapping new owner to device (remove all existing mapped users)")
        await ctx.gate.submit(
            ReplaceDeviceMapping(device_pkid=device_pkid, user_pkid=ctx.call_manager_user.pkid)
        )

        logger.info("Updating device owner name")
        await ctx.gate.submit(
            SetPhoneOwnerName(phone_uuid=ctx.phone.pkid, owner_user_id=ctx.request.new_owner_id)
        )

    # ========================================
    # PHASE 7: Directory phone attributes
    # ========================================

    async def _propagate_directory_extension(self, ctx: _RunContext, phase: PhaseResult) -> None:
        logger.info(
            f"Updating [ipPhone] and [telephoneNumber] for new owner to [{ctx.line.pattern}]"
        )
        await ctx.gate.submit(
            UpdateDirectoryPhone(object_guid=ctx.new_owner.object_guid, extension=ctx.line.pattern)
        )

    # ========================================
    # PHASE 8: Extension conflict
    # ========================================

    async def _resolve_extension_conflict(self, ctx: _RunContext, phase: PhaseResult) -> None:
        if not ctx.request.has_current_owner:
            self._skip(phase, "no current owner")
            return

        resolver = ExtensionConflictResolver(
            self.lookup,
            self.mapper,
            ctx.gate,
            ctx.allocator,
            clock=self._clock,
        )
        ctx.conflict = await resolver.resolve(
            ctx.line.pattern,
            ctx.new_owner.account_name,
            ctx.current_owner,
        )
        ctx.result.conflict = ctx.conflict
        if ctx.conflict.parked_record is not None:
            ctx.result.parked_records.append(ctx.conflict.parked_record)
        phase.notes.append(ctx.conflict.outcome.value)

    # ========================================
    # PHASE 9: Voicemail account
    # ========================================

    async def _provision_voicemail(self, ctx: _RunContext, phase: PhaseResult) -> None:
        owner_id = ctx.request.new_owner_id
        logger.info("Checking if new owner has a voicemail account")

        row = await expect_at_most_one(
            self.lookup,
            Queries.VOICEMAIL_USER,
            {"Alias": owner_id},
            "voicemail user",
            owner_id,
        )

        if row is None:
            ctx.voicemail = await self._create_voicemail(ctx)
            phase.notes.append("created voicemail account")
            return

        account = self.mapper.to_voicemail_account(row)
        ctx.voicemail = account

        if ctx.conflict is not None and ctx.conflict.skip_extension_update:
            logger.info("Owner is already properly assigned, skipping assignment")
            phase.notes.append("extension update skipped")
        else:
            logger.info(
                f"Updating voicemail user [{account.object_id}] to extension [{ctx.line.pattern}]"
            )
            await ctx.gate.submit(
                UpdateVoicemailExtension(object_id=account.object_id, extension=ctx.line.pattern)
            )

        await self._attach_mail_services(ctx, account.object_id)

    async def _create_voicemail(self, ctx: _RunContext) -> VoicemailAccount:
        owner_id = ctx.request.new_owner_id
        owner = ctx.new_owner
        template_alias = ctx.building.voicemail_template_alias if ctx.building else ""

        logger.info("Creating voicemail account for new owner")
        created = await ctx.gate.submit(
            CreateVoicemailAccount(
                alias=owner_id,
                extension=ctx.line.pattern,
                email_address=owner.mail,
                first_name=owner.given_name,
                last_name=owner.surname,
                ldap_linked=self.config.ldap_enabled,
                template_alias=template_alias,
            )
        )
        ctx.result.created_voicemail_account = True

        if created is None:
            placeholder = self._placeholder(owner_id)
            await self._attach_mail_services(ctx, placeholder)
            return VoicemailAccount(
                object_id=placeholder,
                alias=owner_id,
                extension=ctx.line.pattern,
                call_handler_object_id=placeholder,
            )

        await self._attach_mail_services(ctx, str(created.get("ObjectId") or ""))

        logger.info("Re-reading voicemail account to obtain its call handler")
        return self.mapper.to_voicemail_account(
            await expect_one(
                self.lookup,
                Queries.VOICEMAIL_USER,
                {"Alias": owner_id},
                "voicemail user",
                owner_id,
            )
        )

    async def _attach_mail_services(self, ctx: _RunContext, object_id: str) -> None:
        mail = ctx.new_owner.mail.strip()
        if not mail:
            logger.info("New owner has no mail address, skipping SMTP proxy and unified messaging")
            return

        if self.config.add_smtp_proxy:
            await self._best_effort(
                ctx,
                "Creating SMTP proxy address",
                lambda: CreateSmtpProxyAddress(smtp_address=mail, object_id=object_id),
            )

        if self.config.add_unified_messaging:
            await self._best_effort(
                ctx,
                "Creating unified messaging account",
                lambda: CreateUnifiedMessagingAccount(
                    external_service_id=self.config.unified_messaging_service_id,
                    subscriber_object_id=object_id,
                ),
            )

    async def _best_effort(
        self,
        ctx: _RunContext,
        step: str,
        build: Callable[[], ActionRequest],
    ) -> Optional[dict[str, Any]]:
        """Issue a mutation whose failure is logged and recorded, not raised."""
        try:
            return await ctx.gate.submit(build())
        except LineMoveError as e:
            failure = BestEffortFailure(step, e)
            logger.warning(failure.message)
            ctx.result.warnings.append(failure.message)
            return None

    # ========================================
    # PHASE 10: Call schedule
    # ========================================

    async def _sync_call_schedule(self, ctx: _RunContext, phase: PhaseResult) -> None:
        if ctx.building is None:
            self._skip(phase, "no building")
            return
        if not ctx.building.call_schedule_object_id:
            self._skip(phase, "building has no call schedule")
            return

        logger.info("Updating voicemail call schedule for new owner")
        await ctx.gate.submit(
            UpdateCallSchedule(
                call_handler_object_id=ctx.voicemail.call_handler_object_id,
                schedule_set_object_id=ctx.building.call_schedule_object_id,
            )
        )

    # ========================================
    # PHASE 11: Transfer rules
    # ========================================

    async def _sync_transfer_rules(self, ctx: _RunContext, phase: PhaseResult) -> None:
        logger.info("Checking if user transfer rules are enabled for building")
        if ctx.building is None:
            self._skip(phase, "no building")
            return
        if not ctx.building.transfer_rules_enabled:
            self._skip(phase, "transfer rules disabled for building")
            return

        logger.info("Updating user transfer rules")
        for option, rule in ctx.building.transfer_rules.items():
            await ctx.gate.submit(
                UpdateTransferOption(
                    option_type=option.value,
                    call_handler_object_id=ctx.voicemail.call_handler_object_id,
                    transfer_action=rule.action,
                    enabled=rule.enabled,
                )
            )
