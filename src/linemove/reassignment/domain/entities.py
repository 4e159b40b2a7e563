"""Domain entities for line reassignment.

These are pure domain objects with no infrastructure dependencies. All of
them are request-scoped snapshots of remote records: they are read once at the
start of a run and threaded through it, never re-fetched after a mutation.
The only record this system creates for itself is ParkedExtensionRecord.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ...api.exceptions import RequestValidationError


# ============================================
# Backend snapshots
# ============================================

@dataclass
class DirectoryIdentity:
    """A person's directory (AD) account."""

    object_guid: str
    account_name: str  # sAMAccountName
    given_name: str = ""
    surname: str = ""
    display_name: str = ""
    mail: str = ""
    department: str = ""
    ip_phone: str = ""
    telephone_number: str = ""

    @property
    def has_mail(self) -> bool:
        return bool(self.mail.strip())


@dataclass
class CallManagerUser:
    """An end user account in the call manager."""

    pkid: str
    user_id: str


@dataclass
class Line:
    """A directory number as it appears on a device.

    `uuid` identifies the device-to-line association, `dirn_uuid` the
    directory number itself. The pattern is the dialable extension and is
    never changed by a reassignment.
    """

    uuid: str
    dirn_uuid: str
    pattern: str
    route_partition_name: str = ""
    index: str = "1"
    device_pkid: str = ""
    description: str = ""
    alerting_name: str = ""


@dataclass
class Device:
    """A physical or soft endpoint in the call manager."""

    pkid: str
    name: str
    owner_user_id: Optional[str] = None

    def is_hardphone(self, prefix: str) -> bool:
        """Hardphones are identified by their device name prefix (e.g. SEP)."""
        return self.name.upper().startswith(prefix.upper())


@dataclass
class VoicemailAccount:
    """A voicemail / unified-messaging user."""

    object_id: str
    alias: str
    extension: str = ""
    call_handler_object_id: str = ""


class TransferOptionType(str, Enum):
    """Call handler transfer rule slots."""

    STANDARD = "Standard"
    OFF_HOURS = "Off Hours"
    ALTERNATE = "Alternate"


@dataclass
class TransferRule:
    """Action/enabled pair a building applies to one transfer option."""

    action: str
    enabled: bool


@dataclass
class BuildingPolicy:
    """Site-level voicemail configuration. Read-only input."""

    building_id: str
    voicemail_template_alias: str = ""
    call_schedule_object_id: str = ""
    external_phone_number_mask: str = ""
    transfer_rules_enabled: bool = False
    transfer_rules: dict[TransferOptionType, TransferRule] = field(default_factory=dict)


@dataclass
class PhoneTemplate:
    """A soft-phone template configured for a building."""

    template_id: str
    building_id: str
    universal_device_template_uuid: str = ""
    product_enum: str = ""


@dataclass
class ParkedExtensionRecord:
    """Audit trail entry for an extension vacated by conflict resolution.

    Append-only: created once per conflict resolved, never read back by the
    workflow (only the roster of parked extensions is).
    """

    claimant_object_id: str
    claimant_alias: str
    extension: str
    created_at: datetime
    deleted: bool = False

    @property
    def created_at_text(self) -> str:
        """Timestamp as YYYY-MM-DD HH:MM:SS.mmm."""
        return self.created_at.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


# ============================================
# Request
# ============================================

@dataclass
class ReassignmentRequest:
    """Input of one reassignment run.

    Normalised and validated once here so the workflow can treat every
    required field as present and non-empty.
    """

    line_id: str
    device_id: str
    building_id: str
    new_owner_id: str
    new_label: str
    new_display_name: str
    external_mask: str = ""
    current_owner_id: Optional[str] = None

    def __post_init__(self):
        for name in ("line_id", "device_id", "building_id", "new_owner_id"):
            value = str(getattr(self, name) or "").strip()
            if not value:
                raise RequestValidationError(f"{name} is required", field=name)
            setattr(self, name, value)

        self.new_label = (self.new_label or "").strip()
        self.new_display_name = (self.new_display_name or "").strip()
        self.external_mask = (self.external_mask or "").strip()
        self.current_owner_id = (self.current_owner_id or "").strip() or None

    @property
    def has_current_owner(self) -> bool:
        return self.current_owner_id is not None


# ============================================
# Run results
# ============================================

class ConflictOutcome(str, Enum):
    """What the conflict resolver found on the target extension."""

    NO_CONFLICT = "no_conflict"  # Nobody holds the extension
    ALREADY_ASSIGNED = "already_assigned"  # New owner already holds it
    UNPARKABLE_CLAIMANT = "unparkable_claimant"  # Held by an account with no alias
    PARKED = "parked"  # Claimant moved to a parked extension


@dataclass
class ConflictResolution:
    """Result of resolving the target extension."""

    outcome: ConflictOutcome
    extension: str
    claimant: Optional[VoicemailAccount] = None
    parked_record: Optional[ParkedExtensionRecord] = None

    @property
    def skip_extension_update(self) -> bool:
        """Whether the new owner's extension update must not be issued."""
        return self.outcome in (
            ConflictOutcome.ALREADY_ASSIGNED,
            ConflictOutcome.UNPARKABLE_CLAIMANT,
        )


@dataclass
class MutationRecord:
    """One mutating call the workflow issued (or suppressed in read-only mode)."""

    system: str
    action: str
    params: dict[str, Any]
    suppressed: bool = False
    phase: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "system": self.system,
            "action": self.action,
            "params": self.params,
            "suppressed": self.suppressed,
            "phase": self.phase,
        }


class PhaseStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass
class PhaseResult:
    """Outcome of one workflow phase."""

    name: str
    status: PhaseStatus = PhaseStatus.COMPLETED
    notes: list[str] = field(default_factory=list)
    mutations: int = 0
    duration_seconds: float = 0.0


@dataclass
class ReassignmentResult:
    """Outcome of a successful reassignment run.

    Fatal errors propagate as exceptions instead of producing a result, so
    every result describes a run that reached the last phase.
    """

    request: ReassignmentRequest
    dry_run: bool = False
    phases: list[PhaseResult] = field(default_factory=list)
    mutations: list[MutationRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    devices_removed: list[str] = field(default_factory=list)
    devices_skipped: list[str] = field(default_factory=list)
    created_call_manager_user: bool = False
    created_voicemail_account: bool = False
    conflict: Optional[ConflictResolution] = None
    parked_records: list[ParkedExtensionRecord] = field(default_factory=list)

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_duration_seconds: float = 0.0

    def mutations_for(self, action: str) -> list[MutationRecord]:
        """All recorded mutations with the given action name, in order."""
        return [m for m in self.mutations if m.action == action]

    def phase(self, name: str) -> Optional[PhaseResult]:
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for reporting."""
        return {
            "line_id": self.request.line_id,
            "device_id": self.request.device_id,
            "current_owner_id": self.request.current_owner_id,
            "new_owner_id": self.request.new_owner_id,
            "dry_run": self.dry_run,
            "phases": [
                {
                    "name": p.name,
                    "status": p.status.value,
                    "mutations": p.mutations,
                    "notes": p.notes,
                    "duration_seconds": p.duration_seconds,
                }
                for p in self.phases
            ],
            "mutations": [m.to_dict() for m in self.mutations],
            "warnings": self.warnings,
            "devices_removed": self.devices_removed,
            "devices_skipped": self.devices_skipped,
            "created_call_manager_user": self.created_call_manager_user,
            "created_voicemail_account": self.created_voicemail_account,
            "conflict": self.conflict.outcome.value if self.conflict else None,
            "parked_extensions": [r.extension for r in self.parked_records],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_seconds": self.total_duration_seconds,
        }
