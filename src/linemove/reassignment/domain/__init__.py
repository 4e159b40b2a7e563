"""Domain layer for line reassignment.

Contains:
- Entities: Snapshots of backend records and run results
- Requests: Typed payloads for every mutating action
- Ports: Interface definitions for infrastructure adapters
- Queries: Named query catalogue
"""

from .entities import (
    BuildingPolicy,
    CallManagerUser,
    ConflictOutcome,
    ConflictResolution,
    Device,
    DirectoryIdentity,
    Line,
    MutationRecord,
    ParkedExtensionRecord,
    PhaseResult,
    PhaseStatus,
    PhoneTemplate,
    ReassignmentRequest,
    ReassignmentResult,
    TransferOptionType,
    TransferRule,
    VoicemailAccount,
)
from .ports import IActionPort, ILineLock, ILookupPort, IRowMapper
from .queries import Queries
from .requests import (
    ActionRequest,
    AssignPhoneOwner,
    BackendSystem,
    CreateCallManagerUser,
    CreateParkedMailboxRecord,
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

__all__ = [
    # Entities
    "DirectoryIdentity",
    "CallManagerUser",
    "Line",
    "Device",
    "VoicemailAccount",
    "BuildingPolicy",
    "TransferRule",
    "TransferOptionType",
    "PhoneTemplate",
    "ParkedExtensionRecord",
    "ReassignmentRequest",
    "ReassignmentResult",
    "ConflictOutcome",
    "ConflictResolution",
    "MutationRecord",
    "PhaseResult",
    "PhaseStatus",
    # Requests
    "BackendSystem",
    "ActionRequest",
    "DeletePhone",
    "DeleteDeviceMapping",
    "CreateCallManagerUser",
    "UpdateLineText",
    "UpdatePhoneLine",
    "AssignPhoneOwner",
    "ReplaceDeviceMapping",
    "SetPhoneOwnerName",
    "UpdateDirectoryPhone",
    "UpdateVoicemailExtension",
    "CreateVoicemailAccount",
    "CreateSmtpProxyAddress",
    "CreateUnifiedMessagingAccount",
    "UpdateCallSchedule",
    "UpdateTransferOption",
    "CreateParkedMailboxRecord",
    # Ports
    "ILookupPort",
    "IActionPort",
    "ILineLock",
    "IRowMapper",
    # Queries
    "Queries",
]
