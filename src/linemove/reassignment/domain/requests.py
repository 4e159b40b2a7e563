"""Typed action requests.

Every mutating call the workflow issues is described by one frozen dataclass
here. A request knows which backend it targets, the action name that backend
exposes, and how to render its wire payload. Required fields are validated
once at construction, so an empty object id or alias never reaches a backend
as a silently-blank parameter.

Wire payload conventions:
    - Booleans are sent as strings ('True', 'true', '0', ...) exactly as the
      target systems expect them; each request spells out its own literal.
    - Optional fields have a documented default instead of being coalesced at
      the call site.
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, ClassVar

from ...api.exceptions import RequestValidationError


class BackendSystem(str, Enum):
    """Logical backends an action can target.

    The concrete system identifier sent to the automation host comes from
    ReassignmentConfig, so deployments can rename systems freely.
    """

    DIRECTORY = "directory"
    CALL_MANAGER = "call_manager"
    VOICEMAIL = "voicemail"
    AUDIT = "audit"


@dataclass(frozen=True)
class ActionRequest:
    """Base class for typed action requests.

    Subclasses declare `system`, `action` and the names of their required
    string fields, and implement `to_params()`.
    """

    system: ClassVar[BackendSystem]
    action: ClassVar[str]
    required: ClassVar[tuple[str, ...]] = ()

    def __post_init__(self):
        for name in self.required:
            value = getattr(self, name)
            if value is None or not str(value).strip():
                raise RequestValidationError(
                    f"{type(self).__name__}.{name} is required",
                    field=name,
                    details={"action": self.action},
                )

    def to_params(self) -> dict[str, Any]:
        raise NotImplementedError

    def describe(self) -> str:
        """Single-line rendering for the decision log."""
        parts = " - ".join(f"{f.name}: [{getattr(self, f.name)}]" for f in fields(self))
        return f"{self.action} {parts}"


# ============================================
# Call manager (CUCM)
# ============================================

@dataclass(frozen=True)
class DeletePhone(ActionRequest):
    system: ClassVar[BackendSystem] = BackendSystem.CALL_MANAGER
    action: ClassVar[str] = "PhonesDelete"
    required: ClassVar[tuple[str, ...]] = ("device_pkid", "device_name")

    device_pkid: str
    device_name: str

    def to_params(self) -> dict[str, Any]:
        return {"uuid": self.device_pkid, "name": self.device_name}


@dataclass(frozen=True)
class DeleteDeviceMapping(ActionRequest):
    system: ClassVar[BackendSystem] = BackendSystem.CALL_MANAGER
    action: ClassVar[str] = "EndUserDeviceMapsDelete"
    required: ClassVar[tuple[str, ...]] = ("device_pkid",)

    device_pkid: str

    def to_params(self) -> dict[str, Any]:
        return {"pkid": self.device_pkid}


@dataclass(frozen=True)
class CreateCallManagerUser(ActionRequest):
    """Create an end user. First/last name may be blank in the directory."""

    system: ClassVar[BackendSystem] = BackendSystem.CALL_MANAGER
    action: ClassVar[str] = "EndUsersCreate"
    required: ClassVar[tuple[str, ...]] = ("user_id",)

    user_id: str
    first_name: str = ""
    last_name: str = ""

    def to_params(self) -> dict[str, Any]:
        return {
            "firstname": self.first_name,
            "lastname": self.last_name,
            "userid": self.user_id,
        }


@dataclass(frozen=True)
class UpdateLineText(ActionRequest):
    """Set the directory number description and alerting names."""

    system: ClassVar[BackendSystem] = BackendSystem.CALL_MANAGER
    action: ClassVar[str] = "LinesUpdate"
    required: ClassVar[tuple[str, ...]] = ("dirn_uuid",)

    dirn_uuid: str
    description: str = ""
    alerting_name: str = ""

    def to_params(self) -> dict[str, Any]:
        return {
            "uuid": self.dirn_uuid,
            "description": self.description,
            "alertingName": self.alerting_name,
            "asciiAlertingName": self.alerting_name,
        }


@dataclass(frozen=True)
class UpdatePhoneLine(ActionRequest):
    """Set the device-to-line label, display and external mask."""

    system: ClassVar[BackendSystem] = BackendSystem.CALL_MANAGER
    action: ClassVar[str] = "PhoneLinesUpdate"
    required: ClassVar[tuple[str, ...]] = ("line_uuid", "phone_uuid", "index", "pattern")

    line_uuid: str
    phone_uuid: str
    index: str
    pattern: str
    route_partition_name: str = ""
    label: str = ""
    display: str = ""
    external_mask: str = ""

    def to_params(self) -> dict[str, Any]:
        return {
            "uuid": self.line_uuid,
            "phone_uuid": self.phone_uuid,
            "index": self.index,
            "dirn_pattern": self.pattern,
            "dirn_routePartitionName_text": self.route_partition_name,
            "label": self.label,
            "display": self.display,
            "e164Mask": self.external_mask,
        }


@dataclass(frozen=True)
class AssignPhoneOwner(ActionRequest):
    """Set the device owner and drop every other mapped user."""

    system: ClassVar[BackendSystem] = BackendSystem.CALL_MANAGER
    action: ClassVar[str] = "PhonesUpdate"
    required: ClassVar[tuple[str, ...]] = ("phone_uuid", "owner_user_id")

    phone_uuid: str
    owner_user_id: str

    def to_params(self) -> dict[str, Any]:
        return {
            "uuid": self.phone_uuid,
            "ownerUserName_text": self.owner_user_id,
            "removeAllUsersForDevice": "True",
        }


@dataclass(frozen=True)
class ReplaceDeviceMapping(ActionRequest):
    """Map a user to a device, removing all existing mappings first."""

    system: ClassVar[BackendSystem] = BackendSystem.CALL_MANAGER
    action: ClassVar[str] = "EndUserDeviceMapsCreate"
    required: ClassVar[tuple[str, ...]] = ("device_pkid", "user_pkid")

    device_pkid: str
    user_pkid: str

    def to_params(self) -> dict[str, Any]:
        return {
            "fkdevice": self.device_pkid,
            "fkenduser": self.user_pkid,
            "tkuserassociation": "1",
            "removeAllUsersForDevice": "True",
        }


@dataclass(frozen=True)
class SetPhoneOwnerName(ActionRequest):
    system: ClassVar[BackendSystem] = BackendSystem.CALL_MANAGER
    action: ClassVar[str] = "PhonesUpdate"
    required: ClassVar[tuple[str, ...]] = ("phone_uuid", "owner_user_id")

    phone_uuid: str
    owner_user_id: str

    def to_params(self) -> dict[str, Any]:
        return {"uuid": self.phone_uuid, "ownerUserName": self.owner_user_id}


# ============================================
# Directory (AD)
# ============================================

@dataclass(frozen=True)
class UpdateDirectoryPhone(ActionRequest):
    """Write an extension into both phone attributes of a directory account."""

    system: ClassVar[BackendSystem] = BackendSystem.DIRECTORY
    action: ClassVar[str] = "UserUpdate"
    required: ClassVar[tuple[str, ...]] = ("object_guid", "extension")

    object_guid: str
    extension: str

    def to_params(self) -> dict[str, Any]:
        return {
            "objectGUID": self.object_guid,
            "ipPhone": self.extension,
            "telephoneNumber": self.extension,
        }


# ============================================
# Voicemail (Unity)
# ============================================

@dataclass(frozen=True)
class UpdateVoicemailExtension(ActionRequest):
    system: ClassVar[BackendSystem] = BackendSystem.VOICEMAIL
    action: ClassVar[str] = "userUpdate"
    required: ClassVar[tuple[str, ...]] = ("object_id", "extension")

    object_id: str
    extension: str

    def to_params(self) -> dict[str, Any]:
        return {"ObjectId": self.object_id, "DtmfAccessId": self.extension}


@dataclass(frozen=True)
class CreateVoicemailAccount(ActionRequest):
    """Create a voicemail user from directory attributes.

    LdapType is '3' (linked to the directory) when LDAP linkage is enabled,
    '0' otherwise.
    """

    system: ClassVar[BackendSystem] = BackendSystem.VOICEMAIL
    action: ClassVar[str] = "userCreate"
    required: ClassVar[tuple[str, ...]] = ("alias", "extension")

    alias: str
    extension: str
    email_address: str = ""
    first_name: str = ""
    last_name: str = ""
    ldap_linked: bool = True
    template_alias: str = ""

    def to_params(self) -> dict[str, Any]:
        return {
            "Alias": self.alias,
            "EmailAddress": self.email_address,
            "FirstName": self.first_name,
            "LastName": self.last_name,
            "LdapType": "3" if self.ldap_linked else "0",
            "DtmfAccessId": self.extension,
            "TemplateAlias": self.template_alias,
            "CreateSmtpProxyFromCorp": "true",
        }


@dataclass(frozen=True)
class CreateSmtpProxyAddress(ActionRequest):
    system: ClassVar[BackendSystem] = BackendSystem.VOICEMAIL
    action: ClassVar[str] = "SmtpproxyaddressesCreate"
    required: ClassVar[tuple[str, ...]] = ("smtp_address", "object_id")

    smtp_address: str
    object_id: str

    def to_params(self) -> dict[str, Any]:
        return {
            "SmtpAddress": self.smtp_address,
            "ObjectGlobalUserObjectId": self.object_id,
        }


@dataclass(frozen=True)
class CreateUnifiedMessagingAccount(ActionRequest):
    """Bind a voicemail user to the unified-messaging external service."""

    system: ClassVar[BackendSystem] = BackendSystem.VOICEMAIL
    action: ClassVar[str] = "usersexternalserviceaccountsCreate"
    required: ClassVar[tuple[str, ...]] = ("external_service_id", "subscriber_object_id")

    external_service_id: str
    subscriber_object_id: str

    def to_params(self) -> dict[str, Any]:
        return {
            "ExternalServiceObjectId": self.external_service_id,
            "EnableCalendarCapability": "true",
            "LoginType": "0",
            "EnableMailboxSynchCapability": "true",
            "EmailAddressUseCorp": "true",
            "SubscriberObjectId": self.subscriber_object_id,
        }


@dataclass(frozen=True)
class UpdateCallSchedule(ActionRequest):
    system: ClassVar[BackendSystem] = BackendSystem.VOICEMAIL
    action: ClassVar[str] = "userscallhandlersUpdate"
    required: ClassVar[tuple[str, ...]] = ("call_handler_object_id", "schedule_set_object_id")

    call_handler_object_id: str
    schedule_set_object_id: str

    def to_params(self) -> dict[str, Any]:
        return {
            "ObjectId": self.call_handler_object_id,
            "ScheduleSetObjectId": self.schedule_set_object_id,
        }


@dataclass(frozen=True)
class UpdateTransferOption(ActionRequest):
    system: ClassVar[BackendSystem] = BackendSystem.VOICEMAIL
    action: ClassVar[str] = "callhandlertransferoptionsUpdate"
    required: ClassVar[tuple[str, ...]] = ("option_type", "call_handler_object_id")

    option_type: str
    call_handler_object_id: str
    transfer_action: str = ""
    enabled: bool = False

    def to_params(self) -> dict[str, Any]:
        return {
            "TransferOptionType": self.option_type,
            "Action": self.transfer_action,
            "Enabled": "true" if self.enabled else "false",
            "CallHandlerObjectId": self.call_handler_object_id,
        }


# ============================================
# Internal audit
# ============================================

@dataclass(frozen=True)
class CreateParkedMailboxRecord(ActionRequest):
    """Append one parked-extension audit row."""

    system: ClassVar[BackendSystem] = BackendSystem.AUDIT
    action: ClassVar[str] = "ParkedMailboxCreate"
    required: ClassVar[tuple[str, ...]] = ("object_id", "alias", "extension", "created_at")

    object_id: str
    alias: str
    extension: str
    created_at: str  # YYYY-MM-DD HH:MM:SS.mmm
    deleted: bool = False

    def to_params(self) -> dict[str, Any]:
        return {
            "UnityUserObjectId": self.object_id,
            "UnityUserAlias": self.alias,
            "UnityUserExtension": self.extension,
            "DateCreated": self.created_at,
            "Deleted": "1" if self.deleted else "0",
        }


__all__ = [
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
]
