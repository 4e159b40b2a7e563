"""Row mapper adapter for transforming query rows into domain entities.

This adapter implements IRowMapper. Rows come back from the automation host
with each backend's own field names (objectGUID, dirn_pattern, DtmfAccessId,
UnityUserTransferRulesEnabled, ...); nothing past this module sees them.
"""

from typing import Any

from ...api.exceptions import RequestValidationError
from ..domain.entities import (
    BuildingPolicy,
    CallManagerUser,
    Device,
    DirectoryIdentity,
    Line,
    PhoneTemplate,
    TransferOptionType,
    TransferRule,
    VoicemailAccount,
)
from ..domain.ports import IRowMapper

# Building columns per transfer option: (action column, enabled column)
_TRANSFER_COLUMNS = {
    TransferOptionType.STANDARD: (
        "UnityUserStandardTransferAction",
        "UnityUserStandardTransferEnabled",
    ),
    TransferOptionType.OFF_HOURS: (
        "UnityUserClosedTransferAction",
        "UnityUserClosedTransferEnabled",
    ),
    TransferOptionType.ALTERNATE: (
        "UnityUserAlternateTransferAction",
        "UnityUserAlternateTransferEnabled",
    ),
}


class RowMapper(IRowMapper):
    """Maps automation host rows to domain entities.

    This class handles:
    - Field renaming from each backend's vocabulary
    - Required field checks (RequestValidationError on a missing key)
    - Flag parsing (bool, "true"/"false", 1/0)
    - None and numeric values normalised to strings
    """

    def to_directory_identity(self, row: dict[str, Any]) -> DirectoryIdentity:
        return DirectoryIdentity(
            object_guid=self._required(row, "objectGUID", "directory user"),
            account_name=self._required(row, "sAMAccountName", "directory user"),
            given_name=self._text(row, "givenName"),
            surname=self._text(row, "sn"),
            display_name=self._text(row, "displayName"),
            mail=self._text(row, "mail"),
            department=self._text(row, "department"),
            ip_phone=self._text(row, "ipPhone"),
            telephone_number=self._text(row, "telephoneNumber"),
        )

    def to_call_manager_user(self, row: dict[str, Any]) -> CallManagerUser:
        return CallManagerUser(
            pkid=self._required(row, "pkid", "call manager user"),
            user_id=self._text(row, "userid") or self._text(row, "UserId"),
        )

    def to_line(self, row: dict[str, Any]) -> Line:
        """Map a device-to-line row.

        The route partition may come back as either the text column or the
        plain column depending on the query.
        """
        return Line(
            uuid=self._required(row, "uuid", "call manager line"),
            dirn_uuid=self._required(row, "dirn_uuid", "call manager line"),
            pattern=self._required(row, "dirn_pattern", "call manager line"),
            route_partition_name=(
                self._text(row, "dirn_routePartitionName_text")
                or self._text(row, "dirn_routePartitionName")
            ),
            index=self._text(row, "index") or "1",
            device_pkid=self._text(row, "device_pkid"),
            description=self._text(row, "description"),
            alerting_name=self._text(row, "alertingName"),
        )

    def to_device(self, row: dict[str, Any]) -> Device:
        """Map an owner device row (pkid) or a phone row (uuid)."""
        pkid = self._text(row, "pkid") or self._text(row, "uuid")
        if not pkid:
            raise RequestValidationError(
                "Device row has neither pkid nor uuid",
                field="pkid",
            )
        return Device(
            pkid=pkid,
            name=self._required(row, "name", "device"),
            owner_user_id=self._text(row, "ownerUserName") or None,
        )

    def to_voicemail_account(self, row: dict[str, Any]) -> VoicemailAccount:
        return VoicemailAccount(
            object_id=self._required(row, "ObjectId", "voicemail user"),
            alias=self._text(row, "Alias"),
            extension=self._text(row, "DtmfAccessId"),
            call_handler_object_id=self._text(row, "CallHandlerObjectId"),
        )

    def to_building_policy(self, row: dict[str, Any]) -> BuildingPolicy:
        rules = {
            option: TransferRule(
                action=self._text(row, action_column),
                enabled=self._flag(row.get(enabled_column)),
            )
            for option, (action_column, enabled_column) in _TRANSFER_COLUMNS.items()
        }
        return BuildingPolicy(
            building_id=self._required(row, "BuildingID", "building"),
            voicemail_template_alias=self._text(row, "UnityUserTemplateName"),
            call_schedule_object_id=self._text(row, "UnityUserCallScheduleObjectId"),
            external_phone_number_mask=self._text(row, "ExternalPhoneNumberMask"),
            transfer_rules_enabled=self._flag(row.get("UnityUserTransferRulesEnabled")),
            transfer_rules=rules,
        )

    def to_phone_template(self, row: dict[str, Any]) -> PhoneTemplate:
        return PhoneTemplate(
            template_id=self._required(row, "ID", "phone template"),
            building_id=self._text(row, "BuildingID"),
            universal_device_template_uuid=self._text(row, "UniversalDeviceTemplateUuid"),
            product_enum=self._text(row, "ProductEnum"),
        )

    def to_parked_extension(self, row: dict[str, Any]) -> str:
        return self._text(row, "UnityUserExtension")

    @staticmethod
    def _text(row: dict[str, Any], key: str) -> str:
        value = row.get(key)
        if value is None:
            return ""
        return str(value).strip()

    @classmethod
    def _required(cls, row: dict[str, Any], key: str, resource_type: str) -> str:
        value = cls._text(row, key)
        if not value:
            raise RequestValidationError(
                f"{resource_type} row is missing [{key}]",
                field=key,
            )
        return value

    @staticmethod
    def _flag(value: Any) -> bool:
        """Parse a flag column.

        Accepts bool, numbers, and "true"/"1"/"yes" strings. None is False.
        """
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        return str(value).strip().lower() in ("true", "1", "yes", "y")
