"""Tests for the ReassignLineUseCase.

These tests run the whole phased workflow against mock ports (see
conftest.py for the standard world) and assert on the exact calls that
reached each backend.
"""

import pytest

from src.linemove.api.exceptions import (
    AmbiguousResultError,
    ExhaustedRetryError,
    LineLockedError,
    NotFoundError,
    RemoteRejectionError,
    WorkflowTimeoutError,
)
from src.linemove.reassignment.config import ReassignmentConfig
from src.linemove.reassignment.domain.entities import (
    ConflictOutcome,
    PhaseStatus,
    ReassignmentRequest,
)
from src.linemove.reassignment.domain.queries import Queries
from src.linemove.reassignment.use_cases.extension_generator import EXHAUSTED_MESSAGE
from src.linemove.reassignment.use_cases.reassign_line import ReassignLineUseCase


@pytest.fixture
def make_use_case(lookup, action, mapper, rng, clock):
    def factory(config, **kwargs):
        return ReassignLineUseCase(lookup, action, config, mapper, rng=rng, clock=clock, **kwargs)
    return factory


@pytest.fixture
def use_case(make_use_case, config):
    return make_use_case(config)


def request_without_current_owner(**overrides) -> ReassignmentRequest:
    values = dict(
        line_id="line-1",
        device_id="phone-1",
        building_id="12",
        new_owner_id="bob",
        new_label="Bob Smith",
        new_display_name="Bob Smith",
    )
    values.update(overrides)
    return ReassignmentRequest(**values)


def claim_extension(lookup, make_voicemail_row, account, extension="4155"):
    lookup.set(
        Queries.VOICEMAIL_USER_BY_EXTENSION,
        {"DtmfAccessId": extension},
        [make_voicemail_row(account, extension)],
    )


# ============================================
# Scenario A: new owner with nothing provisioned
# ============================================

class TestFreshOwner:
    """alice hands the line to bob, who has no CUCM user and no voicemail."""

    @pytest.mark.asyncio
    async def test_full_call_sequence(self, use_case, action, reassignment_request):
        result = await use_case.execute(reassignment_request)

        assert action.actions == [
            # evict_current_owner_devices
            "PhonesDelete",
            "EndUserDeviceMapsDelete",
            # ensure_call_manager_user
            "EndUsersCreate",
            # repoint_line_and_device
            "LinesUpdate",
            "PhoneLinesUpdate",
            "PhonesUpdate",
            # bind_identity_to_device
            "EndUserDeviceMapsCreate",
            "PhonesUpdate",
            # propagate_directory_extension
            "UserUpdate",
            # provision_voicemail
            "userCreate",
            "SmtpproxyaddressesCreate",
            "usersexternalserviceaccountsCreate",
            # sync_call_schedule
            "userscallhandlersUpdate",
            # sync_transfer_rules
            "callhandlertransferoptionsUpdate",
            "callhandlertransferoptionsUpdate",
            "callhandlertransferoptionsUpdate",
        ]
        assert len(result.mutations) == len(action.calls)
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_soft_device_deleted_and_hardphone_kept(self, use_case, action, reassignment_request):
        result = await use_case.execute(reassignment_request)

        assert action.params_for("PhonesDelete") == [{"uuid": "dev-csf", "name": "CSF-ALICE"}]
        assert action.params_for("EndUserDeviceMapsDelete") == [{"pkid": "dev-csf"}]
        assert result.devices_removed == ["CSF-ALICE"]
        assert result.devices_skipped == ["SEP001122"]

    @pytest.mark.asyncio
    async def test_call_manager_user_created(self, use_case, action, reassignment_request):
        result = await use_case.execute(reassignment_request)

        assert result.created_call_manager_user is True
        assert action.params_for("EndUsersCreate") == [
            {"firstname": "Bob", "lastname": "Smith", "userid": "bob"}
        ]
        mapping = action.params_for("EndUserDeviceMapsCreate")[0]
        assert mapping["fkenduser"] == "cucm-bob"

    @pytest.mark.asyncio
    async def test_voicemail_created_with_line_pattern(self, use_case, action, reassignment_request):
        result = await use_case.execute(reassignment_request)

        assert result.created_voicemail_account is True
        assert action.params_for("userCreate") == [{
            "Alias": "bob",
            "EmailAddress": "bob@example.com",
            "FirstName": "Bob",
            "LastName": "Smith",
            "LdapType": "3",
            "DtmfAccessId": "4155",
            "TemplateAlias": "vm-template-12",
            "CreateSmtpProxyFromCorp": "true",
        }]
        assert "userUpdate" not in action.actions

    @pytest.mark.asyncio
    async def test_mail_services_attached_to_created_account(self, use_case, action, reassignment_request):
        await use_case.execute(reassignment_request)

        assert action.params_for("SmtpproxyaddressesCreate") == [
            {"SmtpAddress": "bob@example.com", "ObjectGlobalUserObjectId": "vm-bob"}
        ]
        um = action.params_for("usersexternalserviceaccountsCreate")[0]
        assert um["SubscriberObjectId"] == "vm-bob"
        assert um["ExternalServiceObjectId"] == "um-service-1"

    @pytest.mark.asyncio
    async def test_created_account_is_reread_for_call_handler(
        self, use_case, action, lookup, reassignment_request
    ):
        await use_case.execute(reassignment_request)

        assert lookup.queried(Queries.VOICEMAIL_USER) == [{"Alias": "bob"}, {"Alias": "bob"}]
        assert action.params_for("userscallhandlersUpdate") == [
            {"ObjectId": "ch-bob", "ScheduleSetObjectId": "schedule-12"}
        ]

    @pytest.mark.asyncio
    async def test_no_parked_record_without_claimant(self, use_case, action, reassignment_request):
        result = await use_case.execute(reassignment_request)

        assert result.parked_records == []
        assert result.conflict.outcome == ConflictOutcome.NO_CONFLICT
        assert "ParkedMailboxCreate" not in action.actions

    @pytest.mark.asyncio
    async def test_transfer_rules_follow_building_in_order(self, use_case, action, reassignment_request):
        await use_case.execute(reassignment_request)

        assert action.params_for("callhandlertransferoptionsUpdate") == [
            {
                "TransferOptionType": "Standard",
                "Action": "1",
                "Enabled": "true",
                "CallHandlerObjectId": "ch-bob",
            },
            {
                "TransferOptionType": "Off Hours",
                "Action": "0",
                "Enabled": "false",
                "CallHandlerObjectId": "ch-bob",
            },
            {
                "TransferOptionType": "Alternate",
                "Action": "1",
                "Enabled": "false",
                "CallHandlerObjectId": "ch-bob",
            },
        ]

    @pytest.mark.asyncio
    async def test_actions_target_configured_systems(self, use_case, action, reassignment_request):
        await use_case.execute(reassignment_request)

        systems = {name: system for system, name, _ in action.calls}
        assert systems["PhonesDelete"] == "CiscoUCM"
        assert systems["UserUpdate"] == "AD"
        assert systems["userCreate"] == "CiscoUnity"


# ============================================
# Single-owner payloads
# ============================================

class TestLineAndDevicePayloads:
    """Line text, device-to-line and device ownership updates."""

    @pytest.mark.asyncio
    async def test_line_text_and_device_line(self, use_case, action, reassignment_request):
        await use_case.execute(reassignment_request)

        assert action.params_for("LinesUpdate") == [{
            "uuid": "dn-1",
            "description": "Bob Smith",
            "alertingName": "Bob Smith",
            "asciiAlertingName": "Bob Smith",
        }]
        assert action.params_for("PhoneLinesUpdate") == [{
            "uuid": "line-1",
            "phone_uuid": "phone-1",
            "index": "1",
            "dirn_pattern": "4155",
            "dirn_routePartitionName_text": "Internal-PT",
            "label": "Bob Smith",
            "display": "Bob Smith",
            "e164Mask": "555555XXXX",
        }]

    @pytest.mark.asyncio
    async def test_request_mask_overrides_building_mask(self, make_use_case, config, action):
        use_case = make_use_case(config)
        request = request_without_current_owner(external_mask="212555XXXX")

        await use_case.execute(request)

        assert action.params_for("PhoneLinesUpdate")[0]["e164Mask"] == "212555XXXX"

    @pytest.mark.asyncio
    async def test_owner_updates_remove_all_other_users(self, use_case, action, reassignment_request):
        await use_case.execute(reassignment_request)

        owner_update, owner_name = action.params_for("PhonesUpdate")
        assert owner_update == {
            "uuid": "phone-1",
            "ownerUserName_text": "bob",
            "removeAllUsersForDevice": "True",
        }
        assert owner_name == {"uuid": "phone-1", "ownerUserName": "bob"}
        assert action.params_for("EndUserDeviceMapsCreate") == [{
            "fkdevice": "phone-1",
            "fkenduser": "cucm-bob",
            "tkuserassociation": "1",
            "removeAllUsersForDevice": "True",
        }]

    @pytest.mark.asyncio
    async def test_directory_phone_attributes_set_to_pattern(self, use_case, action, reassignment_request):
        await use_case.execute(reassignment_request)

        assert action.params_for("UserUpdate") == [
            {"objectGUID": "guid-bob", "ipPhone": "4155", "telephoneNumber": "4155"}
        ]


# ============================================
# Device eviction
# ============================================

class TestDeviceEviction:
    """Soft devices are removed; hardphones and the target device survive."""

    @pytest.mark.asyncio
    async def test_new_owner_devices_evicted_except_protected(
        self, use_case, action, lookup, reassignment_request
    ):
        lookup.set(
            Queries.USER_DEVICES,
            {"UserId": "bob"},
            [
                {"pkid": "phone-1", "name": "CSFBOB"},
                {"pkid": "dev-bot", "name": "BOTBOB"},
                {"pkid": "dev-sep2", "name": "sep998877"},
            ],
        )

        result = await use_case.execute(reassignment_request)

        assert [p["name"] for p in action.params_for("PhonesDelete")] == ["CSF-ALICE", "BOTBOB"]
        assert result.devices_removed == ["CSF-ALICE", "BOTBOB"]
        assert result.devices_skipped == ["SEP001122", "CSFBOB", "sep998877"]

    @pytest.mark.asyncio
    async def test_custom_hardphone_prefix(self, make_use_case, action, lookup, reassignment_request):
        config = ReassignmentConfig(unified_messaging_service_id="um-service-1", hardphone_prefix="CSF")
        use_case = make_use_case(config)

        result = await use_case.execute(reassignment_request)

        assert [p["name"] for p in action.params_for("PhonesDelete")] == ["SEP001122"]
        assert result.devices_skipped == ["CSF-ALICE"]

    @pytest.mark.asyncio
    async def test_phase_mutation_counts(self, use_case, reassignment_request):
        result = await use_case.execute(reassignment_request)

        assert [p.name for p in result.phases] == use_case.phase_names
        assert result.phase("evict_current_owner_devices").mutations == 2
        assert result.phase("evict_new_owner_devices").mutations == 0
        assert sum(p.mutations for p in result.phases) == len(result.mutations)
        assert all(m.phase is not None for m in result.mutations)


# ============================================
# Scenario B: extension held by another account
# ============================================

class TestExtensionConflict:
    """carol's voicemail holds 4155; she is parked before bob takes it."""

    @pytest.fixture
    def carol_holds_extension(self, lookup, make_voicemail_row, make_directory_row):
        claim_extension(lookup, make_voicemail_row, "carol")
        lookup.set(
            Queries.DIRECTORY_USER,
            {"sAMAccountName": "carol"},
            [make_directory_row("carol", "Carol", "White")],
        )
        lookup.set(Queries.VOICEMAIL_USER, {"Alias": "bob"}, [make_voicemail_row("bob", "2000")])
        lookup.set(
            Queries.PARKED_MAILBOXES,
            {},
            [{"UnityUserExtension": "9000"}, {"UnityUserExtension": "9001"}],
        )

    @pytest.fixture
    def narrow_config(self):
        return ReassignmentConfig(
            unified_messaging_service_id="um-service-1",
            parked_extension_lower=9000,
            parked_extension_upper=9002,
        )

    @pytest.mark.asyncio
    async def test_claimant_parked_before_new_owner_takes_extension(
        self, make_use_case, narrow_config, action, carol_holds_extension, reassignment_request
    ):
        use_case = make_use_case(narrow_config)

        result = await use_case.execute(reassignment_request)

        assert action.params_for("userUpdate") == [
            {"ObjectId": "vm-carol", "DtmfAccessId": "9002"},
            {"ObjectId": "vm-bob", "DtmfAccessId": "4155"},
        ]
        assert result.conflict.outcome == ConflictOutcome.PARKED
        assert [r.extension for r in result.parked_records] == ["9002"]
        assert result.created_voicemail_account is False

    @pytest.mark.asyncio
    async def test_parked_record_appended_to_audit_system(
        self, make_use_case, narrow_config, action, carol_holds_extension, reassignment_request
    ):
        use_case = make_use_case(narrow_config)

        await use_case.execute(reassignment_request)

        audit_calls = [c for c in action.calls if c[1] == "ParkedMailboxCreate"]
        assert audit_calls == [(
            "internal",
            "ParkedMailboxCreate",
            {
                "UnityUserObjectId": "vm-carol",
                "UnityUserAlias": "carol",
                "UnityUserExtension": "9002",
                "DateCreated": "2024-01-02 03:04:05.678",
                "Deleted": "0",
            },
        )]

    @pytest.mark.asyncio
    async def test_claimant_directory_mirrors_parked_extension(
        self, make_use_case, narrow_config, action, carol_holds_extension, reassignment_request
    ):
        use_case = make_use_case(narrow_config)

        await use_case.execute(reassignment_request)

        assert action.params_for("UserUpdate") == [
            {"objectGUID": "guid-bob", "ipPhone": "4155", "telephoneNumber": "4155"},
            {"objectGUID": "guid-carol", "ipPhone": "9002", "telephoneNumber": "9002"},
        ]

    @pytest.mark.asyncio
    async def test_parking_precedes_new_owner_update(
        self, make_use_case, narrow_config, action, carol_holds_extension, reassignment_request
    ):
        use_case = make_use_case(narrow_config)

        await use_case.execute(reassignment_request)

        actions = action.actions
        park = actions.index("userUpdate")
        audit = actions.index("ParkedMailboxCreate")
        new_owner_update = len(actions) - 1 - actions[::-1].index("userUpdate")
        assert park < audit < new_owner_update

    @pytest.mark.asyncio
    async def test_rejected_candidate_is_regenerated(
        self, make_use_case, action, lookup, make_voicemail_row, reassignment_request
    ):
        claim_extension(lookup, make_voicemail_row, "carol")
        rejected = []

        def first_carol_attempt(params):
            if params["ObjectId"] == "vm-carol" and not rejected:
                rejected.append(params["DtmfAccessId"])
                return True
            return False

        action.reject("userUpdate", when=first_carol_attempt)
        config = ReassignmentConfig(
            unified_messaging_service_id="um-service-1",
            parked_extension_lower=9000,
            parked_extension_upper=9001,
        )
        use_case = make_use_case(config)

        result = await use_case.execute(reassignment_request)

        carol_attempts = [
            p["DtmfAccessId"] for p in action.params_for("userUpdate") if p["ObjectId"] == "vm-carol"
        ]
        assert len(carol_attempts) == 2
        assert carol_attempts[0] == rejected[0]
        assert carol_attempts[1] != rejected[0]
        assert result.parked_records[0].extension == carol_attempts[1]
        assert len(result.mutations_for("userUpdate")) == len(action.params_for("userUpdate"))

    @pytest.mark.asyncio
    async def test_exhausted_parking_is_fatal(
        self, make_use_case, config, action, lookup, make_voicemail_row, reassignment_request
    ):
        claim_extension(lookup, make_voicemail_row, "carol")
        action.reject("userUpdate", when=lambda params: params["ObjectId"] == "vm-carol")
        use_case = make_use_case(config)

        with pytest.raises(ExhaustedRetryError) as exc_info:
            await use_case.execute(reassignment_request)

        assert exc_info.value.message == EXHAUSTED_MESSAGE
        assert exc_info.value.attempts == 10
        assert len(action.params_for("userUpdate")) == 10
        assert "ParkedMailboxCreate" not in action.actions
        assert "userCreate" not in action.actions


# ============================================
# Scenario C: read-only mode
# ============================================

class TestReadOnly:
    """Every lookup and decision happens; no action reaches a backend."""

    @pytest.mark.asyncio
    async def test_no_actions_issued(self, make_use_case, config, action, lookup, reassignment_request):
        use_case = make_use_case(config.with_read_only(True))

        result = await use_case.execute(reassignment_request)

        assert action.calls == []
        assert result.dry_run is True
        assert len(result.mutations) > 0
        assert all(m.suppressed for m in result.mutations)

    @pytest.mark.asyncio
    async def test_all_lookups_still_run(self, make_use_case, config, lookup, reassignment_request):
        use_case = make_use_case(config.with_read_only(True))

        await use_case.execute(reassignment_request)

        queried = {name for name, _ in lookup.calls}
        assert {
            Queries.DIRECTORY_USER,
            Queries.LINE,
            Queries.PHONE,
            Queries.BUILDING,
            Queries.PHONE_TEMPLATES,
            Queries.PARKED_MAILBOXES,
            Queries.USER_DEVICES,
            Queries.CALL_MANAGER_USER,
            Queries.VOICEMAIL_USER_BY_EXTENSION,
            Queries.VOICEMAIL_USER,
        } <= queried

    @pytest.mark.asyncio
    async def test_decisions_match_live_run(self, make_use_case, config, reassignment_request):
        use_case = make_use_case(config.with_read_only(True))

        result = await use_case.execute(reassignment_request)

        assert [m.action for m in result.mutations] == [
            "PhonesDelete",
            "EndUserDeviceMapsDelete",
            "EndUsersCreate",
            "LinesUpdate",
            "PhoneLinesUpdate",
            "PhonesUpdate",
            "EndUserDeviceMapsCreate",
            "PhonesUpdate",
            "UserUpdate",
            "userCreate",
            "SmtpproxyaddressesCreate",
            "usersexternalserviceaccountsCreate",
            "userscallhandlersUpdate",
            "callhandlertransferoptionsUpdate",
            "callhandlertransferoptionsUpdate",
            "callhandlertransferoptionsUpdate",
        ]
        assert result.devices_removed == ["CSF-ALICE"]

    @pytest.mark.asyncio
    async def test_placeholders_flow_to_later_phases(self, make_use_case, config, lookup, reassignment_request):
        use_case = make_use_case(config.with_read_only(True))

        result = await use_case.execute(reassignment_request)

        mapping = result.mutations_for("EndUserDeviceMapsCreate")[0]
        assert mapping.params["fkenduser"] == "dry-run:bob"
        schedule = result.mutations_for("userscallhandlersUpdate")[0]
        assert schedule.params["ObjectId"] == "dry-run:bob"
        assert lookup.queried(Queries.VOICEMAIL_USER) == [{"Alias": "bob"}]

    @pytest.mark.asyncio
    async def test_conflict_decided_without_writes(
        self, make_use_case, config, action, lookup, make_voicemail_row, reassignment_request
    ):
        claim_extension(lookup, make_voicemail_row, "carol")
        use_case = make_use_case(config.with_read_only(True))

        result = await use_case.execute(reassignment_request)

        assert action.calls == []
        assert result.conflict.outcome == ConflictOutcome.PARKED
        parked = result.mutations_for("ParkedMailboxCreate")
        assert len(parked) == 1
        assert parked[0].suppressed is True
        assert 9000 <= int(parked[0].params["UnityUserExtension"]) <= 9999


# ============================================
# Scenario D: new owner already provisioned
# ============================================

class TestAlreadyProvisioned:
    """bob has a CUCM user and a voicemail account already holding 4155."""

    @pytest.fixture
    def bob_provisioned(self, lookup, make_voicemail_row):
        lookup.set(Queries.CALL_MANAGER_USER, {"UserId": "bob"}, [{"pkid": "cucm-existing", "userid": "bob"}])
        lookup.set(Queries.VOICEMAIL_USER, {"Alias": "bob"}, [make_voicemail_row("bob", "4155")])
        claim_extension(lookup, make_voicemail_row, "bob")

    @pytest.mark.asyncio
    async def test_existing_accounts_reused(self, use_case, action, bob_provisioned, reassignment_request):
        result = await use_case.execute(reassignment_request)

        assert "EndUsersCreate" not in action.actions
        assert "userCreate" not in action.actions
        assert result.created_call_manager_user is False
        assert result.created_voicemail_account is False
        assert action.params_for("EndUserDeviceMapsCreate")[0]["fkenduser"] == "cucm-existing"

    @pytest.mark.asyncio
    async def test_extension_update_skipped(self, use_case, action, bob_provisioned, reassignment_request):
        result = await use_case.execute(reassignment_request)

        assert result.conflict.outcome == ConflictOutcome.ALREADY_ASSIGNED
        assert "userUpdate" not in action.actions
        assert "ParkedMailboxCreate" not in action.actions
        assert "extension update skipped" in result.phase("provision_voicemail").notes

    @pytest.mark.asyncio
    async def test_mail_services_still_attempted(self, use_case, action, bob_provisioned, reassignment_request):
        await use_case.execute(reassignment_request)

        assert action.params_for("SmtpproxyaddressesCreate") == [
            {"SmtpAddress": "bob@example.com", "ObjectGlobalUserObjectId": "vm-bob"}
        ]
        assert action.params_for("usersexternalserviceaccountsCreate")[0]["SubscriberObjectId"] == "vm-bob"

    @pytest.mark.asyncio
    async def test_unparkable_claimant_skips_extension_update(
        self, use_case, action, lookup, make_voicemail_row, reassignment_request
    ):
        lookup.set(Queries.VOICEMAIL_USER, {"Alias": "bob"}, [make_voicemail_row("bob", "2000")])
        lookup.set(
            Queries.VOICEMAIL_USER_BY_EXTENSION,
            {"DtmfAccessId": "4155"},
            [{"ObjectId": "vm-orphan", "Alias": "", "DtmfAccessId": "4155"}],
        )

        result = await use_case.execute(reassignment_request)

        assert result.conflict.outcome == ConflictOutcome.UNPARKABLE_CLAIMANT
        assert "userUpdate" not in action.actions
        assert result.parked_records == []


# ============================================
# Optional inputs
# ============================================

class TestOptionalInputs:
    """Missing current owner, building and mail address."""

    @pytest.mark.asyncio
    async def test_no_current_owner_skips_owner_phases(self, use_case, action, lookup):
        result = await use_case.execute(request_without_current_owner())

        assert result.phase("evict_current_owner_devices").status == PhaseStatus.SKIPPED
        assert result.phase("resolve_extension_conflict").status == PhaseStatus.SKIPPED
        assert lookup.queried(Queries.USER_DEVICES) == [{"UserId": "bob"}]
        assert lookup.queried(Queries.VOICEMAIL_USER_BY_EXTENSION) == []
        assert {"sAMAccountName": "alice"} not in lookup.queried(Queries.DIRECTORY_USER)
        assert result.conflict is None
        assert "PhonesDelete" not in action.actions

    @pytest.mark.asyncio
    async def test_no_current_owner_still_updates_existing_voicemail(
        self, use_case, action, lookup, make_voicemail_row
    ):
        lookup.set(Queries.VOICEMAIL_USER, {"Alias": "bob"}, [make_voicemail_row("bob", "2000")])

        await use_case.execute(request_without_current_owner())

        assert action.params_for("userUpdate") == [{"ObjectId": "vm-bob", "DtmfAccessId": "4155"}]

    @pytest.mark.asyncio
    async def test_missing_current_owner_directory_account_is_tolerated(
        self, use_case, action, lookup, reassignment_request
    ):
        lookup.set(Queries.DIRECTORY_USER, {"sAMAccountName": "alice"}, [])

        result = await use_case.execute(reassignment_request)

        assert result.devices_removed == ["CSF-ALICE"]

    @pytest.mark.asyncio
    async def test_missing_building_skips_voicemail_policy(self, use_case, action, lookup, reassignment_request):
        lookup.set(Queries.BUILDING, {"BuildingID": "12"}, [])

        result = await use_case.execute(reassignment_request)

        assert result.phase("sync_call_schedule").status == PhaseStatus.SKIPPED
        assert result.phase("sync_transfer_rules").status == PhaseStatus.SKIPPED
        assert "userscallhandlersUpdate" not in action.actions
        assert "callhandlertransferoptionsUpdate" not in action.actions
        assert action.params_for("userCreate")[0]["TemplateAlias"] == ""
        assert action.params_for("PhoneLinesUpdate")[0]["e164Mask"] == ""

    @pytest.mark.asyncio
    async def test_transfer_rules_disabled_for_building(
        self, use_case, action, lookup, building_row, reassignment_request
    ):
        row = dict(building_row, UnityUserTransferRulesEnabled="false")
        lookup.set(Queries.BUILDING, {"BuildingID": "12"}, [row])

        result = await use_case.execute(reassignment_request)

        assert result.phase("sync_transfer_rules").status == PhaseStatus.SKIPPED
        assert "callhandlertransferoptionsUpdate" not in action.actions
        assert "userscallhandlersUpdate" in action.actions

    @pytest.mark.asyncio
    async def test_owner_without_mail_gets_no_mail_services(
        self, use_case, action, lookup, make_directory_row, reassignment_request
    ):
        lookup.set(
            Queries.DIRECTORY_USER,
            {"sAMAccountName": "bob"},
            [make_directory_row("bob", "Bob", "Smith")],
        )

        await use_case.execute(reassignment_request)

        assert "SmtpproxyaddressesCreate" not in action.actions
        assert "usersexternalserviceaccountsCreate" not in action.actions

    @pytest.mark.asyncio
    async def test_mail_services_disabled_by_config(self, make_use_case, action, reassignment_request):
        config = ReassignmentConfig(add_smtp_proxy=False, add_unified_messaging=False)
        use_case = make_use_case(config)

        await use_case.execute(reassignment_request)

        assert "SmtpproxyaddressesCreate" not in action.actions
        assert "usersexternalserviceaccountsCreate" not in action.actions

    @pytest.mark.asyncio
    async def test_ldap_disabled_creates_local_account(self, make_use_case, action, reassignment_request):
        config = ReassignmentConfig(unified_messaging_service_id="um-service-1", ldap_enabled=False)
        use_case = make_use_case(config)

        await use_case.execute(reassignment_request)

        assert action.params_for("userCreate")[0]["LdapType"] == "0"


# ============================================
# Failures
# ============================================

class TestFailures:
    """Best-effort steps warn; everything else aborts the run."""

    @pytest.mark.asyncio
    async def test_smtp_proxy_failure_becomes_warning(self, use_case, action, reassignment_request):
        action.reject("SmtpproxyaddressesCreate")

        result = await use_case.execute(reassignment_request)

        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Creating SMTP proxy address failed")
        assert "usersexternalserviceaccountsCreate" in action.actions
        assert "userscallhandlersUpdate" in action.actions

    @pytest.mark.asyncio
    async def test_both_mail_services_fail(self, use_case, action, reassignment_request):
        action.reject("SmtpproxyaddressesCreate")
        action.reject("usersexternalserviceaccountsCreate")

        result = await use_case.execute(reassignment_request)

        assert len(result.warnings) == 2
        assert result.warnings[1].startswith("Creating unified messaging account failed")

    @pytest.mark.asyncio
    async def test_rejected_action_aborts_run(self, use_case, action, reassignment_request):
        action.reject("PhoneLinesUpdate")

        with pytest.raises(RemoteRejectionError):
            await use_case.execute(reassignment_request)

        assert action.actions[-1] == "PhoneLinesUpdate"
        assert "EndUserDeviceMapsCreate" not in action.actions

    @pytest.mark.asyncio
    async def test_created_user_without_pkid_is_fatal(self, use_case, action, reassignment_request):
        action.results["EndUsersCreate"] = {}

        with pytest.raises(RemoteRejectionError):
            await use_case.execute(reassignment_request)

        assert action.actions[-1] == "EndUsersCreate"

    @pytest.mark.asyncio
    async def test_missing_new_owner_fails_before_any_action(self, use_case, action, lookup, reassignment_request):
        lookup.set(Queries.DIRECTORY_USER, {"sAMAccountName": "bob"}, [])

        with pytest.raises(NotFoundError) as exc_info:
            await use_case.execute(reassignment_request)

        assert exc_info.value.query_name == Queries.DIRECTORY_USER
        assert action.calls == []

    @pytest.mark.asyncio
    async def test_ambiguous_current_owner_fails_before_any_action(
        self, use_case, action, lookup, make_directory_row, reassignment_request
    ):
        lookup.set(
            Queries.DIRECTORY_USER,
            {"sAMAccountName": "alice"},
            [make_directory_row("alice", "Alice", "Jones"), make_directory_row("alice", "Alice", "Brown")],
        )

        with pytest.raises(AmbiguousResultError) as exc_info:
            await use_case.execute(reassignment_request)

        assert exc_info.value.row_count == 2
        assert action.calls == []

    @pytest.mark.asyncio
    async def test_missing_line_fails(self, use_case, action, lookup, reassignment_request):
        lookup.set(Queries.LINE, {"UUID": "line-1"}, [])

        with pytest.raises(NotFoundError):
            await use_case.execute(reassignment_request)

        assert action.calls == []

    @pytest.mark.asyncio
    async def test_missing_phone_templates_fail(self, use_case, action, lookup, reassignment_request):
        lookup.set(Queries.PHONE_TEMPLATES, {"BuildingID": "12"}, [])

        with pytest.raises(NotFoundError):
            await use_case.execute(reassignment_request)

        assert action.calls == []

    @pytest.mark.asyncio
    async def test_ambiguous_building_fails(self, use_case, action, lookup, building_row, reassignment_request):
        lookup.set(Queries.BUILDING, {"BuildingID": "12"}, [building_row, dict(building_row)])

        with pytest.raises(AmbiguousResultError):
            await use_case.execute(reassignment_request)

        assert action.calls == []


# ============================================
# Run guards
# ============================================

class TestRunGuards:
    """Line lock and run deadline."""

    @pytest.mark.asyncio
    async def test_run_holds_line_lock(self, make_use_case, config, line_lock, reassignment_request):
        use_case = make_use_case(config, line_lock=line_lock)

        await use_case.execute(reassignment_request)

        assert line_lock.held == ["line-1"]
        assert line_lock.released == ["line-1"]

    @pytest.mark.asyncio
    async def test_locked_line_fails_before_lookups(
        self, make_use_case, config, line_lock, lookup, reassignment_request
    ):
        line_lock.raise_error = LineLockedError("line-1")
        use_case = make_use_case(config, line_lock=line_lock)

        with pytest.raises(LineLockedError):
            await use_case.execute(reassignment_request)

        assert lookup.calls == []

    @pytest.mark.asyncio
    async def test_lock_released_on_failure(
        self, make_use_case, config, line_lock, action, reassignment_request
    ):
        action.reject("LinesUpdate")
        use_case = make_use_case(config, line_lock=line_lock)

        with pytest.raises(RemoteRejectionError):
            await use_case.execute(reassignment_request)

        assert line_lock.released == ["line-1"]

    @pytest.mark.asyncio
    async def test_run_exceeding_deadline(self, make_use_case, lookup, reassignment_request):
        lookup.delay = 0.2
        config = ReassignmentConfig(unified_messaging_service_id="um-service-1", run_timeout_seconds=0.05)
        use_case = make_use_case(config)

        with pytest.raises(WorkflowTimeoutError) as exc_info:
            await use_case.execute(reassignment_request)

        assert exc_info.value.timeout_seconds == 0.05
