"""Shared fixtures for line reassignment tests.

The mock ports answer named queries from an in-memory table and record every
action, so a test can set up one world, run the workflow, and assert on the
exact sequence of calls that reached the backends.
"""

import asyncio
import random
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Optional

import pytest

from src.linemove.api.exceptions import RemoteRejectionError
from src.linemove.reassignment.config import ReassignmentConfig
from src.linemove.reassignment.domain.entities import ReassignmentRequest
from src.linemove.reassignment.domain.ports import IActionPort, ILineLock, ILookupPort
from src.linemove.reassignment.domain.queries import Queries
from src.linemove.reassignment.adapters.row_mapper import RowMapper

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, 678000)


def _key(query_name: str, params: dict[str, Any]) -> tuple:
    return query_name, tuple(sorted(params.items()))


class MockLookupPort(ILookupPort):
    """Mock implementation of ILookupPort for testing.

    Each (query, params) pair holds a queue of row lists. Queued answers are
    consumed in order and the last one repeats; unknown queries return [].
    """

    def __init__(self, delay: float = 0.0):
        self.responses: dict[tuple, list[list[dict[str, Any]]]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.delay = delay

    def set(self, query_name: str, params: dict[str, Any], *answers: list[dict[str, Any]]) -> None:
        self.responses[_key(query_name, params)] = [list(a) for a in answers]

    def queried(self, query_name: str) -> list[dict[str, Any]]:
        return [params for name, params in self.calls if name == query_name]

    async def lookup(self, query_name: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        self.calls.append((query_name, dict(params)))
        if self.delay:
            await asyncio.sleep(self.delay)

        answers = self.responses.get(_key(query_name, params))
        if not answers:
            return []
        rows = answers.pop(0) if len(answers) > 1 else answers[0]
        return [dict(r) for r in rows]


class MockActionPort(IActionPort):
    """Mock implementation of IActionPort for testing.

    Records every call. Results can be configured per action name, and
    rejections per action name with an optional predicate over the params.
    """

    def __init__(self):
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.results: dict[str, dict[str, Any]] = {}
        self._rejections: list[tuple[str, Callable[[dict[str, Any]], bool]]] = []

    def reject(
        self,
        action_name: str,
        when: Optional[Callable[[dict[str, Any]], bool]] = None,
    ) -> None:
        self._rejections.append((action_name, when or (lambda params: True)))

    @property
    def actions(self) -> list[str]:
        return [action for _, action, _ in self.calls]

    def params_for(self, action_name: str) -> list[dict[str, Any]]:
        return [params for _, action, params in self.calls if action == action_name]

    async def run(self, system_name: str, action_name: str, params: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((system_name, action_name, dict(params)))
        for rejected_action, when in self._rejections:
            if rejected_action == action_name and when(params):
                raise RemoteRejectionError(
                    f"{system_name}.{action_name} rejected",
                    system=system_name,
                    action=action_name,
                )
        return dict(self.results.get(action_name, {}))


class MockLineLock(ILineLock):
    """Mock implementation of ILineLock for testing."""

    def __init__(self, raise_error: Optional[Exception] = None):
        self.raise_error = raise_error
        self.held: list[str] = []
        self.released: list[str] = []

    @asynccontextmanager
    async def hold(self, line_id: str) -> AsyncIterator[None]:
        if self.raise_error:
            raise self.raise_error
        self.held.append(line_id)
        try:
            yield
        finally:
            self.released.append(line_id)


# ============================================
# Standard world
# ============================================
#
# alice owns line-1 (pattern 4155) on phone-1 and has a hardphone and a
# soft client. bob is the new owner with no call manager user, no voicemail
# account and no devices. Building 12 has a call schedule and transfer rules.

def directory_row(account: str, given: str, surname: str, mail: str = "") -> dict[str, Any]:
    return {
        "objectGUID": f"guid-{account}",
        "sAMAccountName": account,
        "givenName": given,
        "sn": surname,
        "displayName": f"{given} {surname}",
        "mail": mail,
    }


def voicemail_row(account: str, extension: str) -> dict[str, Any]:
    return {
        "ObjectId": f"vm-{account}",
        "Alias": account,
        "DtmfAccessId": extension,
        "CallHandlerObjectId": f"ch-{account}",
    }


BUILDING_ROW = {
    "BuildingID": "12",
    "UnityUserTemplateName": "vm-template-12",
    "UnityUserCallScheduleObjectId": "schedule-12",
    "ExternalPhoneNumberMask": "555555XXXX",
    "UnityUserTransferRulesEnabled": "true",
    "UnityUserStandardTransferAction": "1",
    "UnityUserStandardTransferEnabled": "true",
    "UnityUserClosedTransferAction": "0",
    "UnityUserClosedTransferEnabled": "false",
    "UnityUserAlternateTransferAction": "1",
    "UnityUserAlternateTransferEnabled": "0",
}


def populate_world(lookup: MockLookupPort) -> MockLookupPort:
    lookup.set(
        Queries.DIRECTORY_USER,
        {"sAMAccountName": "alice"},
        [directory_row("alice", "Alice", "Jones", "alice@example.com")],
    )
    lookup.set(
        Queries.DIRECTORY_USER,
        {"sAMAccountName": "bob"},
        [directory_row("bob", "Bob", "Smith", "bob@example.com")],
    )
    lookup.set(
        Queries.LINE,
        {"UUID": "line-1"},
        [{
            "uuid": "line-1",
            "dirn_uuid": "dn-1",
            "dirn_pattern": "4155",
            "dirn_routePartitionName_text": "Internal-PT",
            "index": "1",
            "device_pkid": "phone-1",
        }],
    )
    lookup.set(
        Queries.PHONE,
        {"UUID": "phone-1"},
        [{"uuid": "phone-1", "name": "SEPAABBCCDDEEFF", "ownerUserName": "alice"}],
    )
    lookup.set(Queries.BUILDING, {"BuildingID": "12"}, [dict(BUILDING_ROW)])
    lookup.set(
        Queries.PHONE_TEMPLATES,
        {"BuildingID": "12"},
        [{"ID": "tmpl-1", "BuildingID": "12", "ProductEnum": "503"}],
    )
    lookup.set(
        Queries.USER_DEVICES,
        {"UserId": "alice"},
        [
            {"pkid": "dev-sep", "name": "SEP001122"},
            {"pkid": "dev-csf", "name": "CSF-ALICE"},
        ],
    )
    # bob has no voicemail account until userCreate runs
    lookup.set(
        Queries.VOICEMAIL_USER,
        {"Alias": "bob"},
        [],
        [voicemail_row("bob", "4155")],
    )
    return lookup


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def lookup() -> MockLookupPort:
    return populate_world(MockLookupPort())


@pytest.fixture
def action() -> MockActionPort:
    port = MockActionPort()
    port.results["EndUsersCreate"] = {"pkid": "cucm-bob"}
    port.results["userCreate"] = {"ObjectId": "vm-bob"}
    return port


@pytest.fixture
def config() -> ReassignmentConfig:
    return ReassignmentConfig(unified_messaging_service_id="um-service-1")


@pytest.fixture
def mapper() -> RowMapper:
    return RowMapper()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def reassignment_request() -> ReassignmentRequest:
    return ReassignmentRequest(
        line_id="line-1",
        device_id="phone-1",
        building_id="12",
        new_owner_id="bob",
        new_label="Bob Smith",
        new_display_name="Bob Smith",
        current_owner_id="alice",
    )


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def line_lock() -> MockLineLock:
    return MockLineLock()


@pytest.fixture
def make_directory_row() -> Callable[..., dict[str, Any]]:
    return directory_row


@pytest.fixture
def make_voicemail_row() -> Callable[..., dict[str, Any]]:
    return voicemail_row


@pytest.fixture
def building_row() -> dict[str, Any]:
    return dict(BUILDING_ROW)
