"""Configuration for line reassignment.

A ReassignmentConfig is built once (usually from the environment) and passed
explicitly to the workflow. Nothing in the package reads configuration from
module-level state, so tests can run several configurations side by side.

Environment variables:
    LINEMOVE_READ_ONLY               Suppress every mutating call (default: false)
    LINEMOVE_DIRECTORY_SYSTEM        Directory system identifier (default: AD)
    LINEMOVE_CALL_MANAGER_SYSTEM     Call manager system identifier (default: CiscoUCM)
    LINEMOVE_VOICEMAIL_SYSTEM        Voicemail system identifier (default: CiscoUnity)
    LINEMOVE_AUDIT_SYSTEM            Internal audit system identifier (default: internal)
    LINEMOVE_PARKED_EXTENSION_RANGE  Inclusive parked range "LOWER-UPPER" (default: 9000-9999)
    LINEMOVE_PARKED_COMMIT_ATTEMPTS  Attempts to commit a parked extension (default: 10)
    LINEMOVE_LDAP_ENABLED            Link new voicemail users to the directory (default: true)
    LINEMOVE_ADD_SMTP_PROXY          Attach SMTP proxy addresses (default: true)
    LINEMOVE_ADD_UNIFIED_MESSAGING   Attach unified-messaging accounts (default: true)
    LINEMOVE_UM_EXTERNAL_SERVICE_ID  Unified-messaging external service id
    LINEMOVE_HARDPHONE_PREFIX        Device name prefix of hardphones (default: SEP)
    LINEMOVE_RUN_TIMEOUT_SECONDS     Per-request deadline in seconds (default: none)
"""

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from dotenv import load_dotenv

from ..api.exceptions import ConfigurationError
from .domain.requests import BackendSystem

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass(frozen=True)
class ReassignmentConfig:
    """Static configuration for one deployment."""

    read_only: bool = False

    directory_system: str = "AD"
    call_manager_system: str = "CiscoUCM"
    voicemail_system: str = "CiscoUnity"
    audit_system: str = "internal"

    parked_extension_lower: int = 9000
    parked_extension_upper: int = 9999
    parked_commit_attempts: int = 10

    ldap_enabled: bool = True
    add_smtp_proxy: bool = True
    add_unified_messaging: bool = True
    unified_messaging_service_id: str = ""

    hardphone_prefix: str = "SEP"
    run_timeout_seconds: Optional[float] = None

    def __post_init__(self):
        if self.parked_extension_lower > self.parked_extension_upper:
            raise ConfigurationError(
                f"Parked extension range is empty: "
                f"{self.parked_extension_lower}-{self.parked_extension_upper}"
            )
        if self.parked_extension_lower < 0:
            raise ConfigurationError("Parked extension range must be non-negative")
        if self.parked_commit_attempts < 1:
            raise ConfigurationError("LINEMOVE_PARKED_COMMIT_ATTEMPTS must be at least 1")
        if self.add_unified_messaging and not self.unified_messaging_service_id:
            raise ConfigurationError(
                "Unified messaging is enabled but no external service id is configured",
                missing_keys=["LINEMOVE_UM_EXTERNAL_SERVICE_ID"],
            )
        if not self.hardphone_prefix:
            raise ConfigurationError("LINEMOVE_HARDPHONE_PREFIX must not be empty")
        if self.run_timeout_seconds is not None and self.run_timeout_seconds <= 0:
            raise ConfigurationError("LINEMOVE_RUN_TIMEOUT_SECONDS must be positive")

    def system_name(self, system: BackendSystem) -> str:
        """Resolve a logical backend to the identifier the host knows it by."""
        return {
            BackendSystem.DIRECTORY: self.directory_system,
            BackendSystem.CALL_MANAGER: self.call_manager_system,
            BackendSystem.VOICEMAIL: self.voicemail_system,
            BackendSystem.AUDIT: self.audit_system,
        }[system]

    def with_read_only(self, read_only: bool = True) -> "ReassignmentConfig":
        return replace(self, read_only=read_only)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ReassignmentConfig":
        """Build configuration from environment variables.

        Loads a .env file first when reading the process environment.

        Args:
            environ: Mapping to read instead of os.environ (tests)

        Raises:
            ConfigurationError: If a value is malformed
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        def get(key: str, default: str) -> str:
            return environ.get(key, default).strip()

        lower, upper = _parse_range(get("LINEMOVE_PARKED_EXTENSION_RANGE", "9000-9999"))

        timeout_text = get("LINEMOVE_RUN_TIMEOUT_SECONDS", "")
        run_timeout = _parse_float("LINEMOVE_RUN_TIMEOUT_SECONDS", timeout_text) if timeout_text else None

        return cls(
            read_only=_parse_bool("LINEMOVE_READ_ONLY", get("LINEMOVE_READ_ONLY", "false")),
            directory_system=get("LINEMOVE_DIRECTORY_SYSTEM", "AD"),
            call_manager_system=get("LINEMOVE_CALL_MANAGER_SYSTEM", "CiscoUCM"),
            voicemail_system=get("LINEMOVE_VOICEMAIL_SYSTEM", "CiscoUnity"),
            audit_system=get("LINEMOVE_AUDIT_SYSTEM", "internal"),
            parked_extension_lower=lower,
            parked_extension_upper=upper,
            parked_commit_attempts=_parse_int(
                "LINEMOVE_PARKED_COMMIT_ATTEMPTS", get("LINEMOVE_PARKED_COMMIT_ATTEMPTS", "10")
            ),
            ldap_enabled=_parse_bool("LINEMOVE_LDAP_ENABLED", get("LINEMOVE_LDAP_ENABLED", "true")),
            add_smtp_proxy=_parse_bool("LINEMOVE_ADD_SMTP_PROXY", get("LINEMOVE_ADD_SMTP_PROXY", "true")),
            add_unified_messaging=_parse_bool(
                "LINEMOVE_ADD_UNIFIED_MESSAGING", get("LINEMOVE_ADD_UNIFIED_MESSAGING", "true")
            ),
            unified_messaging_service_id=get("LINEMOVE_UM_EXTERNAL_SERVICE_ID", ""),
            hardphone_prefix=get("LINEMOVE_HARDPHONE_PREFIX", "SEP"),
            run_timeout_seconds=run_timeout,
        )


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{key} must be a boolean, got [{value}]")


def _parse_int(key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got [{value}]")


def _parse_float(key: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got [{value}]")


def _parse_range(value: str) -> tuple[int, int]:
    """Parse "LOWER-UPPER" into an inclusive (lower, upper) pair."""
    lower_text, sep, upper_text = value.partition("-")
    if not sep:
        raise ConfigurationError(
            f"LINEMOVE_PARKED_EXTENSION_RANGE must look like LOWER-UPPER, got [{value}]"
        )
    lower = _parse_int("LINEMOVE_PARKED_EXTENSION_RANGE", lower_text.strip())
    upper = _parse_int("LINEMOVE_PARKED_EXTENSION_RANGE", upper_text.strip())
    return lower, upper
