import os
from dataclasses import dataclass

from .constants import (
    DEFAULT_STORE_DIR, DEFAULT_ORGANIZATION_NAME, DEFAULT_KEY_ALGORITHM, DEFAULT_LOCK_TIMEOUT,
    ROOT_VALIDITY_DAYS, INTERMEDIATE_VALIDITY_DAYS, LEAF_VALIDITY_DAYS,
)
from .structures.key_policy import KeyPolicy
from .structures.role import Role
from .structures.subject_name import SubjectName
from .structures.validity_policy import ValidityPolicy


def _env_str(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} can't be negative, got {value}")
    return value


@dataclass(frozen=True)
class CAConfig:
    """
    Runtime configuration of the CA. Built from the environment
    (a .env file is loaded into it by the CLI) by from_env().
    """

    store_dir: str = DEFAULT_STORE_DIR
    country: str = ""
    state_or_province: str = ""
    locality: str = ""
    organization: str = DEFAULT_ORGANIZATION_NAME
    organization_unit: str = ""
    key_policy: KeyPolicy = KeyPolicy()
    validity: ValidityPolicy = ValidityPolicy()
    key_password: bytes | None = None
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    log_file: str | None = None

    @classmethod
    def from_env(cls) -> "CAConfig":
        store_dir = os.path.expanduser(_env_str("SIMPLE_CA_DIR", DEFAULT_STORE_DIR))
        password = _env_str("SIMPLE_CA_KEY_PASSWORD")

        return cls(
            store_dir=store_dir,
            country=_env_str("SIMPLE_CA_COUNTRY"),
            state_or_province=_env_str("SIMPLE_CA_STATE"),
            locality=_env_str("SIMPLE_CA_LOCALITY"),
            organization=_env_str("SIMPLE_CA_ORG", DEFAULT_ORGANIZATION_NAME),
            organization_unit=_env_str("SIMPLE_CA_ORG_UNIT"),
            key_policy=KeyPolicy.from_name(_env_str("SIMPLE_CA_KEY_ALGORITHM", DEFAULT_KEY_ALGORITHM)),
            validity=ValidityPolicy(
                root_days=_env_int("SIMPLE_CA_ROOT_VALIDITY_DAYS", ROOT_VALIDITY_DAYS),
                intermediate_days=_env_int("SIMPLE_CA_INTERMEDIATE_VALIDITY_DAYS", INTERMEDIATE_VALIDITY_DAYS),
                leaf_days=_env_int("SIMPLE_CA_LEAF_VALIDITY_DAYS", LEAF_VALIDITY_DAYS),
            ),
            key_password=password.encode() if password else None,
            lock_timeout=_env_float("SIMPLE_CA_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT),
            log_file=_env_str("SIMPLE_CA_LOG_FILE") or None,
        )

    def base_name(self, common_name: str = "") -> SubjectName:
        return SubjectName(
            country=self.country,
            state_or_province=self.state_or_province,
            locality=self.locality,
            organization=self.organization,
            organization_unit=self.organization_unit,
            common_name=common_name,
        )

    def ca_name(self, role: Role) -> SubjectName:
        """Subject of the root or intermediate CA, e.g. 'Simple CA Root CA'."""
        org = self.organization or DEFAULT_ORGANIZATION_NAME
        return self.base_name(f"{org} {role.cn_suffix}")
