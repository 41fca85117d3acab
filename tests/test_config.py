import os

import pytest

from simple_ca.config import CAConfig
from simple_ca.constants import DEFAULT_LOCK_TIMEOUT, LEAF_VALIDITY_DAYS
from simple_ca.structures.key_policy import KeyPolicy
from simple_ca.structures.role import Role


def test_defaults():
    config = CAConfig.from_env()

    assert config.store_dir == os.path.expanduser("~/.simple_ca")
    assert config.organization == "Simple CA"
    assert config.key_policy == KeyPolicy()
    assert config.key_password is None
    assert config.lock_timeout == DEFAULT_LOCK_TIMEOUT
    assert config.validity.days_for(Role.LEAF) == LEAF_VALIDITY_DAYS


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SIMPLE_CA_DIR", str(tmp_path))
    monkeypatch.setenv("SIMPLE_CA_ORG", "Acme")
    monkeypatch.setenv("SIMPLE_CA_COUNTRY", "AU")
    monkeypatch.setenv("SIMPLE_CA_KEY_ALGORITHM", "ECDSA")
    monkeypatch.setenv("SIMPLE_CA_KEY_PASSWORD", "pw")
    monkeypatch.setenv("SIMPLE_CA_ROOT_VALIDITY_DAYS", "30")

    config = CAConfig.from_env()

    assert config.store_dir == str(tmp_path)
    assert config.key_policy.ecdsa
    assert config.key_password == b"pw"
    assert config.validity.days_for(Role.ROOT) == 30
    assert config.ca_name(Role.ROOT).common_name == "Acme Root CA"
    assert config.ca_name(Role.INTERMEDIATE).common_name == "Acme Intermediate CA"
    assert config.ca_name(Role.INTERMEDIATE).country == "AU"


@pytest.mark.parametrize("name, value", [
    ("SIMPLE_CA_KEY_ALGORITHM", "dsa"),
    ("SIMPLE_CA_LEAF_VALIDITY_DAYS", "0"),
    ("SIMPLE_CA_LEAF_VALIDITY_DAYS", "a year"),
    ("SIMPLE_CA_LOCK_TIMEOUT", "-1"),
])
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        CAConfig.from_env()


def test_key_sizes_per_role():
    policy = KeyPolicy()
    assert policy.key_size_for(Role.ROOT) == 4096
    assert policy.key_size_for(Role.INTERMEDIATE) == 4096
    assert policy.key_size_for(Role.LEAF) == 2048
