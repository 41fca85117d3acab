import pytest
from cryptography import x509
from cryptography.x509.oid import NameOID

from simple_ca.config import CAConfig
from simple_ca.certificate.certificate_authority import CertificateAuthorityEngine
from simple_ca.storage.key_material_store import FileKeyMaterialStore, InMemoryKeyMaterialStore
from simple_ca.structures.key_policy import KeyPolicy

# short timeout so lock contention tests fail fast
TEST_LOCK_TIMEOUT = 0.2


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keeps a developer's SIMPLE_CA_* settings out of the tests."""
    import os
    for name in list(os.environ):
        if name.startswith("SIMPLE_CA_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store_dir(tmp_path):
    return str(tmp_path / "store")


@pytest.fixture
def config(store_dir):
    # ECDSA keeps key generation fast
    return CAConfig(
        store_dir=store_dir,
        country="AU",
        state_or_province="TAS",
        locality="Hobart",
        key_policy=KeyPolicy(ecdsa=True),
        lock_timeout=TEST_LOCK_TIMEOUT,
    )


@pytest.fixture
def memory_store():
    return InMemoryKeyMaterialStore(lock_timeout=TEST_LOCK_TIMEOUT)


@pytest.fixture
def file_store(store_dir):
    return FileKeyMaterialStore(store_dir, lock_timeout=TEST_LOCK_TIMEOUT)


@pytest.fixture
def engine(memory_store, config):
    return CertificateAuthorityEngine(memory_store, config)


@pytest.fixture
def file_engine(config):
    return CertificateAuthorityEngine.from_config(config)


@pytest.fixture
def ready_engine(engine):
    engine.bootstrap()
    return engine


def common_name(cert: x509.Certificate) -> str:
    return cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value


def extension(cert: x509.Certificate, ext_class):
    return cert.extensions.get_extension_for_class(ext_class)


def dns_sans(cert: x509.Certificate) -> list[str]:
    return extension(cert, x509.SubjectAlternativeName).value.get_values_for_type(x509.DNSName)
