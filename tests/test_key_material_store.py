import os
import threading
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from simple_ca.certificate.key_factory import KeyFactory
from simple_ca.errors import MaterialCorrupt, MaterialNotFound, StoreLocked
from simple_ca.storage.key_material_store import (
    FileKeyMaterialStore, InMemoryKeyMaterialStore, slot_for_subject, validate_slot,
)
from simple_ca.structures.subject_name import SubjectName


def make_bundle(common_name="test.example.com", password=None):
    key = ec.generate_private_key(ec.SECP256R1())
    name = SubjectName(common_name=common_name).to_x509_name()
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return KeyFactory.make_bundle(key, cert, password)


@pytest.fixture(params=["memory", "file"])
def store(request, store_dir):
    if request.param == "memory":
        return InMemoryKeyMaterialStore(lock_timeout=0.2)
    return FileKeyMaterialStore(store_dir, lock_timeout=0.2)


def test_round_trip(store):
    bundle = make_bundle()
    store.save("com.example.test", bundle)

    loaded = store.load("com.example.test")
    assert loaded.pem_key == bundle.pem_key
    assert loaded.pem_cert == bundle.pem_cert
    assert loaded.certificate == bundle.certificate
    assert KeyFactory.keys_match(loaded.private_key, bundle.certificate)


def test_missing_slot(store):
    assert not store.exists("root")
    with pytest.raises(MaterialNotFound):
        store.load("root")


def test_save_replaces_slot(store):
    store.save("com.example.test", make_bundle())
    second = make_bundle()
    store.save("com.example.test", second)

    assert store.load("com.example.test").certificate == second.certificate


def test_leaf_slots_exclude_ca_slots(store):
    store.save("root", make_bundle("Root"))
    store.save("com.example.b", make_bundle())
    store.save("com.example.a", make_bundle())

    assert store.leaf_slots() == ["com.example.a", "com.example.b"]


def test_mismatched_key_and_certificate_is_corrupt():
    store = InMemoryKeyMaterialStore()
    first, second = make_bundle(), make_bundle()
    store.put_raw("intermediate", pem_key=second.pem_key, pem_cert=first.pem_cert)

    with pytest.raises(MaterialCorrupt):
        store.load("intermediate")


def test_unparsable_material_is_corrupt():
    store = InMemoryKeyMaterialStore()
    bundle = make_bundle()
    store.put_raw("root", pem_key=bundle.pem_key, pem_cert=b"-----BEGIN CERTIFICATE-----\ngarbage\n")
    with pytest.raises(MaterialCorrupt):
        store.load("root")

    store.put_raw("intermediate", pem_key=b"not a key", pem_cert=bundle.pem_cert)
    with pytest.raises(MaterialCorrupt):
        store.load("intermediate")


def test_encrypted_key_needs_password():
    bundle = make_bundle(password=b"hunter2")
    assert b"ENCRYPTED PRIVATE KEY" in bundle.pem_key

    with_password = InMemoryKeyMaterialStore(key_password=b"hunter2")
    with_password.save("root", bundle)
    assert with_password.load("root").certificate == bundle.certificate

    without_password = InMemoryKeyMaterialStore()
    without_password.put_raw("root", pem_key=bundle.pem_key, pem_cert=bundle.pem_cert)
    with pytest.raises(MaterialCorrupt):
        without_password.load("root")

    wrong_password = InMemoryKeyMaterialStore(key_password=b"wrong")
    wrong_password.put_raw("root", pem_key=bundle.pem_key, pem_cert=bundle.pem_cert)
    with pytest.raises(MaterialCorrupt):
        wrong_password.load("root")


def test_file_layout(file_store):
    file_store.save("root", make_bundle("Root"))
    file_store.save("com.example.www", make_bundle())

    root = file_store.root_dir
    assert os.path.isfile(os.path.join(root, "ca", "root.key.pem"))
    assert os.path.isfile(os.path.join(root, "ca", "root.cert.pem"))
    assert os.path.isfile(os.path.join(root, "servers", "com.example.www.key.pem"))
    assert os.path.isfile(os.path.join(root, "servers", "com.example.www.cert.pem"))
    # no temp files left behind
    assert sorted(os.listdir(os.path.join(root, "ca"))) == ["root.cert.pem", "root.key.pem"]


def test_key_without_certificate_reads_as_absent(file_store):
    # what a crash between the key write and the certificate write leaves behind
    bundle = make_bundle()
    key_path, cert_path = file_store.slot_paths("com.example.www")
    os.makedirs(os.path.dirname(key_path))
    with open(key_path, "wb") as f:
        f.write(bundle.pem_key)

    assert not file_store.exists("com.example.www")
    assert file_store.leaf_slots() == []
    with pytest.raises(MaterialNotFound):
        file_store.load("com.example.www")

    file_store.save("com.example.www", bundle)
    assert file_store.load("com.example.www").certificate == bundle.certificate


def test_reads_do_not_create_directories(file_store):
    assert not file_store.exists("root")
    assert file_store.leaf_slots() == []
    assert file_store.issued_serials("root") == set()
    assert not os.path.exists(file_store.root_dir)


def test_save_fails_while_another_store_holds_the_lock(store_dir):
    holder = FileKeyMaterialStore(store_dir, lock_timeout=0.2)
    other = FileKeyMaterialStore(store_dir, lock_timeout=0.2)

    with holder.lock():
        with pytest.raises(StoreLocked):
            other.save("root", make_bundle("Root"))
    assert not other.exists("root")

    other.save("root", make_bundle("Root"))
    assert holder.exists("root")


def test_lock_is_reentrant(store):
    with store.lock():
        with store.lock():
            store.save("com.example.test", make_bundle())
    assert store.exists("com.example.test")


def test_memory_lock_blocks_other_threads():
    store = InMemoryKeyMaterialStore(lock_timeout=0.1)
    errors = []

    def contender():
        try:
            with store.lock():
                pass
        except StoreLocked as e:
            errors.append(e)

    with store.lock():
        thread = threading.Thread(target=contender)
        thread.start()
        thread.join()

    assert len(errors) == 1


def test_corrupt_serial_ledger():
    store = InMemoryKeyMaterialStore()
    store.record_serial("root", 0xabc)
    store._append_serial("root", "zz-not-hex")

    with pytest.raises(MaterialCorrupt):
        store.issued_serials("root")


@pytest.mark.parametrize("subject, slot", [
    ("www.example.com", "com.example.www"),
    ("*.example.com", "com.example._"),
    ("Localhost", "localhost"),
])
def test_slot_for_subject(subject, slot):
    assert slot_for_subject(subject) == slot


@pytest.mark.parametrize("slot", ["", "../etc", "a/b", ".hidden", "a..b", "sp ace"])
def test_invalid_slots(slot):
    with pytest.raises(ValueError):
        validate_slot(slot)
