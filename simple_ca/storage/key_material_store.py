import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator

# Cryptography imports
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from ..constants import (
    CA_DIR_NAME, LEAF_DIR_NAME, SERIALS_DIR_NAME, LOCK_FILE_NAME,
    KEY_FILE_SUFFIX, CERT_FILE_SUFFIX, SERIALS_FILE_SUFFIX,
    ROOT_SLOT, INTERMEDIATE_SLOT, DEFAULT_LOCK_TIMEOUT,
)
from ..errors import MaterialNotFound, MaterialCorrupt, StoreLocked
from ..structures.cert_bundle import CertBundle
from ..certificate.key_factory import KeyFactory
from ..logs.loggers import store_logger
from .store_lock import StoreLock

CA_SLOTS = (ROOT_SLOT, INTERMEDIATE_SLOT)

_SLOT_RE = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]*$")


def slot_for_subject(subject: str) -> str:
    """
    Store identifier of a leaf named after its subject: labels reversed,
    wildcard label mapped to '_' ('*.example.com' -> 'com.example._').
    """
    labels = subject.strip().lower().split(".")
    return ".".join(reversed(labels)).replace("*", "_")


def validate_slot(slot: str) -> str:
    if not slot or not _SLOT_RE.match(slot) or ".." in slot:
        raise ValueError(f"Invalid store slot identifier {slot!r}")
    return slot


class KeyMaterialStore(ABC):
    """
    Persists (private key, certificate) pairs by slot. Root and intermediate
    live in the fixed 'root' and 'intermediate' slots, leaves under their own
    identifiers. A key and its certificate are always handled together:
    a slot with only one of them doesn't exist as far as readers are concerned.

    Also keeps the ledger of serial numbers issued per issuer.

    Subclasses supply raw byte storage and the store-wide lock.
    """

    def __init__(self, key_password: bytes | None = None):
        self._key_password = key_password

    # --- PUBLIC USE ---

    def exists(self, slot: str) -> bool:
        pem_key, pem_cert = self._read_slot(validate_slot(slot))
        return pem_key is not None and pem_cert is not None

    def load(self, slot: str) -> CertBundle:
        """
        Loads and parses the material of a slot.

        :type slot: str
        :param slot: Slot identifier.

        :rtype: CertBundle
        :returns: The key and certificate of the slot.

        :raises MaterialNotFound: If key or certificate is missing.
        :raises MaterialCorrupt: If either can't be parsed, or they don't belong together.
        """
        validate_slot(slot)
        try:
            pem_key, pem_cert = self._read_slot(slot)
        except OSError as e:
            raise MaterialCorrupt(f"Couldn't read material of slot '{slot}': {e}") from e

        if pem_key is None and pem_cert is None:
            raise MaterialNotFound(f"No key material stored for '{slot}'")
        if pem_key is None or pem_cert is None:
            missing = "private key" if pem_key is None else "certificate"
            raise MaterialNotFound(f"Incomplete material for '{slot}': {missing} is missing")

        private_key = self._parse_private_key(slot, pem_key)

        try:
            cert = x509.load_pem_x509_certificate(pem_cert)
        except ValueError as e:
            raise MaterialCorrupt(f"Certificate of '{slot}' is malformed: {e}") from e

        if not KeyFactory.keys_match(private_key, cert):
            raise MaterialCorrupt(
                f"Certificate of '{slot}' doesn't match its private key. "
                "The store needs manual inspection."
            )

        return CertBundle(private_key=private_key, certificate=cert, pem_key=pem_key, pem_cert=pem_cert)

    def save(self, slot: str, bundle: CertBundle):
        """
        Writes key then certificate of a slot while holding the store lock.
        Replaces whatever the slot held before.

        :raises StoreLocked: If the lock couldn't be obtained.
        """
        validate_slot(slot)
        with self.lock():
            self._write_slot(slot, bundle.pem_key, bundle.pem_cert)
        store_logger.info(f"Saved key and certificate of '{slot}' (serial {bundle.certificate.serial_number:x})")

    def issued_serials(self, issuer: str) -> set[int]:
        serials = set()
        for line in self._read_serials(validate_slot(issuer)):
            line = line.strip()
            if not line:
                continue
            try:
                serials.add(int(line, 16))
            except ValueError as e:
                raise MaterialCorrupt(f"Serial ledger of '{issuer}' has a malformed entry {line!r}") from e
        return serials

    def record_serial(self, issuer: str, serial: int):
        validate_slot(issuer)
        with self.lock():
            self._append_serial(issuer, f"{serial:x}")

    # --- BACKEND ---

    @abstractmethod
    @contextmanager
    def lock(self, timeout: float | None = None) -> Iterator[None]:
        """Holds the store-wide exclusive lock. Raises StoreLocked on timeout."""

    @abstractmethod
    def leaf_slots(self) -> list[str]:
        """Identifiers of complete leaf slots, sorted."""

    @abstractmethod
    def _read_slot(self, slot: str) -> tuple[bytes | None, bytes | None]:
        ...

    @abstractmethod
    def _write_slot(self, slot: str, pem_key: bytes, pem_cert: bytes):
        ...

    @abstractmethod
    def _read_serials(self, issuer: str) -> list[str]:
        ...

    @abstractmethod
    def _append_serial(self, issuer: str, line: str):
        ...

    # --- HELPER FUNCTIONS ---

    def _parse_private_key(self, slot: str, pem_key: bytes):
        encrypted = b"ENCRYPTED PRIVATE KEY" in pem_key
        if encrypted and not self._key_password:
            raise MaterialCorrupt(
                f"Private key of '{slot}' is encrypted and no key password is configured (SIMPLE_CA_KEY_PASSWORD)"
            )
        try:
            return serialization.load_pem_private_key(
                pem_key, password=self._key_password if encrypted else None
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise MaterialCorrupt(f"Private key of '{slot}' is unreadable: {e}") from e


class FileKeyMaterialStore(KeyMaterialStore):
    """
    Store on a directory tree, PEM files only:

    <root>/ca/root.{key,cert}.pem, <root>/ca/intermediate.{key,cert}.pem,
    <root>/servers/<slot>.{key,cert}.pem, <root>/serials/<issuer>.txt

    Every file is written to a temp file in the same directory and renamed
    into place. The key is written before the certificate.

    :var str root_dir:
    The store directory. Created on first write.
    """

    def __init__(self, root_dir: str, key_password: bytes | None = None,
                 lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        super().__init__(key_password)
        self.root_dir = os.path.abspath(root_dir)
        self._lock = StoreLock(os.path.join(self.root_dir, LOCK_FILE_NAME), lock_timeout)

    @contextmanager
    def lock(self, timeout: float | None = None) -> Iterator[None]:
        self._lock.acquire(timeout)
        try:
            yield
        finally:
            self._lock.release()

    def slot_paths(self, slot: str) -> tuple[str, str]:
        """
        :rtype: tuple[str, str]
        :returns: (private key path, certificate path) of a slot.
        """
        validate_slot(slot)
        folder = CA_DIR_NAME if slot in CA_SLOTS else LEAF_DIR_NAME
        base = os.path.join(self.root_dir, folder, slot)
        return base + KEY_FILE_SUFFIX, base + CERT_FILE_SUFFIX

    def leaf_slots(self) -> list[str]:
        leaf_dir = os.path.join(self.root_dir, LEAF_DIR_NAME)
        try:
            names = os.listdir(leaf_dir)
        except FileNotFoundError:
            return []

        slots = []
        for name in names:
            if name.endswith(CERT_FILE_SUFFIX):
                slot = name[:-len(CERT_FILE_SUFFIX)]
                if os.path.exists(os.path.join(leaf_dir, slot + KEY_FILE_SUFFIX)):
                    slots.append(slot)
        return sorted(slots)

    def _read_slot(self, slot: str) -> tuple[bytes | None, bytes | None]:
        key_path, cert_path = self.slot_paths(slot)
        pem_key = self._read_from_file(key_path) if os.path.exists(key_path) else None
        pem_cert = self._read_from_file(cert_path) if os.path.exists(cert_path) else None
        return pem_key, pem_cert

    def _write_slot(self, slot: str, pem_key: bytes, pem_cert: bytes):
        key_path, cert_path = self.slot_paths(slot)
        os.makedirs(os.path.dirname(key_path), exist_ok=True)

        # key first: a crash in between leaves a key without a certificate, which reads as absent
        self._save_to_file(key_path, pem_key, mode=0o600)
        self._save_to_file(cert_path, pem_cert, mode=0o644)

    def _serials_path(self, issuer: str) -> str:
        return os.path.join(self.root_dir, SERIALS_DIR_NAME, issuer + SERIALS_FILE_SUFFIX)

    def _read_serials(self, issuer: str) -> list[str]:
        path = self._serials_path(issuer)
        if not os.path.exists(path):
            return []
        return self._read_from_file(path).decode("ascii").splitlines()

    def _append_serial(self, issuer: str, line: str):
        path = self._serials_path(issuer)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        try:
            with open(path, "a", encoding="ascii") as f:
                f.write(line + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise OSError(f"Failed to record serial in {path}: {e}") from e

    def _save_to_file(self, path: str, data: bytes, mode: int = 0o644):
        """
        Writes bytes to a file through a temp file and an atomic rename.

        :type path: str
        :param path: Destination file path.

        :type data: bytes
        :param data: Binary data to write.

        :raises OSError: If saving failed
        """
        folder, name = os.path.split(path)
        fd, tmp_path = tempfile.mkstemp(dir=folder, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise OSError(f"Failed to save {path}: {e}") from e

    def _read_from_file(self, path: str) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise OSError(f"Failed to load {path}: {e}") from e


class InMemoryKeyMaterialStore(KeyMaterialStore):
    """
    Store kept in process memory. Same contract as the file store; the lock
    is a process-local re-entrant lock with the same timeout behavior.
    """

    def __init__(self, key_password: bytes | None = None,
                 lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        super().__init__(key_password)
        self._slots: dict[str, dict[str, bytes]] = {}
        self._serials: dict[str, list[str]] = {}
        self._rlock = threading.RLock()
        self._lock_timeout = lock_timeout

    @contextmanager
    def lock(self, timeout: float | None = None) -> Iterator[None]:
        timeout = self._lock_timeout if timeout is None else timeout
        if not self._rlock.acquire(timeout=timeout):
            raise StoreLocked(f"In-memory store is locked (waited {timeout}s)")
        try:
            yield
        finally:
            self._rlock.release()

    def leaf_slots(self) -> list[str]:
        return sorted(
            slot for slot, files in self._slots.items()
            if slot not in CA_SLOTS and "key" in files and "cert" in files
        )

    def put_raw(self, slot: str, pem_key: bytes | None = None, pem_cert: bytes | None = None):
        """Places raw bytes in a slot, bypassing validation. For simulating damaged stores."""
        files = self._slots.setdefault(validate_slot(slot), {})
        if pem_key is not None:
            files["key"] = pem_key
        if pem_cert is not None:
            files["cert"] = pem_cert

    def _read_slot(self, slot: str) -> tuple[bytes | None, bytes | None]:
        files = self._slots.get(slot, {})
        return files.get("key"), files.get("cert")

    def _write_slot(self, slot: str, pem_key: bytes, pem_cert: bytes):
        self._slots[slot] = {"key": pem_key, "cert": pem_cert}

    def _read_serials(self, issuer: str) -> list[str]:
        return list(self._serials.get(issuer, []))

    def _append_serial(self, issuer: str, line: str):
        self._serials.setdefault(issuer, []).append(line)
