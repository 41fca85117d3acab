from typing import Iterable, Tuple

# Cryptography imports
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa, ec

from ..config import CAConfig
from ..constants import ROOT_SLOT, INTERMEDIATE_SLOT
from ..errors import (
    AlreadyBootstrapped, ChainNotReady, InvalidSubject, MaterialCorrupt,
    MaterialNotFound, SigningKeyUnavailable,
)
from ..storage.key_material_store import (
    CA_SLOTS, KeyMaterialStore, FileKeyMaterialStore, slot_for_subject, validate_slot,
)
from ..structures.cert_bundle import CertBundle
from ..structures.chain_status import ChainStatus
from ..structures.role import Role
from ..structures.signing_identity import SigningIdentity
from ..structures.subject_name import SubjectName
from ..logs.loggers import core_logger
from .key_factory import KeyFactory
from .serial_allocator import SerialNumberAllocator
from .signer import CertificateSigner
from .template_builder import CertificateTemplateBuilder, validate_dns_name, validate_leaf_subject


class CertificateAuthorityEngine:
    """
    Represents the private CA: a self-signed root, an intermediate signed by
    the root, and any number of server (leaf) certificates signed by the
    intermediate.

    State machine over the store contents:
    EMPTY --bootstrap()--> CHAIN_READY (passing through ROOT_ONLY under the lock)
    ROOT_ONLY --resume_bootstrap()--> CHAIN_READY
    CHAIN_READY --issue_leaf()--> CHAIN_READY

    Every mutating operation holds the store lock from its precondition
    check to its last write, so concurrent invocations never see a
    half-built chain.

    :var KeyMaterialStore store:
    Where key material and the serial ledger live.

    :var CAConfig config:
    Subject fields, key policy, validity policy, CA key password.
    """

    def __init__(self, store: KeyMaterialStore, config: CAConfig | None = None):
        self.store = store
        self.config = config or CAConfig()

        self._keys = KeyFactory(self.config.key_policy)
        self._serials = SerialNumberAllocator(store)
        self._templates = CertificateTemplateBuilder(self.config.validity)
        self._signer = CertificateSigner()

    @classmethod
    def from_config(cls, config: CAConfig) -> "CertificateAuthorityEngine":
        store = FileKeyMaterialStore(config.store_dir, key_password=config.key_password,
                                     lock_timeout=config.lock_timeout)
        return cls(store, config)

    # --- PUBLIC USE ---

    def chain_status(self) -> ChainStatus:
        """
        Read-only check of which CA material is present. Doesn't take the lock.

        :raises MaterialCorrupt: If an intermediate exists without a root.
        """
        has_root = self.store.exists(ROOT_SLOT)
        has_intermediate = self.store.exists(INTERMEDIATE_SLOT)

        if has_root and has_intermediate:
            return ChainStatus.CHAIN_READY
        if has_root:
            return ChainStatus.ROOT_ONLY
        if has_intermediate:
            raise MaterialCorrupt("Intermediate CA exists without a root CA. The store needs manual inspection.")
        return ChainStatus.EMPTY

    def bootstrap(self) -> Tuple[x509.Certificate, x509.Certificate]:
        """
        Creates the root CA and the intermediate CA on an empty store.

        :rtype: Tuple[x509.Certificate, x509.Certificate]
        :returns: (root certificate, intermediate certificate).

        :raises AlreadyBootstrapped: If the store already has a root. Nothing is changed.
        :raises InvalidSubject: If a configured CA name field is malformed.
        :raises StoreLocked: If another process holds the store.
        """
        self._check_ca_names()

        with self.store.lock():
            status = self.chain_status()
            if status is not ChainStatus.EMPTY:
                raise AlreadyBootstrapped(self._already_bootstrapped_message(status))

            root = self._issue_root()
            intermediate = self._issue_intermediate(root)

        core_logger.info("Chain of trust ready (root + intermediate CA).")
        return root.certificate, intermediate.certificate

    def resume_bootstrap(self) -> x509.Certificate:
        """
        Finishes a bootstrap that died after the root was saved: issues the
        intermediate against the stored root.

        :rtype: x509.Certificate
        :returns: The intermediate certificate.

        :raises ChainNotReady: If there's no root yet (run bootstrap).
        :raises AlreadyBootstrapped: If the chain is already complete.
        """
        self._check_ca_names()

        with self.store.lock():
            match self.chain_status():
                case ChainStatus.EMPTY:
                    raise ChainNotReady("No root CA in the store yet. Run 'simple-ca ca' to create the chain.")
                case ChainStatus.CHAIN_READY:
                    raise AlreadyBootstrapped(self._already_bootstrapped_message(ChainStatus.CHAIN_READY))

            core_logger.warning("Found a root CA without intermediate CA. Completing the chain...")
            root = self._load_signer(ROOT_SLOT)
            intermediate = self._issue_intermediate(root)

        return intermediate.certificate

    def issue_leaf(self, subject: str, sans: Iterable[str], identifier: str | None = None,
                   name: SubjectName | None = None
                   ) -> Tuple[x509.Certificate, rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey]:
        """
        Issues a server certificate signed by the intermediate CA and stores it.

        :type subject: str
        :param subject: Common name of the certificate, e.g. '*.example.com'.

        :type sans: Iterable[str]
        :param sans: DNS names of the SAN extension. The subject is only covered
        if the caller lists it here too.

        :type identifier: str | None
        :param identifier: Store slot for the leaf. Defaults to the reversed subject.

        :type name: SubjectName | None
        :param name: Distinguished name fields other than the CN. Defaults to the configured ones.

        :rtype: Tuple[x509.Certificate, rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey]
        :returns: (leaf certificate, leaf private key).

        :raises InvalidSubject: On a malformed subject, SAN or identifier.
        :raises ChainNotReady: If root or intermediate is missing. Nothing is written.
        """
        sans = list(sans)
        validate_leaf_subject(subject)
        for san in sans:
            validate_dns_name(san, "SAN entry")
        slot = self._leaf_slot(subject, identifier)
        leaf_name = (name or self.config.base_name()).copy(subject)
        leaf_name.to_x509_name()

        self._require_chain_ready()

        private_key = self._keys.generate_private_key(Role.LEAF)

        with self.store.lock():
            self._require_chain_ready()
            intermediate = self._load_signer(INTERMEDIATE_SLOT)

            serial = self._serials.next(INTERMEDIATE_SLOT)
            template = self._templates.build(
                Role.LEAF, leaf_name, sans, parent=intermediate.certificate.subject, serial_number=serial
            )
            certificate = self._signer.sign(template, private_key.public_key(),
                                            SigningIdentity.from_bundle(intermediate))

            if self.store.exists(slot):
                core_logger.info(f"Replacing stored certificate of '{slot}'")
            # leaf keys stay unencrypted, servers read them directly
            self.store.save(slot, KeyFactory.make_bundle(private_key, certificate))

        core_logger.info(f"Issued server certificate for {subject} (serial {serial:x}, slot '{slot}')")
        return certificate, private_key

    def ca_chain_pem(self) -> bytes:
        """
        :rtype: bytes
        :returns: Intermediate then root certificate, PEM, for full-chain files.
        """
        self._require_chain_ready()
        intermediate = self.store.load(INTERMEDIATE_SLOT)
        root = self.store.load(ROOT_SLOT)
        return intermediate.pem_cert + root.pem_cert

    def leaf_slots(self) -> list[str]:
        return self.store.leaf_slots()

    # --- CORE, LOGIC FUNCTIONS ---

    def _issue_root(self) -> CertBundle:
        """
        Generates the root key and self-signs the root certificate.

        WARNING: a new root invalidates the trust path of everything issued
        before, callers only get here from an EMPTY store.
        """
        core_logger.info("Generating new self-signed root CA...")
        private_key = self._keys.generate_private_key(Role.ROOT)

        serial = self._serials.next(ROOT_SLOT)
        template = self._templates.build(Role.ROOT, self.config.ca_name(Role.ROOT), serial_number=serial)

        # subject is also the issuer since the root self-signs its cert
        identity = SigningIdentity(private_key=private_key, name=template.subject)
        certificate = self._signer.sign(template, private_key.public_key(), identity)

        bundle = KeyFactory.make_bundle(private_key, certificate, self.config.key_password)
        self.store.save(ROOT_SLOT, bundle)
        return bundle

    def _issue_intermediate(self, root: CertBundle) -> CertBundle:
        core_logger.info("Generating intermediate CA signed by the root CA...")
        private_key = self._keys.generate_private_key(Role.INTERMEDIATE)

        serial = self._serials.next(ROOT_SLOT)
        template = self._templates.build(
            Role.INTERMEDIATE, self.config.ca_name(Role.INTERMEDIATE),
            parent=root.certificate.subject, serial_number=serial,
        )
        certificate = self._signer.sign(template, private_key.public_key(), SigningIdentity.from_bundle(root))

        bundle = KeyFactory.make_bundle(private_key, certificate, self.config.key_password)
        self.store.save(INTERMEDIATE_SLOT, bundle)
        return bundle

    def _load_signer(self, slot: str) -> CertBundle:
        """
        Loads a parent CA for signing. A missing parent after the status check
        means the store changed underneath us or a logic bug.
        MaterialCorrupt is passed on unchanged.
        """
        try:
            bundle = self.store.load(slot)
        except MaterialNotFound as e:
            raise SigningKeyUnavailable(f"Signing material of '{slot}' couldn't be loaded: {e}") from e

        try:
            constraints = bundle.certificate.extensions.get_extension_for_class(x509.BasicConstraints).value
        except x509.ExtensionNotFound as e:
            raise SigningKeyUnavailable(f"Certificate of '{slot}' has no Basic Constraints") from e
        if not constraints.ca:
            raise SigningKeyUnavailable(f"Certificate of '{slot}' isn't a CA certificate")

        return bundle

    # --- HELPER FUNCTIONS ---

    def _require_chain_ready(self):
        status = self.chain_status()
        if status is not ChainStatus.CHAIN_READY:
            hint = "Run 'simple-ca ca' first." if status is ChainStatus.EMPTY else \
                "The intermediate CA is missing, run 'simple-ca ca' to complete the chain."
            raise ChainNotReady(f"The CA chain isn't ready ({status.name}). {hint}")

    def _check_ca_names(self):
        """Fails with InvalidSubject on a misconfigured CA name before anything is generated."""
        for role in (Role.ROOT, Role.INTERMEDIATE):
            self.config.ca_name(role).to_x509_name()

    def _leaf_slot(self, subject: str, identifier: str | None) -> str:
        slot = identifier if identifier is not None else slot_for_subject(subject)
        try:
            validate_slot(slot)
        except ValueError as e:
            raise InvalidSubject(str(e)) from e
        if slot in CA_SLOTS:
            hint = "" if identifier is not None else ", pass an explicit identifier (--id) for this server"
            raise InvalidSubject(f"'{slot}' is reserved for the CA certificates{hint}")
        return slot

    @staticmethod
    def _already_bootstrapped_message(status: ChainStatus) -> str:
        if status is ChainStatus.ROOT_ONLY:
            return ("A root CA already exists (intermediate missing). "
                    "Complete it with resume_bootstrap() instead of creating a new root.")
        return ("The CA chain already exists. Creating a new one would invalidate every "
                "certificate issued so far; delete the store manually if that's really intended.")
