from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa, ec

from ..constants import RSA_PUBLIC_EXPONENT
from ..structures.cert_bundle import CertBundle
from ..structures.key_policy import KeyPolicy
from ..structures.role import Role
from ..logs.loggers import core_logger


class KeyFactory:
    """
    Generates key pairs according to a KeyPolicy and converts keys and
    certificates to/from PEM.
    """

    def __init__(self, policy: KeyPolicy | None = None):
        self._policy = policy or KeyPolicy()

    def generate_private_key(self, role: Role) -> rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey:
        """
        Generates a fresh asymmetric private key for a certificate of the given role.

        :type role: Role
        :param role: Role of the certificate the key will back. Decides the RSA size.

        :rtype: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey
        :returns: A private key object.
        """
        if self._policy.ecdsa:
            core_logger.debug(f"Generating SECP256R1 key for {role.value}")
            return ec.generate_private_key(ec.SECP256R1())

        key_size = self._policy.key_size_for(role)
        core_logger.debug(f"Generating RSA-{key_size} key for {role.value}")
        return rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size)

    @staticmethod
    def priv_key_to_pem(key, password: bytes | None = None) -> bytes:
        """
        Turns a private key object to PKCS#8 PEM.

        :type password: bytes | None
        :param password: If given, the PEM is encrypted with it.

        :rtype: bytes
        :returns: PEM encoded private key.
        """
        if password:
            enc_algorithm = serialization.BestAvailableEncryption(password)
        else:
            enc_algorithm = serialization.NoEncryption()
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=enc_algorithm
        )

    @staticmethod
    def cert_to_pem(cert: x509.Certificate) -> bytes:
        return cert.public_bytes(serialization.Encoding.PEM)

    @staticmethod
    def make_bundle(private_key, certificate: x509.Certificate, password: bytes | None = None) -> CertBundle:
        return CertBundle(
            private_key=private_key, certificate=certificate,
            pem_key=KeyFactory.priv_key_to_pem(private_key, password),
            pem_cert=KeyFactory.cert_to_pem(certificate),
        )

    @staticmethod
    def public_key_bytes(public_key) -> bytes:
        """DER SubjectPublicKeyInfo, used to compare public keys."""
        return public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    @staticmethod
    def keys_match(private_key, certificate: x509.Certificate) -> bool:
        return KeyFactory.public_key_bytes(private_key.public_key()) == \
            KeyFactory.public_key_bytes(certificate.public_key())
