from dataclasses import dataclass
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa, ec

from .cert_bundle import CertBundle


@dataclass(frozen=True)
class SigningIdentity:
    """
    The key and name a certificate gets signed with. A parent CA is
    described by its bundle; a self-signing root by its own new key
    and subject, with no certificate yet.
    """
    private_key: Optional[rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey]
    name: x509.Name
    certificate: Optional[x509.Certificate] = None

    @classmethod
    def from_bundle(cls, bundle: CertBundle) -> "SigningIdentity":
        return cls(
            private_key=bundle.private_key,
            name=bundle.certificate.subject,
            certificate=bundle.certificate,
        )

    @property
    def public_key(self):
        if self.private_key is None:
            return None
        return self.private_key.public_key()
