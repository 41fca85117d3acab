from dataclasses import dataclass

# Cryptography imports
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa, ec


@dataclass
class CertBundle:
    """
    Helper dataclass. Keeps the cryptographic pieces of one slot together -
    certificate and private key are always stored and loaded as a pair.

    :var rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey private_key:
    The private key object.

    :var cryptography.x509.Certificate certificate:
    The certificate object.

    :var bytes pem_key:
    The PEM formatted private key, as stored (possibly encrypted).

    :var bytes pem_cert:
    The PEM formatted certificate.
    """
    private_key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey
    certificate: x509.Certificate
    pem_key: bytes
    pem_cert: bytes
