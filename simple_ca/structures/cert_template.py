from dataclasses import dataclass
from datetime import datetime

from cryptography import x509

from .role import Role


@dataclass(frozen=True)
class ExtensionSpec:
    """One X.509 extension value plus its criticality."""
    value: x509.ExtensionType
    critical: bool


@dataclass(frozen=True)
class CertTemplate:
    """
    Everything a certificate carries except the keys and the signature.

    :var Role role:
    Role the template was built for.

    :var x509.Name subject:
    Subject distinguished name.

    :var x509.Name issuer:
    Issuer distinguished name. Equals subject for the root (self-signed).

    :var int serial_number:
    Serial number allocated for the issuer.

    :var tuple[ExtensionSpec, ...] extensions:
    Role-policy extensions (Basic Constraints, Key Usage, EKU, SAN).
    Key identifiers are added by the signer.
    """
    role: Role
    subject: x509.Name
    issuer: x509.Name
    serial_number: int
    not_valid_before: datetime
    not_valid_after: datetime
    extensions: tuple[ExtensionSpec, ...] = ()

    @property
    def is_self_issued(self) -> bool:
        return self.subject == self.issuer
