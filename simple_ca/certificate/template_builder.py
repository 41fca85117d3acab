import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID

from ..constants import CLOCK_SKEW_MINUTES
from ..errors import InvalidSubject
from ..structures.cert_template import CertTemplate, ExtensionSpec
from ..structures.role import Role
from ..structures.subject_name import SubjectName
from ..structures.validity_policy import ValidityPolicy
from ..logs.loggers import core_logger

# X.509 upper bound for the common name attribute
MAX_COMMON_NAME_LENGTH = 64

_LABEL_RE = re.compile(r"^[A-Za-z0-9*-]+$")


def validate_dns_name(value: str, what: str = "name") -> str:
    """
    Checks a subject/SAN entry: non-empty, no empty labels, and only
    letters, digits, '-' and '*' in every label. Wildcards are passed
    through as they are, their position isn't checked.

    :raises InvalidSubject: If the value isn't a usable DNS name.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidSubject(f"{what} must not be empty")

    for label in value.split("."):
        if not label:
            raise InvalidSubject(f"{what} {value!r} has an empty label")
        if not _LABEL_RE.match(label):
            raise InvalidSubject(f"{what} {value!r} contains characters not allowed in a DNS name")
    return value


def validate_leaf_subject(subject: str) -> str:
    """Leaf common name: a DNS name that fits the X.509 CN length limit."""
    validate_dns_name(subject, "subject")
    if len(subject) > MAX_COMMON_NAME_LENGTH:
        raise InvalidSubject(f"subject {subject!r} is longer than {MAX_COMMON_NAME_LENGTH} characters")
    return subject


def _key_usage(*, digital_signature=False, key_encipherment=False, key_cert_sign=False, crl_sign=False):
    return x509.KeyUsage(
        digital_signature=digital_signature,
        content_commitment=False,
        key_encipherment=key_encipherment,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=key_cert_sign,
        crl_sign=crl_sign,
        encipher_only=False,
        decipher_only=False,
    )


class CertificateTemplateBuilder:
    """
    Builds the unsigned attribute set of a certificate for a role.

    Extension policy:
    * Root - CA=true without path length limit, keyCertSign + cRLSign.
    * Intermediate - CA=true with path length 0, keyCertSign + cRLSign.
    * Leaf - CA=false, digitalSignature + keyEncipherment, EKU serverAuth,
      SAN made of exactly the DNS names the caller passed.
    """

    def __init__(self, validity: ValidityPolicy | None = None):
        self._validity = validity or ValidityPolicy()

    def build(self, role: Role, subject: SubjectName, sans: Iterable[str] = (),
              parent: Optional[x509.Name] = None, serial_number: int = 0,
              *, now: datetime | None = None) -> CertTemplate:
        """
        :type role: Role
        :param role: Which extension policy to apply.

        :type subject: SubjectName
        :param subject: Subject of the new certificate. For leaves the common
        name must be a DNS name.

        :type sans: Iterable[str]
        :param sans: DNS names for the SAN extension (leaves only). Not derived
        from the subject; wildcards are kept literally.

        :type parent: x509.Name | None
        :param parent: Subject of the issuing CA. None only for the root.

        :type serial_number: int
        :param serial_number: Serial allocated for the issuer.

        :rtype: CertTemplate
        :raises InvalidSubject: On empty/illegal subject or SAN entries.
        """
        sans = tuple(sans)
        self._check_inputs(role, subject, sans, parent, serial_number)

        x509_subject = subject.to_x509_name()
        issuer = x509_subject if role is Role.ROOT else parent

        # backdated to tolerate client clock skew
        not_before = (now or datetime.now(timezone.utc)) - timedelta(minutes=CLOCK_SKEW_MINUTES)
        not_after = not_before + timedelta(days=self._validity.days_for(role))

        core_logger.debug(f"Built {role.value} template for {subject.common_name!r}, SANs: {list(sans)}")
        return CertTemplate(
            role=role,
            subject=x509_subject,
            issuer=issuer,
            serial_number=serial_number,
            not_valid_before=not_before,
            not_valid_after=not_after,
            extensions=self._extensions_for(role, sans),
        )

    def _check_inputs(self, role: Role, subject: SubjectName, sans: tuple[str, ...],
                      parent: Optional[x509.Name], serial_number: int):
        if serial_number <= 0:
            raise ValueError("serial number must be positive")

        if len(subject.common_name) > MAX_COMMON_NAME_LENGTH:
            raise InvalidSubject(
                f"subject {subject.common_name!r} is longer than {MAX_COMMON_NAME_LENGTH} characters"
            )

        match role:
            case Role.ROOT:
                if parent is not None:
                    raise ValueError("a root certificate is self-signed and has no parent")
            case Role.INTERMEDIATE | Role.LEAF:
                if parent is None:
                    raise ValueError(f"a {role.value} certificate needs a parent CA")

        if role is Role.LEAF:
            validate_leaf_subject(subject.common_name)
            for san in sans:
                validate_dns_name(san, "SAN entry")
        else:
            if not subject.common_name.strip():
                raise InvalidSubject("CA subject must have a common name")
            if sans:
                raise ValueError("CA certificates don't carry SANs")

    def _extensions_for(self, role: Role, sans: tuple[str, ...]) -> tuple[ExtensionSpec, ...]:
        match role:
            case Role.ROOT:
                return (
                    ExtensionSpec(x509.BasicConstraints(ca=True, path_length=None), critical=True),
                    ExtensionSpec(_key_usage(key_cert_sign=True, crl_sign=True), critical=True),
                )
            case Role.INTERMEDIATE:
                return (
                    ExtensionSpec(x509.BasicConstraints(ca=True, path_length=0), critical=True),
                    ExtensionSpec(_key_usage(key_cert_sign=True, crl_sign=True), critical=True),
                )
            case _:
                extensions = [
                    ExtensionSpec(x509.BasicConstraints(ca=False, path_length=None), critical=True),
                    ExtensionSpec(_key_usage(digital_signature=True, key_encipherment=True), critical=True),
                    ExtensionSpec(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False),
                ]
                if sans:
                    extensions.append(ExtensionSpec(
                        x509.SubjectAlternativeName([x509.DNSName(san) for san in sans]), critical=False
                    ))
                return tuple(extensions)
