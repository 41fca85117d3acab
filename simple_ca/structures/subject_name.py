from dataclasses import dataclass, replace

from cryptography import x509
from cryptography.x509.oid import NameOID

from ..errors import InvalidSubject


@dataclass(frozen=True)
class SubjectName:
    """
    Distinguished name fields of a certificate subject.
    Empty fields are left out of the encoded X.509 name.
    """

    country: str = ""
    state_or_province: str = ""
    locality: str = ""
    organization: str = ""
    organization_unit: str = ""
    common_name: str = ""

    def copy(self, common_name: str) -> "SubjectName":
        """Same name with a different common name."""
        return replace(self, common_name=common_name)

    def to_x509_name(self) -> x509.Name:
        """
        :raises InvalidSubject: If a field breaks its X.509 rules, e.g. a country that isn't 2 letters.
        """
        fields = [
            (NameOID.COUNTRY_NAME, self.country),
            (NameOID.STATE_OR_PROVINCE_NAME, self.state_or_province),
            (NameOID.LOCALITY_NAME, self.locality),
            (NameOID.ORGANIZATION_NAME, self.organization),
            (NameOID.ORGANIZATIONAL_UNIT_NAME, self.organization_unit),
            (NameOID.COMMON_NAME, self.common_name),
        ]
        try:
            return x509.Name([x509.NameAttribute(oid, value) for oid, value in fields if value])
        except ValueError as e:
            raise InvalidSubject(f"Invalid distinguished name field: {e}") from e
