from cryptography import x509
from cryptography.hazmat.primitives import hashes

from ..errors import SigningKeyUnavailable
from ..structures.cert_template import CertTemplate
from ..structures.signing_identity import SigningIdentity
from ..logs.loggers import core_logger
from .key_factory import KeyFactory


class CertificateSigner:
    """
    Turns a template plus the subject's public key into a certificate
    signed by a signing identity. Self-signing is the case where the
    identity is the subject itself, there is no separate code path for it.
    """

    def sign(self, template: CertTemplate, subject_public_key,
             signing_identity: SigningIdentity) -> x509.Certificate:
        """
        :type template: CertTemplate
        :param template: Subject, issuer, serial, validity and role extensions.

        :param subject_public_key: Public half of the subject's key pair.

        :type signing_identity: SigningIdentity
        :param signing_identity: Key and name of the signer (the parent CA, or the root itself).

        :rtype: x509.Certificate
        :returns: The signed certificate, issuer fields equal to the signer's subject.

        :raises SigningKeyUnavailable: If the signer has no usable key or doesn't fit the template.
        """
        self._check_identity(template, subject_public_key, signing_identity)

        builder = x509.CertificateBuilder()
        builder = builder.subject_name(template.subject)
        builder = builder.issuer_name(signing_identity.name)
        builder = builder.public_key(subject_public_key)
        builder = builder.serial_number(template.serial_number)
        builder = builder.not_valid_before(template.not_valid_before)
        builder = builder.not_valid_after(template.not_valid_after)

        for extension in template.extensions:
            builder = builder.add_extension(extension.value, critical=extension.critical)

        builder = builder.add_extension(
            x509.SubjectKeyIdentifier.from_public_key(subject_public_key), critical=False
        )
        builder = builder.add_extension(self._authority_key_id(signing_identity), critical=False)

        certificate = builder.sign(private_key=signing_identity.private_key, algorithm=hashes.SHA256())

        core_logger.debug(
            f"Signed {template.role.value} certificate {certificate.serial_number:x} "
            f"for {template.subject.rfc4514_string()} by {signing_identity.name.rfc4514_string()}"
        )
        return certificate

    def _check_identity(self, template: CertTemplate, subject_public_key, identity: SigningIdentity):
        if identity.private_key is None:
            raise SigningKeyUnavailable(f"No signing key for {identity.name.rfc4514_string()}")

        if identity.certificate is not None and not KeyFactory.keys_match(identity.private_key, identity.certificate):
            raise SigningKeyUnavailable(
                f"Signing key doesn't belong to the certificate of {identity.name.rfc4514_string()}"
            )

        if template.issuer != identity.name:
            raise SigningKeyUnavailable(
                f"Template expects issuer {template.issuer.rfc4514_string()}, "
                f"signer is {identity.name.rfc4514_string()}"
            )

        if template.is_self_issued:
            signer_key = KeyFactory.public_key_bytes(identity.public_key)
            if signer_key != KeyFactory.public_key_bytes(subject_public_key):
                raise SigningKeyUnavailable("A self-issued certificate must be signed with its own key")

    def _authority_key_id(self, identity: SigningIdentity) -> x509.AuthorityKeyIdentifier:
        if identity.certificate is not None:
            try:
                ski = identity.certificate.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
                return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski.value)
            except x509.ExtensionNotFound:
                pass
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(identity.public_key)
