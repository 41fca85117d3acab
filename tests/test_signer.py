import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec

from simple_ca.certificate.key_factory import KeyFactory
from simple_ca.certificate.signer import CertificateSigner
from simple_ca.certificate.template_builder import CertificateTemplateBuilder
from simple_ca.errors import SigningKeyUnavailable
from simple_ca.structures.role import Role
from simple_ca.structures.signing_identity import SigningIdentity
from simple_ca.structures.subject_name import SubjectName

from conftest import extension

ROOT_NAME = SubjectName(organization="Test", common_name="Test Root CA")
INTERMEDIATE_NAME = ROOT_NAME.copy("Test Intermediate CA")


@pytest.fixture
def signer():
    return CertificateSigner()


@pytest.fixture
def builder():
    return CertificateTemplateBuilder()


@pytest.fixture
def root(signer, builder):
    key = ec.generate_private_key(ec.SECP256R1())
    template = builder.build(Role.ROOT, ROOT_NAME, serial_number=1000)
    cert = signer.sign(template, key.public_key(), SigningIdentity(private_key=key, name=template.subject))
    return KeyFactory.make_bundle(key, cert)


def test_self_signed_root_verifies_against_itself(root):
    cert = root.certificate
    assert cert.issuer == cert.subject
    cert.verify_directly_issued_by(cert)
    assert cert.serial_number == 1000


def test_child_issuer_matches_signer_subject(signer, builder, root):
    key = ec.generate_private_key(ec.SECP256R1())
    template = builder.build(Role.INTERMEDIATE, INTERMEDIATE_NAME,
                             parent=root.certificate.subject, serial_number=2000)

    cert = signer.sign(template, key.public_key(), SigningIdentity.from_bundle(root))

    assert cert.issuer == root.certificate.subject
    cert.verify_directly_issued_by(root.certificate)
    assert KeyFactory.keys_match(key, cert)


def test_key_identifiers_link_child_to_parent(signer, builder, root):
    key = ec.generate_private_key(ec.SECP256R1())
    template = builder.build(Role.INTERMEDIATE, INTERMEDIATE_NAME,
                             parent=root.certificate.subject, serial_number=2000)
    cert = signer.sign(template, key.public_key(), SigningIdentity.from_bundle(root))

    parent_ski = extension(root.certificate, x509.SubjectKeyIdentifier).value
    aki = extension(cert, x509.AuthorityKeyIdentifier).value
    assert aki.key_identifier == parent_ski.digest


def test_signer_without_key(signer, builder, root):
    template = builder.build(Role.INTERMEDIATE, INTERMEDIATE_NAME,
                             parent=root.certificate.subject, serial_number=3)
    identity = SigningIdentity(private_key=None, name=root.certificate.subject, certificate=root.certificate)

    with pytest.raises(SigningKeyUnavailable):
        signer.sign(template, ec.generate_private_key(ec.SECP256R1()).public_key(), identity)


def test_signer_key_not_matching_its_certificate(signer, builder, root):
    template = builder.build(Role.INTERMEDIATE, INTERMEDIATE_NAME,
                             parent=root.certificate.subject, serial_number=3)
    identity = SigningIdentity(private_key=ec.generate_private_key(ec.SECP256R1()),
                               name=root.certificate.subject, certificate=root.certificate)

    with pytest.raises(SigningKeyUnavailable):
        signer.sign(template, ec.generate_private_key(ec.SECP256R1()).public_key(), identity)


def test_template_issuer_must_be_the_signer(signer, builder, root):
    template = builder.build(Role.INTERMEDIATE, INTERMEDIATE_NAME,
                             parent=SubjectName(common_name="Someone Else").to_x509_name(), serial_number=3)

    with pytest.raises(SigningKeyUnavailable):
        signer.sign(template, ec.generate_private_key(ec.SECP256R1()).public_key(),
                    SigningIdentity.from_bundle(root))


def test_root_must_sign_with_its_own_key(signer, builder):
    subject_key = ec.generate_private_key(ec.SECP256R1())
    other_key = ec.generate_private_key(ec.SECP256R1())
    template = builder.build(Role.ROOT, ROOT_NAME, serial_number=1)

    with pytest.raises(SigningKeyUnavailable):
        signer.sign(template, subject_key.public_key(), SigningIdentity(private_key=other_key, name=template.subject))
