"""
证书链校验（verify_chain 开启时）的测试。
"""

from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from src.certstore.cert import core
from src.certstore.cert.schemas import ValidationPolicy
from src.certstore.config import Config
from src.certstore.errors import CertStoreError, ErrorKind


def _key_usage(**kwargs) -> x509.KeyUsage:
    flags = dict(
        digital_signature=False,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )
    flags.update(kwargs)
    return x509.KeyUsage(**flags)


def _create_ca() -> Tuple[ec.EllipticCurvePrivateKey, x509.Certificate]:
    ca_key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "certstore"),
        x509.NameAttribute(NameOID.COMMON_NAME, "certstore Test Root CA"),
    ])
    now = datetime.now(timezone.utc)
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True, key_cert_sign=True, crl_sign=True), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
        .sign(private_key=ca_key, algorithm=hashes.SHA256())
    )
    return ca_key, ca_cert


def _issue_leaf(
    ca_key,
    ca_cert,
    usages: List[x509.ObjectIdentifier] | None = None,
    dns_name: str | None = None,
    with_aki: bool = True,
) -> Tuple[ec.EllipticCurvePrivateKey, x509.Certificate]:
    """由测试 CA 签发叶子证书；usages / dns_name 为 None 时不写入对应扩展。"""
    leaf_key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "leaf-1")]))
        .issuer_name(ca_cert.subject)
        .public_key(leaf_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(leaf_key.public_key()), critical=False)
    )
    if usages is not None:
        builder = builder.add_extension(x509.ExtendedKeyUsage(usages), critical=False)
    if dns_name is not None:
        builder = builder.add_extension(x509.SubjectAlternativeName([x509.DNSName(dns_name)]), critical=False)
    if with_aki:
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()), critical=False
        )
    return leaf_key, builder.sign(ca_key, hashes.SHA256())


@pytest.fixture(scope="module")
def ca():
    return _create_ca()


@pytest.fixture(scope="module")
def chain(ca):
    ca_key, ca_cert = ca
    node_key, node_cert = _issue_leaf(
        ca_key, ca_cert, usages=[ExtendedKeyUsageOID.CLIENT_AUTH], dns_name="client-1.example.com"
    )
    return ca_cert, node_key, node_cert


@pytest.fixture
def chain_policy(ca) -> ValidationPolicy:
    _, ca_cert = ca
    return ValidationPolicy(verify_chain=True, trust_anchors=(ca_cert,))


@pytest.fixture
def anchor_file(tmp_path, ca):
    _, ca_cert = ca
    path = tmp_path / "anchors.pem"
    path.write_bytes(ca_cert.public_bytes(serialization.Encoding.PEM))
    return path


def test_chain_verification_accepts_issued_certificate(chain, chain_policy, wire):
    _, node_key, node_cert = chain
    record = core.from_wire(wire(node_cert, node_key), chain_policy)
    assert record.certificate == node_cert


def test_chain_verification_accepts_server_auth_leaf(ca, chain_policy, wire):
    ca_key, ca_cert = ca
    leaf_key, leaf = _issue_leaf(
        ca_key, ca_cert, usages=[ExtendedKeyUsageOID.SERVER_AUTH], dns_name="www.example.com"
    )
    assert core.from_wire(wire(leaf, leaf_key), chain_policy).certificate == leaf


def test_chain_verification_accepts_leaf_without_san_or_usage(ca, chain_policy, wire):
    ca_key, ca_cert = ca
    leaf_key, leaf = _issue_leaf(ca_key, ca_cert, with_aki=False)
    assert core.from_wire(wire(leaf, leaf_key), chain_policy).certificate == leaf


def test_chain_verification_rejects_unrelated_usage(ca, chain_policy, wire):
    ca_key, ca_cert = ca
    leaf_key, leaf = _issue_leaf(ca_key, ca_cert, usages=[ExtendedKeyUsageOID.CODE_SIGNING])
    with pytest.raises(CertStoreError) as ei:
        core.from_wire(wire(leaf, leaf_key), chain_policy)
    assert ei.value.kind is ErrorKind.VERIFICATION_FAILED


def test_chain_verification_rejects_untrusted_certificate(ec_key, self_signed, chain_policy, wire):
    with pytest.raises(CertStoreError) as ei:
        core.from_wire(wire(self_signed(ec_key), ec_key), chain_policy)
    assert ei.value.kind is ErrorKind.VERIFICATION_FAILED


def test_chain_verification_runs_before_identity_check(ec_key, self_signed, chain_policy, wire):
    with pytest.raises(CertStoreError) as ei:
        core.from_wire(wire(self_signed(ec_key), ec_key, cert_id="f" * 64), chain_policy)
    assert ei.value.kind is ErrorKind.VERIFICATION_FAILED


def test_chain_verification_without_anchors(chain, wire):
    _, node_key, node_cert = chain
    with pytest.raises(CertStoreError) as ei:
        core.from_wire(wire(node_cert, node_key), ValidationPolicy(verify_chain=True))
    assert ei.value.kind is ErrorKind.VERIFICATION_FAILED


def test_chain_verification_off_by_default(ec_key, self_signed, wire, policy):
    # 默认关闭链校验，自签证书可以通过
    assert policy.verify_chain is False
    core.from_wire(wire(self_signed(ec_key), ec_key), policy)


def test_policy_keeps_anchors_loaded_at_startup(chain, anchor_file, wire):
    _, node_key, node_cert = chain
    policy = Config(verify_certificate=True, trust_anchor_file=str(anchor_file)).policy()
    core.from_wire(wire(node_cert, node_key), policy)

    anchor_file.unlink()

    assert core.from_wire(wire(node_cert, node_key), policy).certificate == node_cert


def test_policy_dump_omits_anchors(chain_policy):
    assert "trust_anchors" not in chain_policy.model_dump()
    assert chain_policy.model_dump()["verify_chain"] is True
