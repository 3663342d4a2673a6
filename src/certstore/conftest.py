"""
测试共享的密钥、证书与线上格式构造工具。
"""

from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from src.certstore.cert.schemas import CertificateData, ValidationPolicy


def _escape(pem: bytes) -> str:
    """把 PEM 正文中的换行替换为空格（BEGIN/END 行保持不变）。"""
    parts = pem.decode("ascii").split("-----")
    parts[2] = parts[2].replace("\n", " ")
    return "-----".join(parts)


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def other_ec_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def self_signed():
    """生成自签证书的工厂。"""

    def _make(private_key, common_name: str = "certstore-test") -> x509.Certificate:
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        now = datetime.now(timezone.utc)
        return (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(private_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + timedelta(days=30))
            .sign(private_key, hashes.SHA256())
        )

    return _make


@pytest.fixture(scope="session")
def escape():
    return _escape


@pytest.fixture(scope="session")
def key_pem():
    """按指定格式导出私钥 PEM：traditional 为 PKCS#1 / SEC1，pkcs8 为 PKCS#8。"""

    def _export(private_key, key_format: str = "traditional") -> bytes:
        fmt = (
            serialization.PrivateFormat.PKCS8
            if key_format == "pkcs8"
            else serialization.PrivateFormat.TraditionalOpenSSL
        )
        return private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=fmt,
            encryption_algorithm=serialization.NoEncryption(),
        )

    return _export


@pytest.fixture(scope="session")
def wire(key_pem):
    """构造线上格式 CertificateData 的工厂。"""

    def _make(
        certificate: x509.Certificate,
        private_key,
        *,
        key_format: str = "traditional",
        cert_id: str = "",
        user_id: str = "1",
        active: bool = True,
    ) -> CertificateData:
        return CertificateData(
            id=cert_id,
            user_id=user_id,
            active=active,
            cert=_escape(certificate.public_bytes(serialization.Encoding.PEM)),
            key=_escape(key_pem(private_key, key_format)),
        )

    return _make


@pytest.fixture
def policy() -> ValidationPolicy:
    return ValidationPolicy()
