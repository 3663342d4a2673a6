"""
证书校验与规范化的核心逻辑实现。
包括 PEM 规范化、证书/私钥解码、内容寻址 ID、私钥与证书一致性校验，
以及线上格式 (CertificateData) 与内存记录 (Certificate) 之间的双向转换。

所有函数均为纯函数：不读写共享状态，策略通过 ValidationPolicy 显式传入。
"""

import base64
import binascii
import hashlib
import re
import textwrap
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)
from cryptography.x509.oid import ExtendedKeyUsageOID
from cryptography.x509.verification import (
    Criticality,
    ExtensionPolicy,
    PolicyBuilder,
    Store,
    VerificationError,
)
from loguru import logger

from src.certstore.errors import CertStoreError, ErrorKind
from src.certstore.cert.schemas import (
    Certificate,
    CertificateData,
    KeyType,
    TypedPrivateKey,
    ValidationPolicy,
)

PEM_DELIMITER = "-----"
PEM_LINE_WIDTH = 64

CERTIFICATE_PEM_TYPE = "CERTIFICATE"
DSA_PEM_TYPE = "DSA PRIVATE KEY"

# PEM 类型 -> 期望的私钥类型；PKCS#8 的 "PRIVATE KEY" 由内嵌的算法标识决定
_KEY_KIND_BY_PEM_TYPE: Dict[str, KeyType | None] = {
    "RSA PRIVATE KEY": KeyType.RSA,
    "EC PRIVATE KEY": KeyType.EC,
    "PRIVATE KEY": None,
}

_PEM_TYPE_BY_KEY_KIND: Dict[KeyType, str] = {
    KeyType.RSA: "RSA PRIVATE KEY",
    KeyType.EC: "EC PRIVATE KEY",
}

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN (?P<type>[^-\r\n]*)-----(?P<body>.*?)-----END (?P=type)-----",
    re.DOTALL,
)


@dataclass(frozen=True)
class PEMBlock:
    type: str
    der: bytes
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DecodedCertificate:
    certificate: x509.Certificate
    public_key: object
    der: bytes


# ---------------------------------------------------------------------------
# PEM
# ---------------------------------------------------------------------------


def normalize_pem(wire_pem: str, field_name: str = "cert") -> bytes:
    """
    将传输安全的 PEM（正文换行被替换为空格）还原为标准 PEM。
    :param wire_pem: 线上格式的 PEM 文本。
    :param field_name: 字段名，仅用于错误上下文。
    :return: 标准 PEM 字节串。
    :raises CertStoreError: InvalidPEMBlock，当文本不是恰好一个 PEM 块时。
    """
    parts = wire_pem.split(PEM_DELIMITER)
    # 合法的单个 PEM 块：["", "BEGIN X", 正文, "END X", ""]
    if len(parts) != 5:
        raise CertStoreError(
            ErrorKind.INVALID_PEM_BLOCK,
            field=field_name,
            expected=5,
            actual=len(parts),
        )
    parts[2] = parts[2].replace(" ", "\n")
    return PEM_DELIMITER.join(parts).encode("utf-8")


def escape_pem(pem: bytes) -> str:
    """normalize_pem 的逆操作：把正文中的换行替换为空格。"""
    parts = pem.decode("ascii").split(PEM_DELIMITER)
    parts[2] = parts[2].replace("\n", " ")
    return PEM_DELIMITER.join(parts).rstrip("\n")


def encode_pem(pem_type: str, der: bytes) -> bytes:
    body = "\n".join(textwrap.wrap(base64.b64encode(der).decode("ascii"), PEM_LINE_WIDTH))
    return f"-----BEGIN {pem_type}-----\n{body}\n-----END {pem_type}-----\n".encode("ascii")


def decode_pem_block(data: bytes) -> PEMBlock | None:
    """
    解码输入中的第一个 PEM 块，找不到或正文不是合法 base64 时返回 None。
    """
    match = _PEM_BLOCK_RE.search(data)
    if match is None:
        return None

    headers: Dict[str, str] = {}
    payload: List[bytes] = []
    for line in match.group("body").splitlines():
        line = line.strip()
        if not line:
            continue
        if b":" in line:
            name, _, value = line.partition(b":")
            headers[name.strip().decode("ascii", "replace")] = value.strip().decode("ascii", "replace")
            continue
        payload.append(line)

    try:
        der = base64.b64decode(b"".join(payload), validate=True)
    except (binascii.Error, ValueError):
        return None
    return PEMBlock(type=match.group("type").decode("ascii", "replace"), der=der, headers=headers)


# ---------------------------------------------------------------------------
# 解码
# ---------------------------------------------------------------------------


def decode_certificate(pem: bytes) -> DecodedCertificate:
    """
    从标准 PEM 中解析 X.509 证书。
    :raises CertStoreError: InvalidCertificatePEM / MalformedEncoding
    """
    block = decode_pem_block(pem)
    if block is None or block.type != CERTIFICATE_PEM_TYPE:
        raise CertStoreError(
            ErrorKind.INVALID_CERTIFICATE_PEM,
            field="cert",
            expected=CERTIFICATE_PEM_TYPE,
            actual=block.type if block else None,
        )

    try:
        certificate = x509.load_der_x509_certificate(block.der)
        public_key = certificate.public_key()
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CertStoreError(
            ErrorKind.MALFORMED_ENCODING, f"无法解析证书: {e}", field="cert"
        ) from e

    return DecodedCertificate(certificate=certificate, public_key=public_key, der=block.der)


def decode_private_key(pem: bytes) -> TypedPrivateKey:
    """
    按 PEM 块类型严格分派解析私钥，只接受 RSA 与 EC。
    :raises CertStoreError: MissingPrivateKey / DSANotSupported / InvalidPrivateKey / MalformedEncoding
    """
    block = decode_pem_block(pem)
    if block is None:
        raise CertStoreError(ErrorKind.MISSING_PRIVATE_KEY, field="key")
    if block.type == DSA_PEM_TYPE:
        raise CertStoreError(ErrorKind.DSA_NOT_SUPPORTED, field="key")
    if block.type not in _KEY_KIND_BY_PEM_TYPE:
        raise CertStoreError(ErrorKind.MISSING_PRIVATE_KEY, field="key", actual=block.type)
    if "Proc-Type" in block.headers:
        raise CertStoreError(ErrorKind.MALFORMED_ENCODING, "不支持加密的私钥", field="key")

    try:
        # 以规范 PEM 重新加载，由块类型决定解析格式
        key = serialization.load_pem_private_key(encode_pem(block.type, block.der), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CertStoreError(
            ErrorKind.MALFORMED_ENCODING, f"无法解析私钥: {e}", field="key"
        ) from e

    if isinstance(key, dsa.DSAPrivateKey):
        raise CertStoreError(ErrorKind.DSA_NOT_SUPPORTED, field="key")

    typed = TypedPrivateKey.wrap(key)
    if typed is None:
        raise CertStoreError(
            ErrorKind.INVALID_PRIVATE_KEY,
            "Invalid Private Key. Only RSA and EC keys are supported.",
            field="key",
            actual=type(key).__name__,
        )

    expected = _KEY_KIND_BY_PEM_TYPE[block.type]
    if expected is not None and typed.kind is not expected:
        raise CertStoreError(
            ErrorKind.MALFORMED_ENCODING,
            f"PEM 类型 {block.type} 与私钥算法 {typed.kind.value} 不符",
            field="key",
            expected=expected.value,
            actual=typed.kind.value,
        )
    return typed


# ---------------------------------------------------------------------------
# 内容寻址 ID
# ---------------------------------------------------------------------------


def certificate_id(der: bytes) -> str:
    """证书 ID = DER 字节的 SHA-256（小写 hex）。"""
    return hashlib.sha256(der).hexdigest()


def resolve_certificate_id(supplied_id: str, der: bytes) -> str:
    """
    为空时推导 ID；无论是否由调用方提供，都重新计算并比对。
    :raises CertStoreError: InvalidCertificateId
    """
    expected = certificate_id(der)
    resolved = supplied_id or expected
    if resolved != expected:
        raise CertStoreError(
            ErrorKind.INVALID_CERTIFICATE_ID,
            field="id",
            expected=expected,
            actual=supplied_id,
        )
    return resolved


# ---------------------------------------------------------------------------
# 一致性校验
# ---------------------------------------------------------------------------


# 叶子证书只做路径校验：SAN 与 AKI 可有可无，EKU 存在时须包含下列用途之一
_ACCEPTED_LEAF_USAGES = frozenset({
    ExtendedKeyUsageOID.SERVER_AUTH,
    ExtendedKeyUsageOID.CLIENT_AUTH,
    ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE,
})


def _check_leaf_usage(_policy, _certificate: x509.Certificate, usage: x509.ExtendedKeyUsage | None) -> None:
    if usage is not None and not _ACCEPTED_LEAF_USAGES.intersection(usage):
        raise ValueError("叶子证书的扩展密钥用途不包含 serverAuth / clientAuth")


_LEAF_EXTENSIONS = (
    ExtensionPolicy.webpki_defaults_ee()
    .may_be_present(x509.SubjectAlternativeName, Criticality.AGNOSTIC, None)
    .may_be_present(x509.AuthorityKeyIdentifier, Criticality.AGNOSTIC, None)
    .may_be_present(x509.ExtendedKeyUsage, Criticality.AGNOSTIC, _check_leaf_usage)
)


def verify_chain(certificate: x509.Certificate, policy: ValidationPolicy) -> None:
    """
    以策略中预先加载的信任锚做标准路径校验。
    :raises CertStoreError: VerificationFailed
    """
    if not policy.trust_anchors:
        raise CertStoreError(ErrorKind.VERIFICATION_FAILED, "未配置信任锚证书")
    try:
        verifier = (
            PolicyBuilder()
            .store(Store(list(policy.trust_anchors)))
            .extension_policies(ca_policy=ExtensionPolicy.webpki_defaults_ca(), ee_policy=_LEAF_EXTENSIONS)
            .build_client_verifier()
        )
        verifier.verify(certificate, [])
    except (VerificationError, ValueError) as e:
        raise CertStoreError(ErrorKind.VERIFICATION_FAILED, f"证书链校验失败: {e}") from e


def _describe_public_key(public_key: object) -> str:
    if isinstance(public_key, rsa.RSAPublicKey):
        return KeyType.RSA.value
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return KeyType.EC.value
    return type(public_key).__name__


def _check_rsa_key_matches(public_key: object, key: rsa.RSAPrivateKey) -> None:
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise CertStoreError(
            ErrorKind.INVALID_PRIVATE_KEY,
            field="key",
            expected=_describe_public_key(public_key),
            actual=KeyType.RSA.value,
        )
    if key.private_numbers().public_numbers.n != public_key.public_numbers().n:
        raise CertStoreError(ErrorKind.INVALID_PRIVATE_KEY, field="key")


def _check_ec_key_matches(public_key: object, key: ec.EllipticCurvePrivateKey) -> None:
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise CertStoreError(
            ErrorKind.INVALID_PRIVATE_KEY,
            field="key",
            expected=_describe_public_key(public_key),
            actual=KeyType.EC.value,
        )
    private_point = key.private_numbers().public_numbers
    cert_point = public_key.public_numbers()
    if (
        private_point.curve.name != cert_point.curve.name
        or private_point.x != cert_point.x
        or private_point.y != cert_point.y
    ):
        raise CertStoreError(ErrorKind.INVALID_PRIVATE_KEY, field="key")


def _check_rsa_key_size(key: rsa.RSAPrivateKey, policy: ValidationPolicy) -> None:
    bits = key.private_numbers().public_numbers.n.bit_length()
    if bits < policy.minimum_rsa_bits:
        raise CertStoreError(
            ErrorKind.KEY_TOO_SMALL,
            f"RSA 模数位数 {bits} 低于最小要求 {policy.minimum_rsa_bits}",
            field="key",
            expected=policy.minimum_rsa_bits,
            actual=bits,
        )


def _check_ec_key_size(key: ec.EllipticCurvePrivateKey, policy: ValidationPolicy) -> None:
    # 以命名曲线的位数衡量强度，而不是坐标值本身的位长
    bits = key.curve.key_size
    if bits < policy.minimum_ec_bits:
        raise CertStoreError(
            ErrorKind.KEY_TOO_SMALL,
            f"EC 曲线 {key.curve.name} 位数 {bits} 低于最小要求 {policy.minimum_ec_bits}",
            field="key",
            expected=policy.minimum_ec_bits,
            actual=bits,
        )


_KEY_MATCHERS: Dict[KeyType, Callable[[object, object], None]] = {
    KeyType.RSA: _check_rsa_key_matches,
    KeyType.EC: _check_ec_key_matches,
}

_KEY_SIZE_CHECKS: Dict[KeyType, Callable[[object, ValidationPolicy], None]] = {
    KeyType.RSA: _check_rsa_key_size,
    KeyType.EC: _check_ec_key_size,
}


def check_key_matches(public_key: object, private_key: TypedPrivateKey) -> None:
    """私钥的公钥部分必须与证书公钥一致，且算法相同。"""
    _KEY_MATCHERS[private_key.kind](public_key, private_key.key)


def check_key_size(private_key: TypedPrivateKey, policy: ValidationPolicy) -> None:
    _KEY_SIZE_CHECKS[private_key.kind](private_key.key, policy)


def validate_certificate(
    certificate: x509.Certificate,
    private_key: TypedPrivateKey,
    supplied_id: str,
    policy: ValidationPolicy,
    der: bytes | None = None,
) -> str:
    """
    依次执行：可选的证书链校验、ID 校验、私钥/证书一致性、最小密钥长度。
    :param der: 证书的原始 DER 字节，缺省时由证书对象导出。
    :return: 校验通过的证书 ID。
    :raises CertStoreError: 任一步骤失败时立即抛出。
    """
    if policy.verify_chain:
        verify_chain(certificate, policy)

    if der is None:
        der = certificate.public_bytes(Encoding.DER)
    cert_id = resolve_certificate_id(supplied_id, der)

    check_key_matches(certificate.public_key(), private_key)
    check_key_size(private_key, policy)
    return cert_id


# ---------------------------------------------------------------------------
# 线上格式 <-> 内存记录
# ---------------------------------------------------------------------------


def from_wire(data: CertificateData, policy: ValidationPolicy) -> Certificate:
    """
    将线上格式解码为校验通过的证书记录，任一步失败都不会产生记录。
    """
    decoded = decode_certificate(normalize_pem(data.cert, "cert"))
    private_key = decode_private_key(normalize_pem(data.key, "key"))

    cert_id = validate_certificate(
        decoded.certificate, private_key, data.id, policy, der=decoded.der
    )
    if not data.id:
        logger.debug(f"证书 ID 由内容推导: {cert_id}")

    return Certificate(
        id=cert_id,
        user_id=data.user_id,
        active=data.active,
        certificate=decoded.certificate,
        private_key=private_key,
    )


def to_wire(cert: Certificate) -> CertificateData:
    """
    将证书记录编码为线上格式；私钥块类型严格按私钥实际类型标注。
    """
    cert_pem = encode_pem(CERTIFICATE_PEM_TYPE, cert.certificate.public_bytes(Encoding.DER))
    key_der = cert.private_key.key.private_bytes(
        encoding=Encoding.DER,
        format=PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=NoEncryption(),
    )
    key_pem = encode_pem(_PEM_TYPE_BY_KEY_KIND[cert.private_key.kind], key_der)

    return CertificateData(
        id=cert.id,
        user_id=cert.user_id,
        active=cert.active,
        cert=escape_pem(cert_pem),
        key=escape_pem(key_pem),
    )


def normalize_wire(data: CertificateData, policy: ValidationPolicy) -> CertificateData:
    """校验并重新编码：from_wire 之后立即 to_wire。"""
    return to_wire(from_wire(data, policy))
