"""
错误类型定义与错误种类到 HTTP 状态码的映射表。

公开接口：
- ErrorKind: 封闭的错误种类枚举
- CertStoreError: 携带结构化上下文的异常
- STATUS_BY_KIND / http_status_for: 错误种类 -> HTTP 状态码
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    # 证书 / 私钥校验
    INVALID_PEM_BLOCK = "InvalidPEMBlock"
    INVALID_CERTIFICATE_PEM = "InvalidCertificatePEM"
    MISSING_PRIVATE_KEY = "MissingPrivateKey"
    DSA_NOT_SUPPORTED = "DSANotSupported"
    INVALID_PRIVATE_KEY = "InvalidPrivateKey"
    INVALID_CERTIFICATE_ID = "InvalidCertificateId"
    KEY_TOO_SMALL = "KeyTooSmall"
    VERIFICATION_FAILED = "VerificationFailed"
    MALFORMED_ENCODING = "MalformedEncoding"
    # 用户 / API
    INVALID_USER_ID = "InvalidUserId"
    INVALID_USER_NAME = "InvalidUserName"
    INVALID_USER_EMAIL = "InvalidUserEmail"
    NOT_FOUND = "NotFound"
    BAD_REQUEST = "BadRequest"


DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_PEM_BLOCK: "Invalid PEM Block. Please only include a single PEM Block per field.",
    ErrorKind.INVALID_CERTIFICATE_PEM: "Invalid Certificate",
    ErrorKind.MISSING_PRIVATE_KEY: "No Private Key provided.",
    ErrorKind.DSA_NOT_SUPPORTED: "DSA Is not supported. Please use RSA or ECDSA.",
    ErrorKind.INVALID_PRIVATE_KEY: "Invalid Private Key. The provided key does not match the certificate.",
    ErrorKind.INVALID_CERTIFICATE_ID: (
        "Invalid Certificate ID. The Certificate ID is the SHA256 hash (hex-encoded) "
        "of the Certificate data (DER-encoded)"
    ),
    ErrorKind.KEY_TOO_SMALL: "The key is of insufficient length to provide good security.",
    ErrorKind.VERIFICATION_FAILED: "Certificate chain verification failed.",
    ErrorKind.MALFORMED_ENCODING: "Malformed encoding.",
    ErrorKind.INVALID_USER_ID: "Invalid User. The User ID is malformed.",
    ErrorKind.INVALID_USER_NAME: "Invalid User. The User Name is missing or too long.",
    ErrorKind.INVALID_USER_EMAIL: "Invalid User. The User email is malformed.",
    ErrorKind.NOT_FOUND: "Not Found",
    ErrorKind.BAD_REQUEST: "Bad Request",
}


class CertStoreError(Exception):
    """
    所有业务错误的唯一异常类型。
    :param kind: 错误种类。
    :param message: 人类可读的信息，缺省时使用 DEFAULT_MESSAGES。
    :param field: 出错的字段名（如 cert / key / id）。
    :param expected: 期望值（如期望的证书 ID、最小位数）。
    :param actual: 实际值。
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        *,
        field: str | None = None,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.field is not None:
            data["field"] = self.field
        if self.expected is not None:
            data["expected"] = self.expected
        if self.actual is not None:
            data["actual"] = self.actual
        return data

    def __repr__(self) -> str:
        return f"CertStoreError({self.kind.value!r}, {self.message!r})"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_PEM_BLOCK: 400,
    ErrorKind.INVALID_CERTIFICATE_PEM: 400,
    ErrorKind.MISSING_PRIVATE_KEY: 400,
    ErrorKind.DSA_NOT_SUPPORTED: 400,
    ErrorKind.INVALID_PRIVATE_KEY: 400,
    ErrorKind.INVALID_CERTIFICATE_ID: 400,
    ErrorKind.KEY_TOO_SMALL: 400,
    ErrorKind.VERIFICATION_FAILED: 400,
    ErrorKind.MALFORMED_ENCODING: 400,
    ErrorKind.INVALID_USER_ID: 400,
    ErrorKind.INVALID_USER_NAME: 400,
    ErrorKind.INVALID_USER_EMAIL: 400,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.NOT_FOUND: 404,
}


def http_status_for(kind: ErrorKind) -> int:
    """未登记的错误种类一律视为服务器错误。"""
    return STATUS_BY_KIND.get(kind, 500)
