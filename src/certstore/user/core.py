"""
用户校验与证书级联规范化。

公开接口：
- validate_user_fields: 校验 id / name / email
- validate_normalize: 校验用户并按输入顺序重新校验、重新编码全部证书
- get_certs: 将用户附带的证书解码为内存记录
"""

import re
from typing import List

from src.certstore.errors import CertStoreError, ErrorKind
from src.certstore.cert import core as cert_core
from src.certstore.cert.schemas import Certificate, ValidationPolicy
from src.certstore.user.schemas import User, UserExtended

# 目前已知最长的人名有 746 个字符
MAX_NAME_LENGTH = 746

_UCS = "\\u00a0-\\ud7ff\\uf900-\\ufdcf\\ufdf0-\\uffef"
_ATEXT = "[a-zA-Z0-9!#$%&'*+\\-/=?^_`{|}~" + _UCS + "]"
_QTEXT = "[\\x01-\\x08\\x0b\\x0c\\x0e-\\x1f\\x7f\\x21\\x23-\\x5b\\x5d-\\x7e" + _UCS + "]"
# 引号内的转义对以 "(" 开头，而不是反斜杠；其余可转义字符已被 qtext 与折叠空白覆盖
_QPAIR = "\\([\\x0d\\x22\\x5c]"
# 折叠空白：可选的 CRLF，其后至少一个空格或制表符
_FWS = "(?:[\\x20\\x09]*\\x0d\\x0a)?[\\x20\\x09]+"
_LOCAL_PART = (
    "(?:" + _ATEXT + "+(?:\\." + _ATEXT + "+)*"
    + '|"(?:(?:' + _FWS + ")?(?:" + _QTEXT + "|" + _QPAIR + "))*(?:" + _FWS + ')?")'
)
_LABEL_EDGE = "[a-zA-Z0-9" + _UCS + "]"
_LABEL_INNER = "[a-zA-Z0-9\\-._~" + _UCS + "]"
_TLD_EDGE = "[a-zA-Z" + _UCS + "]"
_DOMAIN = (
    "(?:(?:" + _LABEL_EDGE + "|" + _LABEL_EDGE + _LABEL_INNER + "*" + _LABEL_EDGE + ")\\.)+"
    + "(?:" + _TLD_EDGE + "|" + _TLD_EDGE + _LABEL_INNER + "*" + _TLD_EDGE + ")\\.?"
)

# 大小写敏感的严格邮箱语法（本地部分支持 dot-atom 与带引号形式，域名至少两级）
EMAIL_RE = re.compile(_LOCAL_PART + "@" + _DOMAIN)


def is_valid_email(email: str) -> bool:
    return EMAIL_RE.fullmatch(email) is not None


def validate_user_id(user_id: str) -> None:
    """用户 ID 为空，或为正整数。"""
    if not user_id:
        return
    if not (user_id.isascii() and user_id.isdigit()) or int(user_id) <= 0:
        raise CertStoreError(ErrorKind.INVALID_USER_ID, field="id", actual=user_id)


def validate_user_fields(user: User | UserExtended) -> None:
    validate_user_id(user.id)
    if len(user.name) > MAX_NAME_LENGTH:
        raise CertStoreError(
            ErrorKind.INVALID_USER_NAME,
            "Invalid User. The User Name is too long.",
            field="name",
            expected=MAX_NAME_LENGTH,
            actual=len(user.name),
        )
    if not is_valid_email(user.email):
        raise CertStoreError(ErrorKind.INVALID_USER_EMAIL, field="email", actual=user.email)


def validate_normalize(user: UserExtended, policy: ValidationPolicy) -> UserExtended:
    """
    校验用户字段，并按输入顺序对每个证书执行 from_wire -> to_wire。
    任一证书失败立即抛出，入参不会被修改。
    :return: 证书已规范化的新 UserExtended。
    """
    validate_user_fields(user)
    normalized = [cert_core.normalize_wire(cert, policy) for cert in user.certs]
    return user.model_copy(update={"certs": normalized})


def get_certs(user: UserExtended, policy: ValidationPolicy) -> List[Certificate]:
    return [cert_core.from_wire(cert, policy) for cert in user.certs]
