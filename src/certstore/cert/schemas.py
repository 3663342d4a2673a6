"""
证书存储服务的数据模型定义。

公开接口：
- ValidationPolicy: 不可变的校验策略（链校验开关、信任锚、最小密钥位数）
- KeyType / TypedPrivateKey: RSA / EC 二选一的私钥标签类型
- Certificate: 校验通过后的内存记录
- CertificateData: 线上传输格式（PEM 中的换行以空格代替）
- ActivePatch: 切换证书 active 状态的请求体
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from pydantic import BaseModel, ConfigDict, Field


class ValidationPolicy(BaseModel):
    """
    进程级的校验策略，构造后只读，可以在并发调用间随意共享。
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    verify_chain: bool = Field(default=False, description="是否对证书做完整的信任链校验")
    minimum_rsa_bits: int = Field(default=1024, ge=1, description="RSA 模数的最小位数")
    minimum_ec_bits: int = Field(default=160, ge=1, description="EC 曲线的最小位数")
    # 构造策略时一次性加载，校验过程中不再读取文件
    trust_anchors: Tuple[x509.Certificate, ...] = Field(
        default=(), exclude=True, repr=False, description="已解析的信任锚证书"
    )


class KeyType(str, Enum):
    RSA = "RSA"
    EC = "EC"


@dataclass(frozen=True, eq=False)
class TypedPrivateKey:
    """私钥的封闭标签类型，kind 与 key 的实际类型始终一致。"""

    kind: KeyType
    key: Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]

    def __post_init__(self) -> None:
        if self.kind is KeyType.RSA and not isinstance(self.key, rsa.RSAPrivateKey):
            raise TypeError("kind=RSA requires an RSAPrivateKey")
        if self.kind is KeyType.EC and not isinstance(self.key, ec.EllipticCurvePrivateKey):
            raise TypeError("kind=EC requires an EllipticCurvePrivateKey")

    @classmethod
    def wrap(cls, key: object) -> "TypedPrivateKey | None":
        """按 cryptography 的密钥类型打标签，非 RSA/EC 返回 None。"""
        if isinstance(key, rsa.RSAPrivateKey):
            return cls(KeyType.RSA, key)
        if isinstance(key, ec.EllipticCurvePrivateKey):
            return cls(KeyType.EC, key)
        return None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypedPrivateKey):
            return NotImplemented
        return self.kind is other.kind and self.key.private_numbers() == other.key.private_numbers()

    def __hash__(self) -> int:
        return hash((self.kind, self.key.public_key().public_numbers()))


@dataclass(frozen=True)
class Certificate:
    """
    校验通过的证书记录。
    只能由 core.from_wire 构造；密码学字段创建后不可变，active 通过 with_active 切换。
    """

    id: str
    user_id: str
    active: bool
    certificate: x509.Certificate
    private_key: TypedPrivateKey

    def with_active(self, active: bool) -> "Certificate":
        return dataclasses.replace(self, active=active)


class CertificateData(BaseModel):
    """
    证书的线上传输格式。
    cert / key 为 PEM 文本，其中 base64 正文的换行被替换为单个空格，BEGIN/END 行保持不变。
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    user_id: str = Field(default="", alias="userId")
    active: bool = False
    cert: str
    key: str


class ActivePatch(BaseModel):
    """切换证书启用状态的请求体。"""

    active: bool
