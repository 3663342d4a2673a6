"""
用户相关的数据模型定义。
"""

from typing import List

from pydantic import BaseModel, Field

from src.certstore.cert.schemas import CertificateData


class User(BaseModel):
    """
    精简读取时返回的用户：证书只给出 ID 列表。
    """
    id: str = ""
    name: str = ""
    email: str = ""
    certs: List[str] = Field(default_factory=list)


class UserExtended(BaseModel):
    """
    创建用户或扩展读取时使用的用户：证书为完整的线上格式。
    """
    id: str = ""
    name: str = ""
    email: str = ""
    certs: List[CertificateData] = Field(default_factory=list)


class UserPatch(BaseModel):
    """
    PATCH 请求体。id 与 certs 出现在请求中即视为错误。
    """
    id: str = ""
    name: str = ""
    email: str = ""
    certs: List[CertificateData] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    id: str
