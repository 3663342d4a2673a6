"""
路由层共享的依赖与错误转换。
"""

from fastapi import HTTPException
from loguru import logger

from src.certstore.config import config
from src.certstore.errors import CertStoreError, http_status_for
from src.certstore.cert.schemas import ValidationPolicy
from src.certstore.storage.memory import MemoryStore, store

_POLICY: ValidationPolicy = config.policy()


def get_store() -> MemoryStore:
    return store


def get_policy() -> ValidationPolicy:
    return _POLICY


def to_http_exception(e: CertStoreError) -> HTTPException:
    """按 STATUS_BY_KIND 把业务错误转换为 HTTPException。"""
    status_code = http_status_for(e.kind)
    if status_code >= 500:
        logger.error(f"未映射的业务错误: {e!r}")
    return HTTPException(status_code=status_code, detail=e.to_dict())


def internal_error(e: Exception) -> HTTPException:
    logger.exception(f"内部服务器错误: {e}")
    return HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")
