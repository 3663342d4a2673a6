"""
证书 CRUD 的业务逻辑层。
此模块把核心校验与存储组合起来，供路由层调用。
"""

from typing import List

from loguru import logger

from src.certstore.errors import CertStoreError, ErrorKind
from src.certstore.cert import core
from src.certstore.cert.schemas import ActivePatch, CertificateData, ValidationPolicy
from src.certstore.storage.memory import MemoryStore, ShowCerts
from src.certstore.user.schemas import DeleteResponse

CERT_ID_LENGTH = 64


def check_user_path_id(user_id: str) -> str:
    """
    路径中的用户 ID 必须是正整数，否则直接视为不存在。
    """
    if not (user_id.isascii() and user_id.isdigit()) or int(user_id) <= 0:
        raise CertStoreError(ErrorKind.NOT_FOUND, "User Not Found", field="user_id", actual=user_id)
    return user_id


def check_cert_path_id(cert_id: str) -> str:
    if len(cert_id) != CERT_ID_LENGTH:
        raise CertStoreError(ErrorKind.NOT_FOUND, "Certificate Not Found", field="cert_id", actual=cert_id)
    return cert_id


def create_certificate_service(
    user_id: str, data: CertificateData, policy: ValidationPolicy, store: MemoryStore
) -> CertificateData:
    """
    校验、规范化并保存一个证书。
    :param user_id: 路径中的用户 ID，请求体里的 userId 为空时以此为准。
    :return: 规范化后的线上格式。
    :raises CertStoreError: 校验失败、用户不存在或证书已存在。
    """
    check_user_path_id(user_id)
    if data.user_id and data.user_id != user_id:
        raise CertStoreError(
            ErrorKind.BAD_REQUEST,
            "The certificate userId does not match the user in the path",
            field="userId",
            expected=user_id,
            actual=data.user_id,
        )

    try:
        normalized = core.normalize_wire(data.model_copy(update={"user_id": user_id}), policy)
    except CertStoreError as e:
        logger.warning(f"用户 {user_id} 提交的证书未通过校验: {e.kind.value}: {e.message}")
        raise

    store.create_cert(normalized)
    logger.info(f"用户 {user_id} 新增证书 {normalized.id}")
    return normalized


def read_certificate_service(user_id: str, cert_id: str, store: MemoryStore) -> CertificateData:
    return store.read_cert(check_user_path_id(user_id), check_cert_path_id(cert_id))


def update_certificate_active_service(
    user_id: str, cert_id: str, patch: ActivePatch, store: MemoryStore
) -> CertificateData:
    """只切换 active 标志，不重新执行校验。"""
    check_user_path_id(user_id)
    check_cert_path_id(cert_id)
    store.update_active(user_id, cert_id, patch.active)
    logger.info(f"证书 {cert_id} active={patch.active}")
    return store.read_cert(user_id, cert_id)


def delete_certificate_service(user_id: str, cert_id: str, store: MemoryStore) -> DeleteResponse:
    check_user_path_id(user_id)
    check_cert_path_id(cert_id)
    store.delete_cert(user_id, cert_id)
    logger.info(f"删除用户 {user_id} 的证书 {cert_id}")
    return DeleteResponse(id=cert_id)


def list_certificates_service(
    user_id: str, show: ShowCerts, store: MemoryStore
) -> List[CertificateData]:
    check_user_path_id(user_id)
    store.read_user(user_id)
    return store.list_for_user(user_id, show)
