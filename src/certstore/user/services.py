"""
用户 CRUD 的业务逻辑层。
"""

from loguru import logger

from src.certstore.errors import CertStoreError, ErrorKind
from src.certstore.cert.schemas import ValidationPolicy
from src.certstore.cert.services import check_user_path_id
from src.certstore.storage.memory import MemoryStore, ShowCerts
from src.certstore.user import core
from src.certstore.user.schemas import DeleteResponse, User, UserExtended, UserPatch


def create_user_service(
    req: UserExtended, policy: ValidationPolicy, store: MemoryStore
) -> UserExtended:
    """
    创建用户，附带的证书全部校验通过后才会整体写入。
    :raises CertStoreError: 请求带有 id、缺少 name/email、或任一证书校验失败。
    """
    if req.id:
        raise CertStoreError(
            ErrorKind.BAD_REQUEST, "No user-id may be specified when POSTing a new user", field="id"
        )
    if not req.name:
        raise CertStoreError(ErrorKind.INVALID_USER_NAME, "Invalid User. The User Name is missing.", field="name")
    if not req.email:
        raise CertStoreError(ErrorKind.INVALID_USER_EMAIL, field="email")

    try:
        normalized = core.validate_normalize(req, policy)
    except CertStoreError as e:
        logger.warning(f"新用户未通过校验: {e.kind.value}: {e.message}")
        raise

    user_id = store.create_user(normalized)
    return store.read_user_extended(user_id)


def read_user_service(user_id: str, store: MemoryStore) -> User:
    return store.read_user(check_user_path_id(user_id))


def read_user_extended_service(user_id: str, show: ShowCerts, store: MemoryStore) -> UserExtended:
    return store.read_user_extended(check_user_path_id(user_id), show)


def update_user_service(user_id: str, patch: UserPatch, store: MemoryStore) -> User:
    """
    PATCH 用户：只允许修改 name / email。
    """
    check_user_path_id(user_id)
    if patch.id:
        raise CertStoreError(ErrorKind.BAD_REQUEST, "The user-id may not be updated in a PATCH request", field="id")
    if patch.certs:
        raise CertStoreError(
            ErrorKind.BAD_REQUEST, "The user certificates may not be updated in a PATCH request", field="certs"
        )

    user = store.read_user(user_id)
    updates = {}
    if patch.name:
        updates["name"] = patch.name
    if patch.email:
        updates["email"] = patch.email
    user = user.model_copy(update=updates)

    core.validate_user_fields(user)
    store.update_user(user)
    logger.info(f"更新用户 {user_id}: {sorted(updates)}")
    return user


def delete_user_service(user_id: str, store: MemoryStore) -> DeleteResponse:
    store.delete_user(check_user_path_id(user_id))
    return DeleteResponse(id=user_id)
