"""
内存中的用户与证书存储（持久化协作方）。

公开接口：
- ShowCerts: 证书过滤选项 all / active / inactive
- MemoryStore: 线程安全的用户 / 证书 CRUD
- store: MemoryStore 的单例实例

存储的都是线上格式 (CertificateData)，校验由调用方在写入之前完成。
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, List, Tuple

from loguru import logger

from src.certstore.errors import CertStoreError, ErrorKind
from src.certstore.cert.schemas import CertificateData
from src.certstore.user.schemas import User, UserExtended


class ShowCerts(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    INACTIVE = "inactive"

    def accepts(self, active: bool) -> bool:
        if self is ShowCerts.ACTIVE:
            return active
        if self is ShowCerts.INACTIVE:
            return not active
        return True


def _not_found(what: str) -> CertStoreError:
    return CertStoreError(ErrorKind.NOT_FOUND, f"{what} Not Found")


class MemoryStore:
    """
    用户与证书的内存存储。证书以 (user_id, cert_id) 为键，列表保持插入顺序。
    所有方法都在同一把锁下执行，组合操作（创建带证书的用户、级联删除）是原子的。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_user_id = 1
        self._users: Dict[str, Tuple[str, str]] = {}
        self._certs: Dict[Tuple[str, str], CertificateData] = {}

    # ---- 用户 ----

    def create_user(self, user: UserExtended) -> str:
        """插入用户及其证书，返回新用户 ID。证书中的 userId 会被改写为新 ID。"""
        with self._lock:
            user_id = str(self._next_user_id)
            keys = [(user_id, cert.id) for cert in user.certs]
            if len(set(keys)) != len(keys):
                raise CertStoreError(ErrorKind.BAD_REQUEST, "Duplicate certificate in request")
            self._next_user_id += 1
            self._users[user_id] = (user.name, user.email)
            for cert in user.certs:
                self._certs[(user_id, cert.id)] = cert.model_copy(update={"user_id": user_id})
        logger.info(f"创建用户 {user_id}，附带 {len(user.certs)} 个证书")
        return user_id

    def read_user(self, user_id: str) -> User:
        with self._lock:
            name, email = self._get_user_row(user_id)
            cert_ids = [cert_id for (uid, cert_id) in self._certs if uid == user_id]
        return User(id=user_id, name=name, email=email, certs=cert_ids)

    def read_user_extended(self, user_id: str, show: ShowCerts = ShowCerts.ALL) -> UserExtended:
        with self._lock:
            name, email = self._get_user_row(user_id)
            certs = self._list_locked(user_id, show)
        return UserExtended(id=user_id, name=name, email=email, certs=certs)

    def update_user(self, user: User | UserExtended) -> None:
        """只更新 name / email。"""
        with self._lock:
            self._get_user_row(user.id)
            self._users[user.id] = (user.name, user.email)

    def delete_user(self, user_id: str) -> None:
        """删除用户并级联删除其全部证书。"""
        with self._lock:
            self._get_user_row(user_id)
            del self._users[user_id]
            for key in [key for key in self._certs if key[0] == user_id]:
                del self._certs[key]
        logger.info(f"删除用户 {user_id} 及其证书")

    # ---- 证书 ----

    def create_cert(self, cert: CertificateData) -> str:
        with self._lock:
            self._get_user_row(cert.user_id)
            key = (cert.user_id, cert.id)
            if key in self._certs:
                raise CertStoreError(ErrorKind.BAD_REQUEST, "Certificate already exists", field="id", actual=cert.id)
            self._certs[key] = cert.model_copy()
        return cert.id

    def read_cert(self, user_id: str, cert_id: str) -> CertificateData:
        with self._lock:
            cert = self._certs.get((user_id, cert_id))
            if cert is None:
                raise _not_found("Certificate")
            return cert.model_copy()

    def update_active(self, user_id: str, cert_id: str, active: bool) -> None:
        with self._lock:
            key = (user_id, cert_id)
            if key not in self._certs:
                raise _not_found("Certificate")
            self._certs[key] = self._certs[key].model_copy(update={"active": active})

    def delete_cert(self, user_id: str, cert_id: str) -> None:
        with self._lock:
            if self._certs.pop((user_id, cert_id), None) is None:
                raise _not_found("Certificate")

    def list_for_user(self, user_id: str, show: ShowCerts = ShowCerts.ALL) -> List[CertificateData]:
        with self._lock:
            return self._list_locked(user_id, show)

    # ---- 内部方法（调用方必须持有锁）----

    def _get_user_row(self, user_id: str) -> Tuple[str, str]:
        row = self._users.get(user_id)
        if row is None:
            raise _not_found("User")
        return row

    def _list_locked(self, user_id: str, show: ShowCerts) -> List[CertificateData]:
        return [
            cert.model_copy()
            for (uid, _), cert in self._certs.items()
            if uid == user_id and show.accepts(cert.active)
        ]


store = MemoryStore()
