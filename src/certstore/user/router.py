"""
用户 CRUD 的 FastAPI 路由定义。
"""

from typing import Union

from fastapi import APIRouter, Depends, Query

from src.certstore.dependencies import get_policy, get_store, internal_error, to_http_exception
from src.certstore.errors import CertStoreError
from src.certstore.cert.schemas import ValidationPolicy
from src.certstore.storage.memory import MemoryStore, ShowCerts
from . import services
from .schemas import DeleteResponse, User, UserExtended, UserPatch

router = APIRouter(prefix="/user", tags=["Users"])


@router.post("", response_model=UserExtended)
async def create_user(
    req: UserExtended,
    policy: ValidationPolicy = Depends(get_policy),
    store: MemoryStore = Depends(get_store),
) -> UserExtended:
    """
    创建用户。请求中附带的证书会被逐个校验并规范化，任一失败则整个请求不落库。
    """
    try:
        return services.create_user_service(req, policy, store)
    except CertStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error(e)


@router.get("/{user_id}", response_model=Union[UserExtended, User])
async def read_user(
    user_id: str,
    show_certs: ShowCerts | None = Query(default=None, alias="show-certs"),
    store: MemoryStore = Depends(get_store),
) -> UserExtended | User:
    """
    读取用户。不带 show-certs 时只返回证书 ID；带上时返回按 active 过滤的完整证书。
    """
    try:
        if show_certs is None:
            return services.read_user_service(user_id, store)
        return services.read_user_extended_service(user_id, show_certs, store)
    except CertStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error(e)


@router.patch("/{user_id}", response_model=User)
async def update_user(
    user_id: str, req: UserPatch, store: MemoryStore = Depends(get_store)
) -> User:
    try:
        return services.update_user_service(user_id, req, store)
    except CertStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error(e)


@router.delete("/{user_id}", response_model=DeleteResponse)
async def delete_user(user_id: str, store: MemoryStore = Depends(get_store)) -> DeleteResponse:
    """
    删除用户，并级联删除其全部证书。
    """
    try:
        return services.delete_user_service(user_id, store)
    except CertStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error(e)
