"""
证书 CRUD 的 FastAPI 路由定义。
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from src.certstore.dependencies import get_policy, get_store, internal_error, to_http_exception
from src.certstore.errors import CertStoreError
from src.certstore.storage.memory import MemoryStore, ShowCerts
from src.certstore.user.schemas import DeleteResponse
from . import services
from .schemas import ActivePatch, CertificateData, ValidationPolicy

router = APIRouter(prefix="/user/{user_id}/cert", tags=["Certificates"])


@router.post("", response_model=CertificateData)
async def create_certificate(
    user_id: str,
    req: CertificateData,
    policy: ValidationPolicy = Depends(get_policy),
    store: MemoryStore = Depends(get_store),
) -> CertificateData:
    """
    为用户新增一个证书/私钥对，返回规范化后的线上格式（包含推导出的证书 ID）。
    """
    try:
        return services.create_certificate_service(user_id, req, policy, store)
    except CertStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error(e)


@router.get("", response_model=List[CertificateData])
async def list_certificates(
    user_id: str,
    show_certs: ShowCerts = Query(default=ShowCerts.ALL, alias="show-certs"),
    store: MemoryStore = Depends(get_store),
) -> List[CertificateData]:
    """
    列出用户的证书，可按 active / inactive 过滤。
    """
    try:
        return services.list_certificates_service(user_id, show_certs, store)
    except CertStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error(e)


@router.get("/{cert_id}", response_model=CertificateData)
async def read_certificate(
    user_id: str, cert_id: str, store: MemoryStore = Depends(get_store)
) -> CertificateData:
    try:
        return services.read_certificate_service(user_id, cert_id, store)
    except CertStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error(e)


@router.patch("/{cert_id}", response_model=CertificateData)
async def update_certificate(
    user_id: str, cert_id: str, req: ActivePatch, store: MemoryStore = Depends(get_store)
) -> CertificateData:
    """
    启用或停用证书。
    """
    try:
        return services.update_certificate_active_service(user_id, cert_id, req, store)
    except CertStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error(e)


@router.delete("/{cert_id}", response_model=DeleteResponse)
async def delete_certificate(
    user_id: str, cert_id: str, store: MemoryStore = Depends(get_store)
) -> DeleteResponse:
    try:
        return services.delete_certificate_service(user_id, cert_id, store)
    except CertStoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error(e)
