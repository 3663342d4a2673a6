"""
FastAPI 应用入口点。
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from loguru import logger

from src.certstore.cert.router import router as cert_router
from src.certstore.user.router import router as user_router
from src.certstore.config import config
from src.certstore.dependencies import get_policy

INDEX_TEXT = """certstore: users and their X.509 certificate / private key pairs

POST   /v1/user                              create a user (optionally with certs)
GET    /v1/user/{user-id}[?show-certs=all|active|inactive]
PATCH  /v1/user/{user-id}                    update name / email
DELETE /v1/user/{user-id}                    delete a user and all of its certs
POST   /v1/user/{user-id}/cert               add a cert
GET    /v1/user/{user-id}/cert[?show-certs=all|active|inactive]
GET    /v1/user/{user-id}/cert/{cert-id}
PATCH  /v1/user/{user-id}/cert/{cert-id}     set {"active": true|false}
DELETE /v1/user/{user-id}/cert/{cert-id}

PEM fields replace the newlines of the base64 body with single spaces.
"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    policy = get_policy()
    if policy.minimum_rsa_bits < 2048 or policy.minimum_ec_bits < 224:
        logger.warning(
            f"当前最小密钥位数 RSA={policy.minimum_rsa_bits} EC={policy.minimum_ec_bits}，"
            "生产环境建议 RSA >= 2048、EC >= 224"
        )
    logger.info(f"校验策略: {policy.model_dump_json(indent=4)}")
    yield
    logger.info("应用关闭")


app = FastAPI(title="Certificate Store Service", lifespan=lifespan)

app.include_router(user_router, prefix="/v1")
app.include_router(cert_router, prefix="/v1")

logger.info(f"config: {config.model_dump_json(indent=4)}")


@app.get("/", response_class=PlainTextResponse)
async def index() -> str:
    return INDEX_TEXT
