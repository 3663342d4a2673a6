"""
配置加载模块：支持 .env、环境变量、工作目录 config.json（或 CONFIG_FILE 指定）多来源合并。
公开接口：
- Config: 读取配置的设置类
- config: Config 的单例实例
- load_trust_anchors: 启动时一次性读取信任锚证书
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.empty_flag_to_false: 空字符串形式的开关视为关闭
"""

from __future__ import annotations

import json
import os
import ssl
from pathlib import Path
from typing import Any, Dict, List, Tuple

from cryptography import x509
from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource

from src.certstore.cert.schemas import ValidationPolicy


def _read_anchor_file(path: Path) -> List[x509.Certificate]:
    try:
        return x509.load_pem_x509_certificates(path.read_bytes())
    except OSError as e:
        raise ValueError(f"无法读取信任锚证书包 {path}: {e}") from e


def load_trust_anchors(path: str | None) -> Tuple[x509.Certificate, ...]:
    """
    读取信任锚证书。
    未配置路径时使用解释器默认的 CA 文件；没有 CA 文件时扫描默认的 CA 目录。
    :param path: PEM 证书包路径。
    :return: 解析后的信任锚证书。
    :raises ValueError: 证书包无法读取、不含证书，或找不到任何默认信任锚。
    """
    if path:
        anchors = _read_anchor_file(Path(path))
    else:
        defaults = ssl.get_default_verify_paths()
        anchors = []
        if defaults.cafile:
            anchors = _read_anchor_file(Path(defaults.cafile))
        elif defaults.capath:
            for entry in sorted(Path(defaults.capath).iterdir()):
                if not entry.is_file():
                    continue
                try:
                    anchors.extend(_read_anchor_file(entry))
                except ValueError:
                    logger.debug(f"跳过非证书文件: {entry}")
        if not anchors:
            raise ValueError("未找到可用的信任锚证书，请配置 trust_anchor_file")

    logger.info(f"已加载 {len(anchors)} 个信任锚证书")
    return tuple(anchors)


class Config(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # 校验策略：进程启动时确定，之后只读
    verify_certificate: bool = False  # 是否校验完整的证书链
    minimum_rsa_bits: int = Field(default=1024, ge=1)  # 生产环境建议 >= 2048
    minimum_ec_bits: int = Field(default=160, ge=1)  # 生产环境建议 >= 224
    trust_anchor_file: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("verify_certificate", mode="before")
    @classmethod
    def empty_flag_to_false(cls, value: Any) -> Any:
        # 空字符串视为未开启，其余写法交给 pydantic 的布尔解析
        if isinstance(value, str) and not value.strip():
            return False
        return value

    @field_validator("trust_anchor_file", mode="before")
    @classmethod
    def empty_path_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def policy(self) -> ValidationPolicy:
        """
        构造只读的校验策略，显式传给每一次校验调用。
        开启链校验时在这里一次性加载信任锚。
        :raises ValueError: 开启链校验但找不到可用的信任锚证书。
        """
        anchors = load_trust_anchors(self.trust_anchor_file) if self.verify_certificate else ()
        return ValidationPolicy(
            verify_chain=self.verify_certificate,
            minimum_rsa_bits=self.minimum_rsa_bits,
            minimum_ec_bits=self.minimum_ec_bits,
            trust_anchors=anchors,
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """自定义配置来源顺序：入参 > 环境变量 > .env > config.json > secrets。"""

        class JsonFileSettingsSource(PydanticBaseSettingsSource):
            """从工作目录的 config.json（或 CONFIG_FILE 指定路径）加载配置的自定义 Source。"""

            def __init__(self, settings_cls):
                super().__init__(settings_cls)
                self._data: Dict[str, Any] | None = None

            def _load(self) -> None:
                if self._data is not None:
                    return
                cfg_path = os.environ.get("CONFIG_FILE")
                path = Path(cfg_path) if cfg_path else Path.cwd() / "config.json"
                if not path.exists():
                    self._data = {}
                    return
                with path.open("r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError(f"配置文件 {path} 的顶层必须是 JSON 对象")
                self._data = data

            def __call__(self) -> Dict[str, Any]:
                self._load()
                return dict(self._data or {})

            def get_field_value(self, field, field_name):  # type: ignore[override]
                """为满足抽象基类要求，按字段名返回字段值。"""
                self._load()
                data = self._data or {}
                if field_name in data:
                    return data[field_name], field_name, False
                return None, field_name, False

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls),
            file_secret_settings,
        )


config = Config()
