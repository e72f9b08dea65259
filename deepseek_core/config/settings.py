"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Annotated, Any, Dict, Optional, Tuple

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from deepseek_core.domain.constants import DEFAULT_ALLOWED_MODELS, DEFAULT_BASE_URL, DeepSeekModels
from deepseek_core.domain.exceptions import ValidationError


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("DEEPSEEK_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """客户端配置（使用 Pydantic）。"""

    # ---- DeepSeek 接入 ----
    deepseek_api_key: Optional[str] = Field(default=None, description="DeepSeek API 密钥")
    deepseek_base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="DeepSeek API 基础URL，可覆盖为代理或私有部署地址",
    )
    default_model: str = Field(
        default=DeepSeekModels.CHAT,
        description="未显式指定时使用的模型 ID",
    )
    # 逗号分隔字符串或 YAML 列表均可
    allowed_models: Annotated[Tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_ALLOWED_MODELS,
        validation_alias=AliasChoices("deepseek_allowed_models", "allowed_models"),
        description="请求前校验用的模型白名单",
    )
    http_timeout: float = Field(default=100.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("deepseek_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("allowed_models", mode="before")
    @classmethod
    def split_models(cls, v: Any) -> Any:
        if isinstance(v, str):
            return tuple(m.strip() for m in v.split(",") if m.strip())
        return v

    @field_validator("deepseek_base_url")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )

    def require_api_key(self) -> str:
        """返回 API 密钥；缺失时直接报错，调用方应视为启动失败。"""
        if not self.deepseek_api_key:
            raise ValidationError(code="MISSING_API_KEY", message="DEEPSEEK_API_KEY not set")
        return self.deepseek_api_key


settings = Settings()
