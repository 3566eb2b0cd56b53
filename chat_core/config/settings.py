"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
配置对象在进程启动时创建一次，之后不可修改。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
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
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    openrouter_api_key: Optional[str] = Field(default=None, description="OpenRouter API 密钥")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API 基础URL",
    )
    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")
    app_url: Optional[str] = Field(default=None, description="OpenRouter 归属统计用的 HTTP-Referer")
    app_title: str = Field(default="chat-core", description="OpenRouter 归属统计用的 X-Title")
    send_reasoning: bool = Field(default=True, description="是否把模型的推理片段转发给前端")

    # ---- 提示词 ----
    system_prompt: Optional[str] = Field(default=None, description="覆盖内置的系统提示词")
    prompt_locale: str = Field(default="zh", description="内置系统提示词的语言")

    # ---- 存储 ----
    storage_backend: Literal["sql", "json"] = Field(default="sql", description="会话存储后端")
    database_url: str = Field(default="sqlite:///.storage/chat.db", description="SQLAlchemy 数据库 URL")
    storage_root: str = Field(default=".storage", description="JSON 存储根目录")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    environment: Literal["development", "production"] = Field(
        default="development",
        description="运行环境，development 下输出更详细的日志",
    )

    # ---- HTTP 服务 ----
    api_tokens: str = Field(default="", description="逗号分隔的 Bearer token，为空则不校验")
    host: str = Field(default="0.0.0.0", description="监听地址")
    port: int = Field(default=8000, ge=1, le=65535, description="监听端口")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openrouter_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

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

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def token_list(self) -> List[str]:
        return [t.strip() for t in self.api_tokens.split(",") if t.strip()]


settings = Settings()
