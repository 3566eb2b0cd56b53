"""Provider 连接配置。

进程启动时由 Settings 构造一次 ProviderConfig，之后以不可变值的形式
显式传给 Provider 客户端，客户端内部不再读取全局配置。
"""

from dataclasses import dataclass
from typing import Dict, Optional


OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    api_key: Optional[str]
    http_timeout: float = 60.0
    app_url: Optional[str] = None
    app_title: Optional[str] = None

    @classmethod
    def from_settings(cls, cfg) -> "ProviderConfig":
        return cls(
            name="openrouter",
            base_url=(getattr(cfg, "openrouter_base_url", None) or OPENROUTER_BASE_URL).rstrip("/"),
            api_key=getattr(cfg, "openrouter_api_key", None),
            http_timeout=getattr(cfg, "http_timeout", 60.0),
            app_url=getattr(cfg, "app_url", None),
            app_title=getattr(cfg, "app_title", None),
        )

    def headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.app_url:
            headers["HTTP-Referer"] = self.app_url
        if self.app_title:
            headers["X-Title"] = self.app_title
        return headers
