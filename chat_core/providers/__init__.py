"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护不可变的 Provider 连接配置 (config)。
- 提供具体实现 (openrouter_client) 与模型目录过滤 (catalog)。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.providers.base import ProviderClient
from chat_core.providers.config import ProviderConfig
from chat_core.providers.openrouter_client import OpenRouterClient


def create_provider(config: Optional[ProviderConfig] = None) -> ProviderClient:
    """根据配置创建 Provider 实例，未传入时从全局 settings 构造。"""

    return OpenRouterClient(config or ProviderConfig.from_settings(settings))


__all__ = ["ProviderClient", "ProviderConfig", "OpenRouterClient", "create_provider"]
