"""Provider 抽象接口。

上层 ChatResponder 不直接依赖具体厂商的 HTTP 接口，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 OpenRouterClient）。
- 负责：将 ChatRequest 转成具体 API 请求，并把流式响应解析为 ChatStreamChunk。
"""

from typing import Any, Dict, Iterable, List, Protocol

from chat_core.domain.models import ChatRequest, ChatStreamChunk


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志。
    - chat_stream(req): 执行一次流式对话调用，逐步产出增量。
    - list_models(): 返回 Provider 的模型目录（原始 JSON 对象列表）。
    """

    name: str

    def chat_stream(self, req: ChatRequest) -> Iterable[ChatStreamChunk]:
        ...

    def list_models(self) -> List[Dict[str, Any]]:
        ...
