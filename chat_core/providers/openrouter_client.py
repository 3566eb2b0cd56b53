"""OpenRouter Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 OpenRouter（OpenAI 兼容）chat/completions 请求格式。
3. 以 SSE 方式读取流式响应，处理网络/API 异常。
4. 将每条 data 行解析为统一的 ChatStreamChunk（含 reasoning 增量）。

另外提供 list_models()，读取 OpenRouter 的模型目录。
"""

import json
from typing import Any, Dict, Iterable, List

import httpx

from chat_core.domain.exceptions import ApiError, NetworkError, RateLimitError, UpstreamError
from chat_core.domain.models import (
    ChatMessage,
    ChatRequest,
    ChatStreamChoice,
    ChatStreamChunk,
    ChatUsage,
)
from chat_core.providers.config import ProviderConfig


class OpenRouterClient:
    """OpenRouter 提供方客户端实现。"""

    name = "openrouter"

    def __init__(self, config: ProviderConfig):
        self._config = config

    # ---- 流式对话 ----

    def chat_stream(self, req: ChatRequest) -> Iterable[ChatStreamChunk]:
        """执行一次流式对话调用，逐步 yield ChatStreamChunk。

        HTTP 状态码在读取第一条数据之前检查，因此调用方只要取出第一个
        元素，就能在向客户端输出任何内容之前拿到 UpstreamError。
        """

        self._require_api_key()
        payload = self._build_payload(req)
        try:
            with httpx.Client(timeout=self._config.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{self._config.base_url}/chat/completions",
                    json=payload,
                    headers=self._config.headers(),
                ) as resp:
                    self._raise_for_status(resp, streaming=True)
                    for line in resp.iter_lines():
                        if not line:
                            continue
                        data_str = line
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        else:
                            # ": OPENROUTER PROCESSING" 之类的 SSE 注释行
                            data_str = data_str.strip()
                        if not data_str or data_str == "[DONE]":
                            continue
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        if not isinstance(payload_chunk, dict):
                            continue
                        if payload_chunk.get("error"):
                            raise self._stream_error(payload_chunk["error"])
                        yield self._parse_stream_chunk(payload_chunk, req)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    # ---- 模型目录 ----

    def list_models(self) -> List[Dict[str, Any]]:
        self._require_api_key()
        try:
            with httpx.Client(timeout=self._config.http_timeout, trust_env=False) as client:
                resp = client.get(f"{self._config.base_url}/models", headers=self._config.headers())
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        self._raise_for_status(resp)
        try:
            data = resp.json()
        except ValueError:
            raise UpstreamError(code="INVALID_RESPONSE", message="Failed to parse OpenRouter API response")
        items = data.get("data") if isinstance(data, dict) else None
        return items if isinstance(items, list) else []

    # ---- 辅助方法 ----

    def _require_api_key(self) -> None:
        if not self._config.api_key:
            raise UpstreamError(code="MISSING_API_KEY", message="OPENROUTER_API_KEY not set")

    @staticmethod
    def _raise_for_status(resp, streaming: bool = False) -> None:
        if resp.status_code < 400:
            return
        if streaming:
            # 流式响应的 body 需要先读出来才能访问 text
            resp.read()
        if resp.status_code == 429:
            raise RateLimitError(
                code="RATE_LIMIT",
                message="OpenRouter API error: 429 (rate limited)",
                upstream_status=429,
                details=resp.text,
            )
        raise ApiError(
            code="API_ERROR",
            message=f"OpenRouter API error: {resp.status_code}",
            upstream_status=resp.status_code,
            details=resp.text,
        )

    @staticmethod
    def _stream_error(error: Any) -> ApiError:
        """OpenRouter 在流中途出错时会发送 {"error": {...}} 数据行。"""

        if isinstance(error, dict):
            status = error.get("code")
            message = error.get("message") or "unknown error"
        else:
            status, message = None, str(error)
        return ApiError(
            code="STREAM_ERROR",
            message=f"OpenRouter stream error: {status}: {message}" if status else f"OpenRouter stream error: {message}",
            upstream_status=status,
        )

    def _build_payload(self, req: ChatRequest) -> dict:
        payload: Dict[str, Any] = {
            "model": req.model,
            "messages": [self._message_to_payload(m) for m in req.messages],
            "stream": True,
        }
        if req.temperature is not None:
            payload["temperature"] = req.temperature
        if req.top_p is not None:
            payload["top_p"] = req.top_p
        if req.max_tokens is not None:
            payload["max_tokens"] = req.max_tokens
        return payload

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        return {"role": message.role, "content": message.content}

    @staticmethod
    def _build_chat_message(payload: Dict[str, Any]) -> ChatMessage:
        """解析单条 delta，兼容 reasoning / reasoning_content 两种字段名。"""

        reasoning = payload.get("reasoning")
        if reasoning is None:
            reasoning = payload.get("reasoning_content")
        return ChatMessage(
            role=payload.get("role") or "assistant",
            content=payload.get("content") or "",
            reasoning=reasoning or None,
        )

    def _parse_stream_chunk(self, data: dict, req: ChatRequest) -> ChatStreamChunk:
        choices: list[ChatStreamChoice] = []
        for i, ch in enumerate(data.get("choices") or []):
            delta_payload = ch.get("delta") or {}
            choices.append(
                ChatStreamChoice(
                    index=ch.get("index", i),
                    delta=self._build_chat_message(delta_payload),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        usage_raw = data.get("usage") or {}
        usage = None
        if usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return ChatStreamChunk(
            provider=self.name,
            model=data.get("model") or req.model,
            choices=choices,
            usage=usage,
            raw=data,
        )
