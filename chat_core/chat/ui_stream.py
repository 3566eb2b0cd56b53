"""UI 消息流的 SSE 编码。

把 Provider 的增量转换为前端可逐步渲染的事件序列：

    start -> start-step -> (reasoning-start/-delta/-end | text-start/-delta/-end)*
          -> finish-step -> finish -> [DONE]

出错时发送 {"type": "error", "errorText": ...} 后结束。
写入器同时累积本次生成的片段，结束后通过 response_message 得到完整的助手消息。
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from chat_core.domain.models import ChatStreamChunk
from chat_core.domain.ui import REASONING, TEXT, UIMessage, new_message_id


UI_MESSAGE_STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "x-vercel-ai-ui-message-stream": "v1",
    "x-accel-buffering": "no",
}

# OpenAI 兼容的 finish_reason -> UI 消息流的 finishReason
_FINISH_REASONS = {
    "stop": "stop",
    "length": "length",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
    "content_filter": "content-filter",
    "error": "error",
}


def map_finish_reason(reason: Optional[str]) -> Optional[str]:
    if not reason:
        return None
    return _FINISH_REASONS.get(reason, "other")


def sse_frame(payload: Any) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"data: {data}\n\n"


def resolve_message_id(prior_messages: Sequence[UIMessage], all_messages: Sequence[UIMessage]) -> str:
    """确定本次助手消息的 id。

    以 prior_messages 为基线：只有当模型是在续写最后一条历史助手消息时
    （all_messages 的最后一条就是它）才复用其 id，否则生成新 id。
    """

    if prior_messages and all_messages:
        last_prior = prior_messages[-1]
        last = all_messages[-1]
        if last_prior.role == "assistant" and last.role == "assistant" and last.id == last_prior.id:
            return last_prior.id
    return new_message_id()


class UIMessageStreamWriter:
    def __init__(self, message_id: str, send_reasoning: bool = True):
        self.message_id = message_id
        self._send_reasoning = send_reasoning
        self._segments: List[Dict[str, Any]] = []
        self._open_kind: Optional[str] = None
        self._open_id: Optional[str] = None
        self._block_count = 0
        self.finish_reason: Optional[str] = None

    def start(self) -> List[str]:
        return [
            sse_frame({"type": "start", "messageId": self.message_id}),
            sse_frame({"type": "start-step"}),
        ]

    def push(self, chunk: ChatStreamChunk) -> List[str]:
        frames: List[str] = []
        for choice in chunk.choices:
            if choice.index != 0:
                continue
            delta = choice.delta
            if delta.reasoning and self._send_reasoning:
                frames.extend(self._append(REASONING, delta.reasoning))
            if isinstance(delta.content, str) and delta.content:
                frames.extend(self._append(TEXT, delta.content))
            if choice.finish_reason:
                self.finish_reason = choice.finish_reason
        return frames

    def finish(self) -> List[str]:
        frames = self._close_block()
        frames.append(sse_frame({"type": "finish-step"}))
        finish: Dict[str, Any] = {"type": "finish"}
        if self.finish_reason:
            finish["finishReason"] = map_finish_reason(self.finish_reason)
        frames.append(sse_frame(finish))
        frames.append(sse_frame("[DONE]"))
        return frames

    def error(self, error_text: str) -> List[str]:
        frames = self._close_block()
        frames.append(sse_frame({"type": "error", "errorText": error_text}))
        frames.append(sse_frame("[DONE]"))
        return frames

    @property
    def response_message(self) -> UIMessage:
        return UIMessage(
            id=self.message_id,
            role="assistant",
            segments=[dict(s) for s in self._segments],
        )

    def _append(self, kind: str, text: str) -> List[str]:
        frames: List[str] = []
        if self._open_kind != kind:
            frames.extend(self._close_block())
            self._block_count += 1
            self._open_kind = kind
            self._open_id = f"{kind}-{self._block_count}"
            self._segments.append({"type": kind, "text": ""})
            frames.append(sse_frame({"type": f"{kind}-start", "id": self._open_id}))
        self._segments[-1]["text"] += text
        frames.append(sse_frame({"type": f"{kind}-delta", "id": self._open_id, "delta": text}))
        return frames

    def _close_block(self) -> List[str]:
        if self._open_kind is None:
            return []
        frame = sse_frame({"type": f"{self._open_kind}-end", "id": self._open_id})
        self._open_kind = None
        self._open_id = None
        return [frame]
