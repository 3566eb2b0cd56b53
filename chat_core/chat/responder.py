"""流式响应与持久化。

ChatResponder 负责：调用 Provider 的流式接口、把增量编码为 UI 消息流逐步返回，
并在流正常结束后把本次的用户消息（可选）和助手消息写入存储。

Provider 的第一条增量在 start() 返回之前就被取出，所以缺少 API key、
上游返回非 2xx 等错误会在输出任何内容前抛出，由 API 层转换为错误响应。
流开始之后的错误只记录日志并以 error 事件通知前端。
"""

import itertools
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional
from uuid import uuid4

from chat_core.chat.reconciler import ReconciledHistory
from chat_core.chat.request import ChatTurnRequest
from chat_core.chat.ui_stream import UIMessageStreamWriter, resolve_message_id
from chat_core.domain.conversation import StoredTurn, TurnStore
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.models import ChatMessage, ChatRequest, ChatStreamChunk
from chat_core.domain.ui import UIMessage
from chat_core.infrastructure.logging.logger import log_event, logger
from chat_core.providers.base import ProviderClient


def serialize_segments(message: UIMessage) -> str:
    return json.dumps(message.segments, ensure_ascii=False)


def build_turns_to_save(
    request: ChatTurnRequest,
    response_message: Optional[UIMessage],
    received_at: datetime,
    finished_at: datetime,
) -> List[StoredTurn]:
    """按规则挑出需要写入的轮次（0~2 条）。"""

    turns: List[StoredTurn] = []
    if not request.chat_id:
        return turns
    if not request.skip_user_message and request.incoming:
        latest = request.incoming[-1]
        if latest.role == "user":
            turns.append(
                StoredTurn.create(
                    chat_id=request.chat_id,
                    role="user",
                    content=serialize_segments(latest),
                    model=request.model,
                    created_at=received_at,
                )
            )
    if response_message is not None and response_message.segments:
        turns.append(
            StoredTurn.create(
                chat_id=request.chat_id,
                role="assistant",
                content=serialize_segments(response_message),
                model=request.model,
                created_at=finished_at,
            )
        )
    return turns


class ChatResponder:
    def __init__(
        self,
        provider: ProviderClient,
        store: TurnStore,
        system_prompt: str,
        send_reasoning: bool = True,
    ):
        self._provider = provider
        self._store = store
        self._system_prompt = system_prompt
        self._send_reasoning = send_reasoning

    def start(
        self,
        request: ChatTurnRequest,
        history: ReconciledHistory,
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> Iterator[str]:
        """发起 Provider 调用并返回 SSE 帧迭代器。"""

        log_ctx = dict(log_ctx or {})
        log_ctx.setdefault("trace_id", f"tr-{uuid4().hex}")
        log_ctx.setdefault("chat_id", request.chat_id)
        received_at = datetime.now(timezone.utc)

        messages = [ChatMessage(role="system", content=self._system_prompt)]
        messages.extend(history.model_messages)
        req = ChatRequest(model=request.model, messages=messages)

        log_event(
            logging.INFO,
            "Calling provider (stream)",
            log_ctx,
            provider=self._provider.name,
            model=request.model,
            message_count=len(messages),
        )
        chunks = iter(self._provider.chat_stream(req))
        first = next(chunks, None)

        message_id = resolve_message_id(history.prior_messages, history.all_messages)
        return self._relay(first, chunks, message_id, request, received_at, log_ctx)

    def _relay(
        self,
        first: Optional[ChatStreamChunk],
        chunks: Iterator[ChatStreamChunk],
        message_id: str,
        request: ChatTurnRequest,
        received_at: datetime,
        log_ctx: Dict[str, Any],
    ) -> Iterator[str]:
        start_time = time.time()
        writer = UIMessageStreamWriter(message_id, send_reasoning=self._send_reasoning)
        yield from writer.start()
        try:
            stream = chunks if first is None else itertools.chain([first], chunks)
            for chunk in stream:
                if chunk.usage:
                    log_event(
                        logging.INFO,
                        "Token usage",
                        log_ctx,
                        prompt_tokens=chunk.usage.prompt_tokens,
                        completion_tokens=chunk.usage.completion_tokens,
                        total_tokens=chunk.usage.total_tokens,
                    )
                yield from writer.push(chunk)
        except BusinessError as e:
            log_event(logging.ERROR, "Provider stream failed", log_ctx, code=e.code, error=e.message)
            yield from writer.error(e.message)
            return
        except Exception as e:
            logger.error(
                "Provider stream failed", exc_info=True, extra={"extra": {**log_ctx, "error": str(e)}}
            )
            yield from writer.error("An error occurred.")
            return
        finally:
            # 客户端断开时关闭上游 HTTP 流
            close = getattr(chunks, "close", None)
            if close is not None:
                close()

        yield from writer.finish()
        log_event(
            logging.INFO,
            "Stream finished",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            finish_reason=writer.finish_reason,
        )
        self._persist(request, writer.response_message, received_at, log_ctx)

    def _persist(
        self,
        request: ChatTurnRequest,
        response_message: UIMessage,
        received_at: datetime,
        log_ctx: Dict[str, Any],
    ) -> None:
        if not request.chat_id:
            log_event(logging.WARNING, "No chat id supplied, skipping persistence", log_ctx)
            return
        turns = build_turns_to_save(request, response_message, received_at, datetime.now(timezone.utc))
        if not turns:
            return
        try:
            count = self._store.create_many(turns)
        except Exception as e:
            # 响应已经发给客户端，写库失败只记录日志
            logger.error(
                "Error saving messages", exc_info=True, extra={"extra": {**log_ctx, "error": str(e)}}
            )
            return
        log_event(
            logging.INFO,
            "Stored turns",
            log_ctx,
            count=count,
            roles=[t.role for t in turns],
        )
