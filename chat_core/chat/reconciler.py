"""历史消息合并(reconcile)。

把数据库中的历史轮次与本次请求新提交的消息合并为一条角色交替的有序序列：

1. decode_stored_turn: StoredTurn -> UIMessage，只保留 text 片段；
   payload 无法解析时退化为一个包含原始 payload 的 text 片段，永不抛异常。
2. merge_turns: 以累加器折叠消息序列，相邻同角色的消息合并片段而不是追加。
   历史本身先折叠一次，再把新消息折叠进去。
3. to_model_messages: 转换为 Provider 需要的扁平格式（见 conversion 模块）。
"""

import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence

from chat_core.chat.conversion import to_model_messages
from chat_core.domain.conversation import StoredTurn
from chat_core.domain.models import ChatMessage
from chat_core.domain.ui import TEXT, UIMessage, segment_type, text_segment
from chat_core.infrastructure.logging.logger import log_event


@dataclass
class ReconciledHistory:
    """合并结果。

    - prior_messages: 仅由历史轮次得到的部分，用作流式响应的基线。
    - all_messages: 历史 + 新消息，用于调用 Provider。
    - model_messages: all_messages 转换后的 Provider 消息。
    - used_fallback: 是否走了降级转换。
    """

    prior_messages: List[UIMessage]
    all_messages: List[UIMessage]
    model_messages: List[ChatMessage]
    used_fallback: bool = False


def decode_stored_turn(turn: StoredTurn) -> Optional[UIMessage]:
    role = str(turn.role or "").lower()
    raw = turn.content if isinstance(turn.content, str) else ""
    try:
        parts = json.loads(raw)
        if not isinstance(parts, list):
            raise ValueError("stored payload is not a segment array")
    except (TypeError, ValueError):
        return UIMessage(id=turn.id, role=role, segments=[text_segment(raw)], created_at=turn.created_at)

    valid = [p for p in parts if segment_type(p) == TEXT]
    if not valid:
        return None
    return UIMessage(id=turn.id, role=role, segments=valid, created_at=turn.created_at)


def merge_turns(accumulator: Sequence[UIMessage], turns: Iterable[Optional[UIMessage]]) -> List[UIMessage]:
    merged: List[UIMessage] = list(accumulator)
    for turn in turns:
        if turn is None:
            continue
        if merged and merged[-1].role == turn.role:
            last = merged[-1]
            merged[-1] = replace(last, segments=[*last.segments, *turn.segments])
        else:
            merged.append(turn)
    return merged


def reconcile(
    stored_turns: Sequence[StoredTurn],
    incoming_turns: Sequence[Optional[UIMessage]],
    debug: bool = False,
    log_ctx: Optional[Dict[str, Any]] = None,
) -> ReconciledHistory:
    log_ctx = log_ctx or {}
    decoded = [m for m in (decode_stored_turn(t) for t in stored_turns) if m is not None]
    prior = merge_turns([], decoded)
    incoming = [t for t in incoming_turns if t is not None]
    all_messages = merge_turns(prior, incoming)

    log_event(
        logging.INFO,
        "Messages summary",
        log_ctx,
        previous=len(prior),
        incoming=len(incoming),
        combined=len(all_messages),
    )

    model_messages, used_fallback = to_model_messages(all_messages, log_ctx)
    if debug:
        log_event(
            logging.INFO,
            "Final model messages",
            log_ctx,
            fallback=used_fallback,
            messages=[{"role": m.role, "content": m.content} for m in model_messages],
        )
    return ReconciledHistory(
        prior_messages=prior,
        all_messages=all_messages,
        model_messages=model_messages,
        used_fallback=used_fallback,
    )
