"""UIMessage -> Provider 消息的转换。

两条路径：

- convert_to_model_messages: 结构化转换，理解 text / reasoning / step-start / file
  等片段，遇到无法表示的片段（工具调用、data-*、未知类型）抛出 ConversionError。
- flatten_message: 降级转换，只拼接 text 片段，对任何输入都能给出结果。

to_model_messages 先走结构化路径，失败后走降级路径。两条路径最后都会
经过 coalesce_messages：丢弃空消息并合并相邻同角色消息，保证角色交替。
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from chat_core.domain.exceptions import ConversionError
from chat_core.domain.models import ChatMessage, MessageContent
from chat_core.domain.ui import FILE, REASONING, STEP_START, TEXT, UIMessage, segment_type
from chat_core.infrastructure.logging.logger import log_event


_ROLES = ("system", "user", "assistant")


def convert_to_model_messages(messages: Sequence[UIMessage]) -> List[ChatMessage]:
    result: List[ChatMessage] = []
    for message in messages:
        if message.role not in _ROLES:
            raise ConversionError(code="UNSUPPORTED_ROLE", message=f"Unsupported role {message.role!r}")
        parts: List[Dict[str, Any]] = []
        for segment in message.segments:
            kind = segment_type(segment)
            if kind == TEXT:
                text = segment.get("text")
                if not isinstance(text, str):
                    raise ConversionError(
                        code="INVALID_SEGMENT",
                        message=f"Text segment without text in message {message.id}",
                    )
                parts.append({"type": "text", "text": text})
            elif kind in (REASONING, STEP_START):
                # 推理内容不回传给模型
                continue
            elif kind == FILE and message.role == "user":
                parts.append(_file_part(segment, message.id))
            else:
                raise ConversionError(
                    code="UNSUPPORTED_SEGMENT",
                    message=f"Cannot convert segment of type {kind!r} in {message.role} message {message.id}",
                )
        result.append(ChatMessage(role=message.role, content=_content_from_parts(parts)))
    return coalesce_messages(result)


def _file_part(segment: Dict[str, Any], message_id: str) -> Dict[str, Any]:
    media_type = segment.get("mediaType")
    url = segment.get("url")
    if not isinstance(url, str) or not isinstance(media_type, str) or not media_type.startswith("image/"):
        raise ConversionError(
            code="UNSUPPORTED_FILE",
            message=f"Only image files can be sent to the model (message {message_id})",
        )
    return {"type": "image_url", "image_url": {"url": url}}


def _content_from_parts(parts: List[Dict[str, Any]]) -> MessageContent:
    """纯文本消息压成字符串，含图片时保留 content part 列表。"""

    if all(p["type"] == "text" for p in parts):
        return "\n".join(p["text"] for p in parts)
    return parts


def flatten_message(message: UIMessage) -> ChatMessage:
    return ChatMessage(role=message.role, content=message.text("\n"))


def _is_empty(content: MessageContent) -> bool:
    return not content


def _as_parts(content: MessageContent) -> List[Dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return list(content)


def _join_content(left: MessageContent, right: MessageContent) -> MessageContent:
    if isinstance(left, str) and isinstance(right, str):
        return f"{left}\n{right}"
    return _as_parts(left) + _as_parts(right)


def coalesce_messages(messages: Sequence[ChatMessage]) -> List[ChatMessage]:
    result: List[ChatMessage] = []
    for message in messages:
        if _is_empty(message.content):
            continue
        if result and result[-1].role == message.role:
            last = result[-1]
            result[-1] = ChatMessage(role=last.role, content=_join_content(last.content, message.content))
        else:
            result.append(message)
    return result


def to_model_messages(
    messages: Sequence[UIMessage],
    log_ctx: Optional[Dict[str, Any]] = None,
) -> Tuple[List[ChatMessage], bool]:
    """返回 (Provider 消息列表, 是否使用了降级路径)。"""

    try:
        return convert_to_model_messages(messages), False
    except ConversionError as e:
        log_event(
            logging.WARNING,
            "Message conversion failed, using text fallback",
            log_ctx or {},
            code=e.code,
            error=e.message,
        )
    flattened = [flatten_message(m) for m in messages]
    return coalesce_messages([m for m in flattened if m.content]), True
