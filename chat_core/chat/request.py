"""聊天请求体解析与校验。

请求体形如 {chatId?, messages?, content?, model, skipUserMessage?}。
messages 与 content 同时出现时以 messages 为准：只要 messages 不为 null 就使用它，
content 仅在 messages 缺失/为 null 时生效。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from chat_core.domain.conversation import TurnRole
from chat_core.domain.exceptions import ValidationError
from chat_core.domain.ui import Segment, UIMessage, new_message_id, text_segment


class IncomingTurn(BaseModel):
    """客户端提交的一条消息：parts 与扁平 content 二选一。"""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    # system 提示词由服务端固定注入，客户端只能提交 user/assistant
    role: TurnRole
    parts: Optional[List[Dict[str, Any]]] = None
    content: Optional[str] = None

    def segments(self) -> List[Segment]:
        if self.parts is not None:
            return list(self.parts)
        return [text_segment(self.content or "")]

    def to_ui_message(self) -> UIMessage:
        return UIMessage(id=self.id or new_message_id(), role=self.role, segments=self.segments())


class ChatRouteBody(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    chat_id: Optional[str] = Field(default=None, alias="chatId")
    messages: Optional[Any] = None
    content: Optional[Any] = None
    model: Any = None
    skip_user_message: Optional[bool] = Field(default=None, alias="skipUserMessage")


@dataclass
class ChatTurnRequest:
    model: str
    chat_id: Optional[str] = None
    incoming: List[UIMessage] = field(default_factory=list)
    skip_user_message: bool = False


def parse_chat_request(body: Any) -> ChatTurnRequest:
    """把 JSON 请求体转换为 ChatTurnRequest，不合法时抛出 ValidationError。"""

    if not isinstance(body, dict):
        raise ValidationError(code="INVALID_BODY", message="Request body must be a JSON object")
    try:
        raw = ChatRouteBody.model_validate(body)
    except pydantic.ValidationError as e:
        raise ValidationError(code="INVALID_BODY", message="Malformed request body", details=str(e))

    if not raw.model or not isinstance(raw.model, str):
        raise ValidationError(code="INVALID_MODEL", message="Invalid or missing model")

    turns_raw = raw.messages if raw.messages is not None else raw.content
    if turns_raw is None:
        turns_raw = []
    if not isinstance(turns_raw, list):
        raise ValidationError(code="INVALID_MESSAGES", message="messages must be an array of turns")

    incoming: List[UIMessage] = []
    for idx, item in enumerate(turns_raw):
        if item is None:
            continue
        try:
            incoming.append(IncomingTurn.model_validate(item).to_ui_message())
        except pydantic.ValidationError as e:
            raise ValidationError(code="INVALID_TURN", message=f"Invalid turn at index {idx}", details=str(e))

    chat_id = raw.chat_id or None
    if not incoming and not chat_id:
        raise ValidationError(code="NO_MESSAGES", message="No messages provided")

    return ChatTurnRequest(
        model=raw.model,
        chat_id=chat_id,
        incoming=incoming,
        skip_user_message=bool(raw.skip_user_message),
    )
