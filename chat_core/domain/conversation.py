from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Literal, Optional, Protocol, Sequence
from uuid import uuid4


TurnRole = Literal["user", "assistant"]

# 普通对话轮次；其它分类由外部系统定义，这里只透传
MESSAGE_TYPE_NORMAL = "NORMAL"


@dataclass
class StoredTurn:
    id: str
    chat_id: str
    role: TurnRole
    content: str  # JSON 序列化后的 segment 数组
    message_type: str
    created_at: datetime
    model: Optional[str] = None

    @classmethod
    def create(
        cls,
        chat_id: str,
        role: TurnRole,
        content: str,
        model: Optional[str] = None,
        created_at: Optional[datetime] = None,
        message_type: str = MESSAGE_TYPE_NORMAL,
    ) -> "StoredTurn":
        return cls(
            id=f"t-{uuid4().hex}",
            chat_id=chat_id,
            role=role,
            content=content,
            message_type=message_type,
            created_at=created_at or datetime.now(timezone.utc),
            model=model,
        )


class TurnStore(Protocol):
    def find_many(self, chat_id: str) -> List[StoredTurn]:
        """按 created_at 升序返回某个会话的全部轮次。"""
        ...

    def create_many(self, turns: Sequence[StoredTurn]) -> int:
        """一次性写入多条轮次，返回写入条数。"""
        ...
