import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence

from chat_core.config.settings import settings
from chat_core.domain.conversation import MESSAGE_TYPE_NORMAL, StoredTurn, TurnStore
from chat_core.domain.exceptions import BusinessError, PersistenceError, ValidationError


# chat id 是不透明字符串，只排除会改变目录层级的写法
_CHAT_ID_RE = re.compile(r"^[^/\\\x00]{1,128}$")
_RESERVED_IDS = {".", ".."}


class JsonTurnStore(TurnStore):
    """以 JSON Lines 文件保存对话轮次：<root>/chats/<chat_id>/turns.jsonl。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._chat_root = self._root / "chats"
        self._chat_root.mkdir(parents=True, exist_ok=True)

    def find_many(self, chat_id: str) -> List[StoredTurn]:
        path = self._turns_path(chat_id)
        items: List[StoredTurn] = []
        if not path.exists():
            return items
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise PersistenceError(code="STORE_READ_ERROR", message=str(e))
        for line in lines:
            try:
                items.append(self._to_turn(json.loads(line)))
            except (ValueError, KeyError, TypeError):
                continue
        # sort 是稳定的，同一时间戳按写入顺序
        items.sort(key=lambda t: t.created_at)
        return items

    def create_many(self, turns: Sequence[StoredTurn]) -> int:
        grouped: Dict[str, List[str]] = {}
        for turn in turns:
            grouped.setdefault(turn.chat_id, []).append(self._to_line(turn))
        try:
            for chat_id, lines in grouped.items():
                path = self._turns_path(chat_id)
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as f:
                    f.write("".join(line + "\n" for line in lines))
        except BusinessError:
            raise
        except OSError as e:
            raise PersistenceError(code="STORE_WRITE_ERROR", message=str(e))
        return len(turns)

    def _turns_path(self, chat_id: str) -> Path:
        if not isinstance(chat_id, str) or not _CHAT_ID_RE.match(chat_id) or chat_id in _RESERVED_IDS:
            raise ValidationError(code="INVALID_CHAT_ID", message=f"Invalid chat id: {chat_id!r}")
        return self._chat_root / chat_id / "turns.jsonl"

    @staticmethod
    def _to_line(turn: StoredTurn) -> str:
        payload = {
            "id": turn.id,
            "chat_id": turn.chat_id,
            "role": turn.role,
            "content": turn.content,
            "message_type": turn.message_type,
            "model": turn.model,
            "created_at": turn.created_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def _to_turn(data: Dict[str, Any]) -> StoredTurn:
        return StoredTurn(
            id=data["id"],
            chat_id=data["chat_id"],
            role=data["role"],
            content=data.get("content") or "",
            message_type=data.get("message_type") or MESSAGE_TYPE_NORMAL,
            created_at=datetime.fromisoformat(str(data["created_at"]).replace("Z", "+00:00")),
            model=data.get("model"),
        )
