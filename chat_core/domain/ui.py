"""前端消息模型。

UIMessage 是历史合并(reconcile)时使用的内存表示：
一条消息由有序的内容片段(segment)组成，每个片段是带 "type" 字段的 JSON 对象。
本模块只认识 text/reasoning/step-start 等少数类型，
其它类型（工具调用、data-* 等）按原样透传。
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4


Segment = Dict[str, Any]

TEXT = "text"
REASONING = "reasoning"
STEP_START = "step-start"
FILE = "file"


def text_segment(text: str) -> Segment:
    return {"type": TEXT, "text": text}


def segment_type(segment: Any) -> Optional[str]:
    """返回片段的类型标记；非对象片段返回 None。"""

    if isinstance(segment, dict):
        kind = segment.get("type")
        return kind if isinstance(kind, str) else None
    return None


def new_message_id() -> str:
    return f"msg-{uuid4().hex}"


@dataclass
class UIMessage:
    """一条前端消息。

    合并逻辑从不原地修改 segments，而是用 dataclasses.replace 生成新对象，
    因此同一个 UIMessage 可以安全地同时出现在多个序列中。
    """

    id: str
    role: str
    segments: List[Segment] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def text_segments(self) -> List[Segment]:
        return [s for s in self.segments if segment_type(s) == TEXT]

    def text(self, separator: str = "\n") -> str:
        return separator.join(str(s.get("text") or "") for s in self.text_segments())
