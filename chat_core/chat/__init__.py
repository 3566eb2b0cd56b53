"""聊天主链路：请求解析 -> 历史合并 -> 流式响应与持久化。"""

from chat_core.chat.reconciler import ReconciledHistory, decode_stored_turn, merge_turns, reconcile
from chat_core.chat.request import ChatTurnRequest, parse_chat_request
from chat_core.chat.responder import ChatResponder

__all__ = [
    "ChatResponder",
    "ChatTurnRequest",
    "ReconciledHistory",
    "decode_stored_turn",
    "merge_turns",
    "parse_chat_request",
    "reconcile",
]
