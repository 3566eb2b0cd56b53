"""Chat Core 顶层包。

该包实现 Web 聊天后端的核心链路：
加载会话历史、与新提交的消息合并并修复角色交替、
通过 OpenRouter 流式生成回答并逐步返回给浏览器，
流结束后把本轮的用户消息和助手消息写入存储。
"""

from chat_core.chat import ChatResponder, parse_chat_request, reconcile

__all__ = ["ChatResponder", "parse_chat_request", "reconcile"]
