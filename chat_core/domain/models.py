"""统一的对话与流式结果数据模型。

本模块定义了与 LLM Provider 交互时使用的标准数据结构：

- ChatMessage: 一条扁平化的对话消息（system/user/assistant）。
- ChatRequest: 发给底层 Provider 的完整请求。
- ChatStreamChunk: 流式调用中的一次增量。

Provider 适配器（如 OpenRouterClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union


# LLM 消息角色类型（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]

# content 一般是纯文本；带图片等多模态片段时为 OpenAI 风格的 content part 列表
MessageContent = Union[str, List[Dict[str, Any]]]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于流式增量。

    - role: 消息角色。
    - content: 文本内容，或多模态 content part 列表。
    - reasoning: 仅出现在流式增量中，模型的推理/思考文本。
    - meta: 附加元数据，不直接发给 Provider，主要用于日志。
    """

    role: Role
    content: MessageContent
    reasoning: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatRequest:
    """一次完整的聊天请求。

    model 直接使用客户端传入的 Provider 模型 ID（例如 "openai/gpt-4o-mini"），
    messages 的第一条通常是 system 提示词。
    """

    model: str
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatStreamChoice:
    """流式返回中的单个候选增量。"""

    index: int
    delta: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatStreamChunk:
    """流式对话的增量结果。

    每次回调由若干 choice 组成，choice.delta 代表本次增量内容。
    """

    provider: str
    model: str
    choices: List[ChatStreamChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None
