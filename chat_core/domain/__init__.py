"""领域层模型与协议。

包含：
- models: 发给 Provider 的 ChatMessage / ChatRequest 以及流式增量模型。
- ui: 前端使用的 UIMessage 与内容片段(segment)。
- conversation: 持久化的 StoredTurn 及 TurnStore 抽象。
- exceptions: 业务异常类型定义。
"""
