"""领域层模型与协议。

包含：
- models: Message / StreamSession / Classification / RenderMode / TurnState 等模型。
- conversation: 会话消息存储 MessageStore。
- exceptions: 业务异常与流式错误类型定义。
"""
