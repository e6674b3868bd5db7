"""Chatbox Core 顶层包。

该包提供聊天客户端的核心实现：单轮请求的流式读取与结束标记检测、
会话消息存储、内容分类与安全渲染策略，以及把这些串起来的单轮编排器。
"""

__version__ = "0.1.0"
