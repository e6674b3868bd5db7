"""聊天后端集成层。

该包下的模块负责：
- 定义字节流来源的抽象接口 (base)。
- 提供基于 httpx 的 HTTP 实现 (http_client)。
"""

from typing import Optional

from chatbox_core.config.settings import settings
from chatbox_core.providers.base import ByteStream, ChatTransport
from chatbox_core.providers.http_client import ChatHttpClient


def create_transport(url: Optional[str] = None) -> ChatTransport:
    """根据配置创建传输实例，url 为空时使用配置中的 chat_url。"""

    return ChatHttpClient(settings, url=url)


__all__ = ["ByteStream", "ChatTransport", "ChatHttpClient", "create_transport"]
