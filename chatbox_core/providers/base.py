"""字节流来源抽象接口。

TurnOrchestrator 不直接依赖 httpx，而是依赖此协议：

- ChatTransport.open_stream(message) 发出一次请求，成功时返回一个已打开的 ByteStream，
  失败时在产出任何字节之前抛出 StreamError。
- ByteStream 按顺序产出原始字节块，close() 释放底层连接，可重复调用。
"""

from typing import Iterator, Protocol


class ByteStream(Protocol):
    def __iter__(self) -> Iterator[bytes]:
        ...

    def close(self) -> None:
        ...


class ChatTransport(Protocol):
    """聊天后端传输协议。"""

    name: str

    def open_stream(self, message: str) -> ByteStream:
        ...
