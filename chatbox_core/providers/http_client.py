"""聊天后端 HTTP 适配器。

- URL: {chat_base_url}{chat_path}
- 请求体: {"message": <用户输入>}
- 响应体: 未分帧的纯文本字节流，按读取到的字节块逐个交给 StreamConsumer。
"""

from contextlib import ExitStack
from typing import Iterator, Optional

import httpx

from chatbox_core.config.settings import settings
from chatbox_core.domain.exceptions import (
    EmptyBodyError,
    NetworkError,
    ResponseStatusError,
    StreamTimeoutError,
)


class HttpByteStream:
    """已打开的 HTTP 响应字节流。

    持有 httpx.Client 与流式响应的上下文，close() 时统一释放。
    读取过程中的超时与传输错误会被转换为 StreamError 子类。
    """

    def __init__(self, response: httpx.Response, stack: ExitStack):
        self._response = response
        self._stack = stack
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        try:
            for chunk in self._response.iter_bytes():
                if chunk:
                    yield chunk
        except httpx.TimeoutException as e:
            raise StreamTimeoutError(code="STREAM_TIMEOUT", message=str(e) or "read timed out")
        except (httpx.RequestError, httpx.StreamError) as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stack.close()


class ChatHttpClient:
    """基于 httpx 的聊天后端客户端，每轮对话只发一次请求。"""

    name = "http"

    def __init__(self, cfg=settings, url: Optional[str] = None):
        self._settings = cfg
        self._url = url or cfg.chat_url

    def _timeout(self) -> httpx.Timeout:
        # read 超时即两次片段之间的最长等待时间，None 表示不限制
        return httpx.Timeout(
            self._settings.http_timeout,
            read=getattr(self._settings, "stream_read_timeout", None),
        )

    def open_stream(self, message: str) -> HttpByteStream:
        stack = ExitStack()
        try:
            client = stack.enter_context(
                httpx.Client(
                    timeout=self._timeout(),
                    trust_env=getattr(self._settings, "trust_env", False),
                )
            )
            resp = stack.enter_context(
                client.stream(
                    "POST",
                    self._url,
                    json={"message": message},
                    headers={"Content-Type": "application/json"},
                )
            )
        except httpx.TimeoutException as e:
            stack.close()
            raise StreamTimeoutError(code="STREAM_TIMEOUT", message=str(e) or "request timed out")
        except (httpx.RequestError, httpx.InvalidURL) as e:
            stack.close()
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)

        # 只接受 2xx；重定向不跟随，按失败处理
        if not resp.is_success:
            stack.close()
            raise ResponseStatusError(
                code="RESPONSE_STATUS",
                message=f"server responded with status {resp.status_code}",
                http_status=resp.status_code,
            )
        if resp.status_code == 204 or resp.headers.get("content-length") == "0":
            stack.close()
            raise EmptyBodyError(
                code="EMPTY_BODY",
                message="response has no body",
                http_status=resp.status_code,
            )
        return HttpByteStream(resp, stack)
