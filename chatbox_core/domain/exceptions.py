"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
流式请求相关的错误统一继承自 StreamError，由 TurnOrchestrator 在边界处
捕获并转换成一条终态的助手消息，不会抛给调用方。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "RESPONSE_STATUS"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、url 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class StreamError(BusinessError):
    """流式请求失败的基类，reason 即 message。"""

    @property
    def reason(self) -> str:
        return self.message


class NetworkError(StreamError):
    """请求无法发出、连接失败或读取中途断开。"""


class ResponseStatusError(StreamError):
    """服务端返回非 2xx 状态码。"""


class EmptyBodyError(StreamError):
    """状态码成功但没有可读取的响应体。"""


class StreamTimeoutError(StreamError):
    """在限定时间内没有收到下一个片段。"""


class StreamCancelledError(StreamError):
    """调用方在两次读取之间设置了取消标记。"""


class DecodeError(BusinessError):
    """字节序列解码失败。

    解码使用替换字符策略在本地恢复，该异常只用于完整描述错误分类，不会被抛出。
    """


class ConversationStateError(BusinessError):
    """违反会话不变式的调用（例如同时存在两条流式消息）。"""
