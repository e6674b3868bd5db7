"""对话、流式会话与渲染相关的数据模型。

- Message: 会话中的一条消息（user / assistant）。
- StreamSession: 单轮请求的累积缓冲区与完成状态，只属于当前这一轮。
- Classification / RenderMode: 内容分类与渲染方式的标签。
- TurnState / TurnResult: TurnOrchestrator 的状态机与单轮结果。
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Literal, Optional

from chatbox_core.domain.exceptions import ConversationStateError, StreamError


# 会话中只出现用户与助手两种角色
Role = Literal["user", "assistant"]


@dataclass
class Message:
    """一条对话消息。

    - role: 消息角色。
    - content: 文本内容；streaming 为 True 时只增不减（出错时的整体覆盖除外）。
    - streaming: 是否仍在接收内容；助手占位消息创建时为 True，之后只会置为 False 一次。
    """

    role: Role
    content: str
    streaming: bool = False

    def snapshot(self) -> "Message":
        return replace(self)


class StreamStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass
class StreamSession:
    """单轮流式请求的显式状态。

    缓冲区只在 ACTIVE 状态下增长；完成或出错后状态不再变化。
    该对象在 TurnOrchestrator 的读取循环中逐步传递，轮次结束后即丢弃。
    """

    buffer: str = ""
    status: StreamStatus = StreamStatus.ACTIVE
    fragments: int = 0

    @property
    def active(self) -> bool:
        return self.status is StreamStatus.ACTIVE

    def append(self, fragment: str) -> None:
        if not self.active:
            raise ConversationStateError(
                code="SESSION_CLOSED",
                message=f"cannot append to a {self.status.value} stream session",
            )
        self.buffer += fragment
        self.fragments += 1

    def complete(self) -> None:
        self._finish(StreamStatus.COMPLETED)

    def fail(self) -> None:
        self._finish(StreamStatus.ERRORED)

    def _finish(self, status: StreamStatus) -> None:
        if not self.active:
            raise ConversationStateError(
                code="SESSION_CLOSED",
                message=f"stream session already {self.status.value}",
            )
        self.status = status


class Classification(str, Enum):
    MARKUP = "markup"
    PROSE = "prose"


class RenderMode(str, Enum):
    """渲染方式，由 (内容, 分类, 是否流式) 唯一决定。"""

    PENDING = "pending"
    PLAIN_TEXT = "plain_text"
    PROSE = "prose"
    RAW_MARKUP = "raw_markup"


class TurnState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass
class TurnResult:
    """一轮对话结束后的结果。

    - state: COMPLETED 或 ERRORED。
    - message: 助手消息的最终快照。
    - session: 本轮使用的 StreamSession（只读参考，不再复用）。
    - error: 出错时的原始异常。
    """

    state: TurnState
    message: Message
    session: StreamSession = field(default_factory=StreamSession)
    error: Optional[StreamError] = None

    @property
    def ok(self) -> bool:
        return self.state is TurnState.COMPLETED
