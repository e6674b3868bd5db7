"""会话消息存储。

MessageStore 保存一段有序、只追加的对话；唯一允许的原地修改是
对最后一条且仍在流式接收中的消息追加/覆盖内容。
所有操作都在同一把锁内完成，彼此之间是原子的。
"""

import threading
from typing import List, Optional

from chatbox_core.domain.exceptions import ConversationStateError
from chatbox_core.domain.models import Message, Role


class MessageStore:
    def __init__(self) -> None:
        self._messages: List[Message] = []
        self._lock = threading.RLock()

    def append(self, role: Role, content: str, streaming: bool = False) -> int:
        """追加一条消息并返回其下标。

        同一时刻最多只能有一条 streaming=True 的消息。
        """
        with self._lock:
            if streaming and self._has_streaming():
                raise ConversationStateError(
                    code="STREAM_IN_PROGRESS",
                    message="another message is still streaming",
                )
            self._messages.append(Message(role=role, content=content, streaming=streaming))
            return len(self._messages) - 1

    def append_to_last(self, delta: str) -> None:
        with self._lock:
            last = self._last()
            if last is None:
                return
            self._require_streaming(last)
            last.content = last.content + delta

    def overwrite_last(self, content: str) -> None:
        """整体替换最后一条消息的内容，仅用于写入错误提示。"""
        with self._lock:
            last = self._last()
            if last is None:
                return
            self._require_streaming(last)
            last.content = content

    def complete_last(self) -> None:
        with self._lock:
            last = self._last()
            if last is not None:
                last.streaming = False

    def last(self) -> Optional[Message]:
        with self._lock:
            last = self._last()
            return last.snapshot() if last is not None else None

    def messages(self) -> List[Message]:
        with self._lock:
            return [m.snapshot() for m in self._messages]

    def has_streaming(self) -> bool:
        with self._lock:
            return self._has_streaming()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    # ---- 内部方法（调用方需持有锁） ----

    def _last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def _has_streaming(self) -> bool:
        return any(m.streaming for m in self._messages)

    @staticmethod
    def _require_streaming(message: Message) -> None:
        if not message.streaming:
            raise ConversationStateError(
                code="MESSAGE_COMPLETED",
                message="the last message is no longer streaming",
            )
