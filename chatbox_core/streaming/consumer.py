"""把字节流转换为文本片段序列。

每次读取一个字节块并增量解码为一个片段：

- 非法字节序列替换为 U+FFFD，不会让整个流失败；跨块拆分的多字节字符会被正确拼接。
- 片段中任意位置出现结束标记时，整个片段被丢弃，不再继续读取，并关闭来源。
- 结束标记被拆分在两个片段之间时默认不做检测，两段都按普通内容交付；
  开启 detect_split_terminator 后使用滑动窗口保留末尾若干字符以识别拆分的标记。
"""

import codecs
import threading
from typing import Iterator, Optional

from chatbox_core.domain.exceptions import StreamCancelledError
from chatbox_core.providers.base import ByteStream

DEFAULT_TERMINATOR = "[END]"


class StreamConsumer:
    def __init__(
        self,
        source: ByteStream,
        terminator: str = DEFAULT_TERMINATOR,
        detect_split_terminator: bool = False,
        cancel_event: Optional[threading.Event] = None,
        encoding: str = "utf-8",
    ):
        if not terminator:
            raise ValueError("terminator must be a non-empty string")
        self._source = source
        self._terminator = terminator
        self._detect_split = detect_split_terminator
        self._cancel_event = cancel_event
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._started = False
        # "terminator" / "eof"，未结束时为 None
        self.finish_reason: Optional[str] = None

    def fragments(self) -> Iterator[str]:
        """返回惰性、有限、不可重启的片段生成器。"""
        if self._started:
            raise RuntimeError("stream fragments can only be consumed once")
        self._started = True
        if self._detect_split:
            return self._windowed_fragments()
        return self._plain_fragments()

    def __iter__(self) -> Iterator[str]:
        return self.fragments()

    def _plain_fragments(self) -> Iterator[str]:
        try:
            for text in self._decoded():
                if self._terminator in text:
                    self.finish_reason = "terminator"
                    return
                yield text
            self.finish_reason = "eof"
        finally:
            self._source.close()

    def _windowed_fragments(self) -> Iterator[str]:
        hold = len(self._terminator) - 1
        pending = ""
        try:
            for text in self._decoded():
                window = pending + text
                idx = window.find(self._terminator)
                if idx != -1:
                    self.finish_reason = "terminator"
                    if idx:
                        yield window[:idx]
                    return
                if hold and len(window) > hold:
                    ready, pending = window[:-hold], window[-hold:]
                elif hold:
                    ready, pending = "", window
                else:
                    ready, pending = window, ""
                if ready:
                    yield ready
            self.finish_reason = "eof"
            if pending:
                yield pending
        finally:
            self._source.close()

    def _decoded(self) -> Iterator[str]:
        """逐块读取并解码，两次读取之间检查取消标记。"""
        chunks = iter(self._source)
        while True:
            self._check_cancelled()
            try:
                chunk = next(chunks)
            except StopIteration:
                break
            text = self._decoder.decode(chunk)
            if text:
                yield text
        tail = self._decoder.decode(b"", final=True)
        if tail:
            yield tail

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise StreamCancelledError(code="CANCELLED", message="stream cancelled by caller")
