"""单轮对话编排。

状态机：IDLE → SUBMITTING → STREAMING → {COMPLETED, ERRORED} → IDLE。

一轮对话只发一次请求：打开字节流后依次追加用户消息与空的助手占位消息，
逐个片段追加到占位消息，结束后清除 streaming 标记；任何请求/流式错误都在这里
被捕获，转换成固定的错误提示文本，不会抛给调用方。
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from chatbox_core.config.settings import settings
from chatbox_core.domain.conversation import MessageStore
from chatbox_core.domain.exceptions import (
    ConversationStateError,
    EmptyBodyError,
    ResponseStatusError,
    StreamError,
)
from chatbox_core.domain.models import Message, StreamSession, TurnResult, TurnState
from chatbox_core.infrastructure.logging.logger import logger
from chatbox_core.providers.base import ByteStream, ChatTransport
from chatbox_core.streaming.consumer import StreamConsumer


UpdateCallback = Callable[[Message], None]


class TurnOrchestrator:
    def __init__(
        self,
        store: MessageStore,
        transport: ChatTransport,
        on_update: Optional[UpdateCallback] = None,
        cfg=settings,
    ):
        self._store = store
        self._transport = transport
        self._on_update = on_update
        self._settings = cfg
        self._state = TurnState.IDLE
        self._state_lock = threading.Lock()
        self._cancel_event: Optional[threading.Event] = None

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def store(self) -> MessageStore:
        return self._store

    def new_conversation(self) -> MessageStore:
        """换上一个新的空会话并返回它。原会话对象保持不变。

        Raises:
            ConversationStateError: 当前有进行中的轮次。
        """
        with self._state_lock:
            if self._state is not TurnState.IDLE:
                raise ConversationStateError(
                    code="TURN_IN_PROGRESS",
                    message="cannot start a new conversation while a turn is active",
                )
            self._store = MessageStore()
            return self._store

    def cancel(self) -> bool:
        """请求中止当前轮次，在下一次读取前生效。没有进行中的轮次时返回 False。"""
        with self._state_lock:
            if self._cancel_event is None:
                return False
            self._cancel_event.set()
            return True

    def submit(self, user_input: str) -> Optional[TurnResult]:
        """执行一轮对话。

        Args:
            user_input: 用户输入，空白输入直接忽略。

        Returns:
            本轮的 TurnResult；输入为空或已有进行中的轮次时返回 None，会话不变。
        """
        if not user_input or not user_input.strip():
            return None

        trace_id = f"tr-{uuid4().hex}"
        log_ctx: Dict[str, Any] = {"trace_id": trace_id, "transport": self._transport.name}
        with self._state_lock:
            if self._state is not TurnState.IDLE:
                self._log(logging.WARNING, "Rejected submission during active turn", log_ctx, state=self._state.value)
                return None
            self._state = TurnState.SUBMITTING
            cancel_event = threading.Event()
            self._cancel_event = cancel_event

        start_time = time.time()
        try:
            result = self._run_turn(user_input, cancel_event, log_ctx)
        finally:
            with self._state_lock:
                self._state = TurnState.IDLE
                self._cancel_event = None

        self._log(
            logging.INFO,
            "Completed turn",
            log_ctx,
            state=result.state.value,
            fragments=result.session.fragments,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return result

    def _run_turn(self, user_input: str, cancel_event: threading.Event, log_ctx: Dict[str, Any]) -> TurnResult:
        session = StreamSession()
        self._log(logging.INFO, "Opening stream", log_ctx, input_length=len(user_input))
        try:
            source = self._transport.open_stream(user_input)
        except StreamError as e:
            # 请求未能建立时也要留下一条终态的助手消息
            self._begin_messages(user_input)
            self._notify()
            return self._fail(session, e, log_ctx)

        try:
            self._set_state(TurnState.STREAMING)
            self._begin_messages(user_input)
            self._notify()
            return self._stream(source, session, cancel_event, log_ctx)
        finally:
            source.close()

    def _stream(
        self,
        source: ByteStream,
        session: StreamSession,
        cancel_event: threading.Event,
        log_ctx: Dict[str, Any],
    ) -> TurnResult:
        consumer = StreamConsumer(
            source,
            terminator=self._settings.terminator,
            detect_split_terminator=self._settings.detect_split_terminator,
            cancel_event=cancel_event,
        )
        try:
            for fragment in consumer.fragments():
                session = self._accumulate(session, fragment)
        except StreamError as e:
            return self._fail(session, e, log_ctx)
        except BaseException:
            # 包括 KeyboardInterrupt：streaming 标记在任何路径上都要被清除
            self._finish_errored(session)
            raise

        session.complete()
        self._store.complete_last()
        self._set_state(TurnState.COMPLETED)
        self._notify()
        self._log(
            logging.INFO,
            "Stream finished",
            log_ctx,
            finish_reason=consumer.finish_reason,
            content_length=len(session.buffer),
        )
        return TurnResult(state=TurnState.COMPLETED, message=self._store.last(), session=session)

    def _accumulate(self, session: StreamSession, fragment: str) -> StreamSession:
        self._store.append_to_last(fragment)
        session.append(fragment)
        self._notify()
        return session

    def _begin_messages(self, user_input: str) -> None:
        self._store.append("user", user_input)
        self._store.append("assistant", "", streaming=True)

    def _fail(self, session: StreamSession, error: StreamError, log_ctx: Dict[str, Any]) -> TurnResult:
        self._finish_errored(session, error)
        self._log(
            logging.ERROR,
            "Turn failed",
            log_ctx,
            code=error.code,
            error=error.message,
            http_status=error.http_status,
            fragments=session.fragments,
        )
        return TurnResult(state=TurnState.ERRORED, message=self._store.last(), session=session, error=error)

    def _finish_errored(self, session: StreamSession, error: Optional[StreamError] = None) -> None:
        if session.active:
            session.fail()
        last = self._store.last()
        if last is not None and last.streaming:
            self._store.overwrite_last(self._error_text(error))
            self._store.complete_last()
        self._set_state(TurnState.ERRORED)
        self._notify()

    def _error_text(self, error: Optional[StreamError]) -> str:
        # 服务端拒绝与连接/读取失败使用不同的提示
        if isinstance(error, (ResponseStatusError, EmptyBodyError)):
            return self._settings.status_error_text
        return self._settings.error_text

    def _set_state(self, state: TurnState) -> None:
        with self._state_lock:
            self._state = state

    def _notify(self) -> None:
        if self._on_update is None:
            return
        last = self._store.last()
        if last is not None:
            self._on_update(last)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
