import threading

import pytest

from chatbox_core.agents.orchestrator import TurnOrchestrator
from chatbox_core.domain.conversation import MessageStore
from chatbox_core.domain.exceptions import (
    ConversationStateError,
    EmptyBodyError,
    NetworkError,
    ResponseStatusError,
    StreamCancelledError,
    StreamTimeoutError,
)
from chatbox_core.domain.models import RenderMode, StreamStatus, TurnState
from chatbox_core.rendering.coordinator import RenderCoordinator


class SettingsStub:
    terminator = "[END]"
    detect_split_terminator = False
    error_text = "Error: Failed to fetch response."
    status_error_text = "Error: Unable to connect to server."
    pending_text = "..."


class FakeSource:
    def __init__(self, chunks, error=None):
        self._chunks = [c.encode("utf-8") for c in chunks]
        self._error = error
        self.reads = 0
        self.closed = False

    def __iter__(self):
        for chunk in self._chunks:
            self.reads += 1
            yield chunk
        if self._error is not None:
            raise self._error

    def close(self):
        self.closed = True


class FakeTransport:
    name = "fake"

    def __init__(self, chunks=(), error=None, open_error=None):
        self._chunks = list(chunks)
        self._error = error
        self._open_error = open_error
        self.requests = []
        self.source = None

    def open_stream(self, message):
        self.requests.append(message)
        if self._open_error is not None:
            raise self._open_error
        self.source = FakeSource(self._chunks, self._error)
        return self.source


class Recorder:
    def __init__(self):
        self.snapshots = []

    def __call__(self, message):
        self.snapshots.append(message)


def make(transport, on_update=None):
    store = MessageStore()
    return TurnOrchestrator(store=store, transport=transport, on_update=on_update, cfg=SettingsStub()), store


def streaming_transitions(snapshots):
    flags = [s.streaming for s in snapshots]
    return sum(1 for a, b in zip(flags, flags[1:]) if a and not b)


def test_turn_completes_with_concatenated_content():
    recorder = Recorder()
    transport = FakeTransport(["Hello", ", ", "world"])
    orch, store = make(transport, recorder)
    result = orch.submit("hi")
    assert result.state is TurnState.COMPLETED
    assert result.ok
    assert result.message.content == "Hello, world"
    assert result.message.streaming is False
    assert result.session.status is StreamStatus.COMPLETED
    assert result.session.buffer == "Hello, world"
    assert [(m.role, m.content) for m in store.messages()] == [("user", "hi"), ("assistant", "Hello, world")]
    assert transport.requests == ["hi"]
    assert transport.source.closed
    assert orch.state is TurnState.IDLE
    assert streaming_transitions(recorder.snapshots) == 1
    assert recorder.snapshots[-1].streaming is False


def test_terminator_stops_consumption():
    transport = FakeTransport(["a", "b", "[END]", "ignored"])
    orch, store = make(transport)
    result = orch.submit("go")
    assert result.message.content == "ab"
    assert transport.source.reads == 3
    assert result.session.fragments == 2


def test_blank_submission_is_ignored():
    transport = FakeTransport(["x"])
    orch, store = make(transport)
    assert orch.submit("   ") is None
    assert orch.submit("") is None
    assert transport.requests == []
    assert len(store) == 0


def test_submission_during_active_turn_is_rejected():
    seen = {}
    transport = FakeTransport(["one", "two"])

    def on_update(message):
        if message.content == "one" and "nested" not in seen:
            before = len(orch.store)
            seen["nested"] = orch.submit("second")
            seen["len_before"] = before
            seen["len_after"] = len(orch.store)
            seen["state"] = orch.state

    orch, store = make(transport, on_update)
    result = orch.submit("first")
    assert seen["nested"] is None
    assert seen["len_before"] == seen["len_after"] == 2
    assert seen["state"] is TurnState.STREAMING
    assert transport.requests == ["first"]
    assert result.message.content == "onetwo"
    assert len(store) == 2


def test_non_success_response_produces_error_message():
    recorder = Recorder()
    error = ResponseStatusError(code="RESPONSE_STATUS", message="status 500", http_status=500)
    orch, store = make(FakeTransport(open_error=error), recorder)
    result = orch.submit("hello")
    assert result.state is TurnState.ERRORED
    assert result.error is error
    assert result.message.content == SettingsStub.status_error_text
    assert result.message.streaming is False
    assert [m.role for m in store.messages()] == ["user", "assistant"]
    assert not store.has_streaming()
    assert orch.state is TurnState.IDLE
    assert streaming_transitions(recorder.snapshots) == 1


def test_error_text_depends_on_failure_kind():
    cases = [
        (EmptyBodyError(code="EMPTY_BODY", message="no body"), SettingsStub.status_error_text),
        (ResponseStatusError(code="RESPONSE_STATUS", message="302", http_status=302), SettingsStub.status_error_text),
        (NetworkError(code="NETWORK_ERROR", message="refused"), SettingsStub.error_text),
        (StreamTimeoutError(code="STREAM_TIMEOUT", message="slow"), SettingsStub.error_text),
    ]
    for error, text in cases:
        orch, store = make(FakeTransport(open_error=error))
        result = orch.submit("hello")
        assert result.state is TurnState.ERRORED
        assert store.last().content == text


def test_mid_stream_failure_overwrites_partial_content():
    recorder = Recorder()
    transport = FakeTransport(["partial "], error=NetworkError(code="NETWORK_ERROR", message="reset"))
    orch, store = make(transport, recorder)
    result = orch.submit("hello")
    assert result.state is TurnState.ERRORED
    assert result.message.content == SettingsStub.error_text
    assert result.session.status is StreamStatus.ERRORED
    assert result.session.buffer == "partial "
    assert transport.source.closed
    assert streaming_transitions(recorder.snapshots) == 1


def test_read_timeout_forces_error():
    transport = FakeTransport(["a"], error=StreamTimeoutError(code="STREAM_TIMEOUT", message="slow"))
    orch, store = make(transport)
    result = orch.submit("hello")
    assert result.state is TurnState.ERRORED
    assert isinstance(result.error, StreamTimeoutError)
    assert store.last().streaming is False


def test_cancel_between_reads():
    transport = FakeTransport(["a", "b", "c"])

    def on_update(message):
        if message.content == "a":
            assert orch.cancel() is True

    orch, store = make(transport, on_update)
    result = orch.submit("hello")
    assert result.state is TurnState.ERRORED
    assert isinstance(result.error, StreamCancelledError)
    assert transport.source.reads == 1
    assert orch.cancel() is False


def test_unexpected_error_still_clears_streaming_flag():
    transport = FakeTransport(["a", "b"])

    def on_update(message):
        if message.content == "a":
            raise RuntimeError("display failed")

    orch, store = make(transport, on_update)
    with pytest.raises(RuntimeError):
        orch.submit("hello")
    assert store.last().streaming is False
    assert orch.state is TurnState.IDLE


def test_next_turn_after_error():
    orch, store = make(FakeTransport(open_error=NetworkError(code="NETWORK_ERROR", message="down")))
    orch.submit("one")
    orch._transport = FakeTransport(["fine"])
    result = orch.submit("two")
    assert result.ok
    assert [m.content for m in store.messages()] == [
        "one",
        SettingsStub.error_text,
        "two",
        "fine",
    ]


def test_expense_table_scenario_renders_markup_only_after_completion():
    calls = []

    class Renderer:
        def render_prose(self, text):
            calls.append(("prose", text))
            return text

        def set_plain_text(self, target, text):
            calls.append(("plain", text))

        def insert_markup(self, target, text):
            calls.append(("markup", text))

    class Target:
        def update(self, renderable):
            pass

    coordinator = RenderCoordinator(Renderer(), pending_text="...")
    target = Target()
    modes = []

    def on_update(message):
        modes.append((message.streaming, coordinator.render(target, message)))

    transport = FakeTransport(["<table>", "<tr><td>1</td></tr>", "</table>", "[END]"])
    orch, store = make(transport, on_update)
    result = orch.submit("show my expenses")

    assert result.message.content == "<table><tr><td>1</td></tr></table>"
    assert modes[0] == (True, RenderMode.PENDING)
    assert all(mode is RenderMode.PLAIN_TEXT for streaming, mode in modes[1:-1])
    assert modes[-1] == (False, RenderMode.RAW_MARKUP)
    markup_calls = [c for c in calls if c[0] == "markup"]
    assert markup_calls == [("markup", "<table><tr><td>1</td></tr></table>")]
    assert calls[-1][0] == "markup"


def test_new_conversation_swaps_in_empty_store():
    orch, store = make(FakeTransport(["ok"]))
    orch.submit("hi")
    fresh = orch.new_conversation()
    assert fresh is orch.store
    assert fresh is not store
    assert len(fresh) == 0
    assert [m.content for m in store.messages()] == ["hi", "ok"]
    orch.submit("again")
    assert [m.content for m in fresh.messages()] == ["again", "ok"]
    assert len(store) == 2


def test_new_conversation_refused_during_turn():
    seen = {}

    def on_update(message):
        if message.content == "a" and "error" not in seen:
            with pytest.raises(ConversationStateError) as exc:
                orch.new_conversation()
            seen["error"] = exc.value

    orch, store = make(FakeTransport(["a", "b"]), on_update)
    result = orch.submit("hi")
    assert seen["error"].code == "TURN_IN_PROGRESS"
    assert orch.store is store
    assert result.message.content == "ab"


class RecordingLock:
    """记录每次释放锁时的状态，用于确认状态切换都在锁内完成。"""

    def __init__(self, orch):
        self._orch = orch
        self._lock = threading.Lock()
        self.released_with = []

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *args):
        self.released_with.append(self._orch._state)
        self._lock.release()
        return False


def test_state_transitions_happen_under_lock():
    orch, store = make(FakeTransport(["a"]))
    lock = RecordingLock(orch)
    orch._state_lock = lock
    orch.submit("hi")
    assert lock.released_with == [
        TurnState.SUBMITTING,
        TurnState.STREAMING,
        TurnState.COMPLETED,
        TurnState.IDLE,
    ]

    orch, store = make(FakeTransport(open_error=NetworkError(code="NETWORK_ERROR", message="down")))
    lock = RecordingLock(orch)
    orch._state_lock = lock
    orch.submit("hi")
    assert lock.released_with == [TurnState.SUBMITTING, TurnState.ERRORED, TurnState.IDLE]
