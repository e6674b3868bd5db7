from chatbox_core.streaming.consumer import DEFAULT_TERMINATOR, StreamConsumer

__all__ = ["DEFAULT_TERMINATOR", "StreamConsumer"]
