"""Minimal demonstration of a single streamed turn."""

from chatbox_core.api.service import get_conversation_messages, run_turn

if __name__ == "__main__":
    question = "show my expenses"
    reply = run_turn(question)
    print("User:", question)
    print("Agent:", reply["assistant_message"]["content"] if reply else None)
    print("History:", get_conversation_messages())
