"""对外 API 服务模块。

提供简化的函数接口供上层应用调用。
"""

from typing import Any, Dict, List, Optional

from chatbox_core.agents.orchestrator import TurnOrchestrator
from chatbox_core.config.settings import settings
from chatbox_core.domain.conversation import MessageStore
from chatbox_core.domain.models import Message, TurnResult
from chatbox_core.providers import create_transport


_store: Optional[MessageStore] = None
_orchestrator: Optional[TurnOrchestrator] = None


def get_default_orchestrator() -> TurnOrchestrator:
    """获取默认的 TurnOrchestrator 实例（单例）。"""
    global _store, _orchestrator
    if _store is None:
        _store = MessageStore()
    if _orchestrator is None:
        _orchestrator = TurnOrchestrator(store=_store, transport=create_transport(), cfg=settings)
    return _orchestrator


def _message_to_dict(message: Message) -> Dict[str, Any]:
    return {"role": message.role, "content": message.content, "streaming": message.streaming}


def run_turn(user_input: str) -> Optional[Dict[str, Any]]:
    """运行一轮对话。

    Args:
        user_input: 用户输入内容

    Returns:
        包含状态、助手消息与片段数的字典；输入为空或已有进行中的轮次时返回 None。
        请求失败不会抛出异常，而是体现在 state 与 error 字段中。
    """
    result: Optional[TurnResult] = get_default_orchestrator().submit(user_input)
    if result is None:
        return None
    return {
        "state": result.state.value,
        "assistant_message": _message_to_dict(result.message),
        "fragments": result.session.fragments,
        "error": result.error.code if result.error else None,
    }


def get_conversation_messages() -> List[Dict[str, Any]]:
    """获取当前会话的所有消息。"""
    return [_message_to_dict(m) for m in get_default_orchestrator().store.messages()]


def reset_conversation() -> None:
    """开始一个新会话，旧会话的消息不受影响；有进行中的轮次时抛出 ConversationStateError。"""
    global _store
    _store = get_default_orchestrator().new_conversation()
