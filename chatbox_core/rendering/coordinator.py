"""渲染协调器。

根据消息快照选择渲染方式，并把实际绘制交给外部渲染器：

- render_prose(text) -> displayable：结构化文本（Markdown）渲染。
- set_plain_text(target, text)：按字面文本展示，不做任何结构解析。
- insert_markup(target, text)：把原始标记直接插入目标。

注意：insert_markup 之前不做任何清洗，服务端内容可以注入任意结构或可执行内容，
生产环境需要在此之前加入清洗步骤。
"""

from typing import Any, Optional, Protocol

from chatbox_core.config.settings import settings
from chatbox_core.domain.models import Classification, Message, RenderMode
from chatbox_core.rendering.classifier import classify


class RenderTarget(Protocol):
    def update(self, renderable: Any) -> None:
        ...


class Renderer(Protocol):
    def render_prose(self, text: str) -> Any:
        ...

    def set_plain_text(self, target: RenderTarget, text: str) -> None:
        ...

    def insert_markup(self, target: RenderTarget, text: str) -> None:
        ...


def select_render_mode(content: str, streaming: bool, classification: Classification) -> RenderMode:
    """纯函数：由 (内容, 是否流式, 分类) 决定渲染方式。"""
    if not content:
        return RenderMode.PENDING
    if classification is Classification.PROSE:
        return RenderMode.PROSE
    if streaming:
        # 未完成的标记只按字面文本展示，避免半截标签或提前执行嵌入内容
        return RenderMode.PLAIN_TEXT
    return RenderMode.RAW_MARKUP


class RenderCoordinator:
    def __init__(self, renderer: Renderer, pending_text: Optional[str] = None):
        self._renderer = renderer
        self._pending_text = settings.pending_text if pending_text is None else pending_text

    def render(self, target: RenderTarget, message: Message) -> RenderMode:
        """渲染一条消息的当前快照，返回所用的渲染方式。"""
        content = message.content
        mode = select_render_mode(content, message.streaming, classify(content))
        if mode is RenderMode.PENDING:
            self._renderer.set_plain_text(target, self._pending_text)
        elif mode is RenderMode.PROSE:
            target.update(self._renderer.render_prose(content))
        elif mode is RenderMode.PLAIN_TEXT:
            self._renderer.set_plain_text(target, content)
        else:
            self._renderer.insert_markup(target, content)
        return mode
