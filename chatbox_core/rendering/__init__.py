"""内容分类与渲染。

- classifier: 判断内容是标记（HTML）还是普通文本。
- coordinator: 选择渲染方式并调用外部渲染器。
- console: 基于 rich 的终端渲染器实现。
"""

from chatbox_core.rendering.classifier import classify
from chatbox_core.rendering.coordinator import (
    RenderCoordinator,
    Renderer,
    RenderTarget,
    select_render_mode,
)

__all__ = ["classify", "RenderCoordinator", "Renderer", "RenderTarget", "select_render_mode"]
