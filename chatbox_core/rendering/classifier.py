"""判断累积内容应按标记（HTML）还是普通文本处理。"""

import re

from chatbox_core.domain.models import Classification

# 以 "<" + ASCII 字母开头，之后任意字符（含换行），且后面出现 ">"
_MARKUP_RE = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)


def classify(text: str) -> Classification:
    """每次内容更新都重新计算，不做缓存。

    内容只增不减，早期的模糊前缀（如 "<ta"）可能先被判为 PROSE，之后再变成 MARKUP。
    """
    trimmed = text.strip()
    if _MARKUP_RE.match(trimmed):
        return Classification.MARKUP
    return Classification.PROSE
