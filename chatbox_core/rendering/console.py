"""Terminal renderer built on rich.

Targets are anything with an ``update(renderable)`` method, e.g. ``rich.live.Live``.
"""

from rich.markdown import Markdown
from rich.syntax import Syntax
from rich.text import Text


class RichRenderer:
    def __init__(self, code_theme: str = "monokai"):
        self._code_theme = code_theme

    def render_prose(self, text: str) -> Markdown:
        return Markdown(text, code_theme=self._code_theme)

    def set_plain_text(self, target, text: str) -> None:
        # Text() never interprets rich console markup
        target.update(Text(text))

    def insert_markup(self, target, text: str) -> None:
        """Terminal stand-in for inserting raw markup.

        A terminal cannot lay out HTML, so the finished markup is shown as
        highlighted source. The text is passed through as is, with no sanitizing.
        """
        target.update(Syntax(text, "html", theme=self._code_theme, word_wrap=True))
