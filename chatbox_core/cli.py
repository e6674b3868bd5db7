"""Command-line interface for the chatbox client."""

from typing import Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.prompt import Prompt

from chatbox_core import __version__
from chatbox_core.agents.orchestrator import TurnOrchestrator
from chatbox_core.config.settings import settings
from chatbox_core.domain.conversation import MessageStore
from chatbox_core.domain.models import Message
from chatbox_core.providers.http_client import ChatHttpClient
from chatbox_core.rendering.console import RichRenderer
from chatbox_core.rendering.coordinator import RenderCoordinator

app = typer.Typer(
    name="chatbox",
    help="ExpensePro - AI Agent Expense Tracker chat client",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"chatbox v{__version__}")
        raise typer.Exit()


class LiveTurnView:
    """Redraws the in-flight assistant message on every store update."""

    def __init__(self, coordinator: RenderCoordinator):
        self._coordinator = coordinator
        self._live: Optional[Live] = None

    def __call__(self, message: Message) -> None:
        if self._live is not None and message.role == "assistant":
            self._coordinator.render(self._live, message)
            self._live.refresh()

    def run(self, orchestrator: TurnOrchestrator, user_input: str):
        with Live(console=console, auto_refresh=False, vertical_overflow="visible") as live:
            self._live = live
            try:
                result = orchestrator.submit(user_input)
            finally:
                self._live = None
        return result


def _build(url: Optional[str], split_terminator: bool) -> tuple[TurnOrchestrator, LiveTurnView]:
    cfg = settings
    if split_terminator:
        cfg = settings.model_copy(update={"detect_split_terminator": True})
    view = LiveTurnView(RenderCoordinator(RichRenderer(), pending_text=cfg.pending_text))
    orchestrator = TurnOrchestrator(
        store=MessageStore(),
        transport=ChatHttpClient(cfg, url=url),
        on_update=view,
        cfg=cfg,
    )
    return orchestrator, view


@app.command()
def chat(
    message: Optional[str] = typer.Argument(
        None,
        help="Message to send (starts interactive mode if not provided)",
    ),
    url: Optional[str] = typer.Option(
        None,
        "--url",
        "-u",
        help="Chat endpoint URL (defaults to CHAT_BASE_URL + CHAT_PATH)",
    ),
    split_terminator: bool = typer.Option(
        False,
        "--split-terminator/--no-split-terminator",
        help="Detect an end marker split across stream chunks",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Send one message, or chat interactively when no message is given."""
    orchestrator, view = _build(url, split_terminator)

    if message:
        result = view.run(orchestrator, message)
        if result is not None and not result.ok:
            raise typer.Exit(1)
        return

    console.print(
        Panel(
            f"[bold]ExpensePro[/]\n\n"
            f"Endpoint: [cyan]{url or settings.chat_url}[/]\n\n"
            f"Type your message and press Enter to chat.\n"
            f"Type [bold]exit[/] or [bold]quit[/] to leave.\n"
            f"Type [bold]clear[/] to reset conversation.",
            title="AI Agent Expense Tracker",
            border_style="blue",
        )
    )

    while True:
        try:
            user_input = Prompt.ask("\n[bold green]You[/]")
        except EOFError:
            break

        if user_input.lower() in ["exit", "quit"]:
            console.print("[dim]Goodbye![/]")
            break

        if user_input.lower() == "clear":
            orchestrator.new_conversation()
            console.print("[dim]Conversation cleared[/]")
            continue

        if not user_input.strip():
            continue

        console.print("\n[bold blue]Assistant[/]")
        try:
            view.run(orchestrator, user_input)
        except KeyboardInterrupt:
            orchestrator.cancel()
            console.print("\n[dim]Use 'exit' or 'quit' to leave[/]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
