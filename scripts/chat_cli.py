#!/usr/bin/env python3
"""Interactive chat CLI that streams replies from the model exchange endpoint."""

import asyncio
import signal
import sys

from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from chatstream.clients.stream import ChatStreamClient
from chatstream.clients.telemetry import TelemetryClient
from chatstream.config import MODEL_OPTIONS, ChatConfig
from chatstream.models.messages import Message
from chatstream.services.conversations import ConversationManager, JsonFileStorage
from chatstream.services.session import ChatSession
from chatstream.utils.logging import LogConfig, setup_logging

HELP_TEXT = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /new - Start a new conversation
• /list - List stored conversations
• /switch N - Switch to conversation N from /list
• /delete N - Delete conversation N from /list
• /model [id] - Show or change the model
• /models - List known models
• /stats - Show stats for the last reply
• /retry - Retry the last failed send
• /regen - Regenerate the last reply
• /trim [n] - Collapse history, keeping the last n messages
• /quit or /exit - Exit the chat

[bold]Tips:[/bold]
• Press Ctrl-C while a reply is streaming to stop it
"""


class ChatCLI:
    """Interactive terminal front end for a ChatSession."""

    def __init__(self, config: ChatConfig):
        """Initialize chat CLI."""
        self.config = config
        self.console = Console()
        self.stream_client = ChatStreamClient(config)
        self.telemetry = TelemetryClient(config)
        self.session = ChatSession(self.stream_client, config, telemetry=self.telemetry)
        self.conversations = ConversationManager(
            JsonFileStorage(config.storage_path), debounce_seconds=config.persist_debounce_seconds
        )
        self._live: Live | None = None

        self.session.load(self.conversations.active.messages)
        self.session.subscribe(self._on_change)

    async def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Chatstream - Interactive Chat[/bold blue]\n"
                f"Endpoint: {self.config.endpoint_url}\n"
                f"Model: {self.session.model_id}\n"
                "Commands: /help, /new, /quit",
                border_style="blue",
            )
        )
        self._show_history()

        try:
            while True:
                user_input = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]You[/bold cyan]")
                command, _, argument = user_input.strip().partition(" ")
                command = command.lower()

                if command in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command == "/help":
                    self.console.print(Panel(HELP_TEXT.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))
                elif command == "/new":
                    self.conversations.new_conversation()
                    self.session.reset()
                    self.console.print("[yellow]Started a new conversation[/yellow]")
                elif command == "/list":
                    self._show_conversations()
                elif command == "/switch":
                    self._switch(argument)
                elif command == "/delete":
                    self._delete(argument)
                elif command == "/model":
                    self._model(argument)
                elif command == "/models":
                    self._show_models()
                elif command == "/stats":
                    self._show_stats()
                elif command == "/retry":
                    await self._streaming(self.session.retry_last())
                elif command == "/regen":
                    await self._streaming(self.session.regenerate())
                elif command == "/trim":
                    self._trim(argument)
                elif user_input.strip():
                    self.console.print(Panel(Text(user_input.strip()), title="[cyan]You[/cyan]", border_style="cyan"))
                    await self._streaming(self.session.send_message(user_input))

        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.conversations.flush()
            await self.telemetry.aclose()
            await self.stream_client.aclose()
            self.console.print("\n[yellow]Goodbye![/yellow]")

    async def _streaming(self, operation) -> None:
        """Run a streaming operation with Ctrl-C bound to stop."""
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, self.session.stop)
        try:
            with Live(self._render_reply(), console=self.console, refresh_per_second=12) as live:
                self._live = live
                await operation
                live.update(self._render_reply())
        finally:
            self._live = None
            loop.remove_signal_handler(signal.SIGINT)

        self._show_notification()
        if self.session.stream_stats and self.session.stream_stats.duration_ms is not None:
            self.console.print(f"[dim]{self.session.stream_stats.describe()}[/dim]")

    def _on_change(self, session: ChatSession) -> None:
        self.conversations.update_active(session.all_messages)
        if self._live is not None:
            self._live.update(self._render_reply())

    def _render_reply(self) -> Panel:
        last = self.session.store.last
        if last is None or last.role != "assistant":
            return Panel(Text("Thinking...", style="dim"), border_style="dim")
        return self._render_message(last)

    def _render_message(self, message: Message) -> Panel:
        body = Markdown(message.content or " ")
        if message.error:
            body = Group(body, Text(f"Error: {message.error}", style="bold red"))

        if message.role == "user":
            return Panel(Text(message.content), title="[cyan]You[/cyan]", border_style="cyan")
        if message.role == "system":
            return Panel(body, title="[yellow]System[/yellow]", border_style="yellow")

        title = "[bold green]Assistant[/bold green]"
        if message.is_streaming:
            title += " [dim](streaming)[/dim]"
        return Panel(body, title=title, border_style="green", padding=(1, 2))

    def _show_history(self) -> None:
        if self.session.archived_count:
            self.console.print(f"[dim]{self.session.archived_count} earlier messages hidden for performance.[/dim]")
        for message in self.session.messages:
            self.console.print(self._render_message(message))

    def _show_notification(self) -> None:
        notification = self.session.notification
        if notification is None:
            return
        style = {"error": "red", "warning": "yellow", "info": "blue"}[notification.level]
        hint = " Type /retry to try again." if notification.level == "error" else ""
        self.console.print(f"[{style}]{notification.message}[/{style}]{hint}")

    def _show_conversations(self) -> None:
        table = Table(title="Conversations")
        table.add_column("#", justify="right")
        table.add_column("Title")
        table.add_column("Messages", justify="right")
        for index, record in enumerate(self.conversations.conversations, start=1):
            marker = "*" if record.id == self.conversations.active_id else ""
            table.add_row(f"{index}{marker}", record.title, str(len(record.messages)))
        self.console.print(table)

    def _pick_conversation(self, argument: str) -> str | None:
        try:
            index = int(argument) - 1
        except ValueError:
            self.console.print("[red]Give a conversation number from /list[/red]")
            return None
        if not 0 <= index < len(self.conversations.conversations):
            self.console.print("[red]No such conversation[/red]")
            return None
        return self.conversations.conversations[index].id

    def _switch(self, argument: str) -> None:
        conversation_id = self._pick_conversation(argument)
        if conversation_id is None:
            return
        record = self.conversations.select(conversation_id)
        if record is not None:
            self.session.load(record.messages)
            self.console.print(f"[yellow]Switched to {record.title}[/yellow]")
            self._show_history()

    def _delete(self, argument: str) -> None:
        conversation_id = self._pick_conversation(argument)
        if conversation_id is None:
            return
        was_active = conversation_id == self.conversations.active_id
        active = self.conversations.delete(conversation_id)
        if was_active:
            self.session.load(active.messages)
        self.console.print("[yellow]Conversation deleted[/yellow]")

    def _model(self, argument: str) -> None:
        if not argument:
            self.console.print(f"Current model: [bold]{self.session.model_id}[/bold]")
            return
        if self.config.find_model(argument) is None:
            self.console.print(f"[yellow]{argument} is not in the catalog, using it as-is[/yellow]")
        self.session.set_model(argument)
        self.console.print(f"[green]Model set to {argument}[/green]")

    def _show_models(self) -> None:
        table = Table(title="Models")
        table.add_column("Id")
        table.add_column("Label")
        table.add_column("Description")
        for option in MODEL_OPTIONS:
            table.add_row(option.id, option.label, option.description)
        self.console.print(table)

    def _show_stats(self) -> None:
        stats = self.session.stream_stats
        if stats is None:
            self.console.print("[dim]No stats yet[/dim]")
            return
        self.console.print(stats.describe())

    def _trim(self, argument: str) -> None:
        keep = self.config.trim_keep
        if argument:
            try:
                keep = int(argument)
            except ValueError:
                self.console.print("[red]/trim takes a number of messages to keep[/red]")
                return
            if keep < 0:
                self.console.print("[red]/trim needs a number of messages to keep, zero or more[/red]")
                return

        confirm = Prompt.ask(f"Collapse all but the last {keep} messages? This cannot be undone", choices=["y", "n"])
        if confirm != "y":
            return
        if self.session.trim(keep):
            self.console.print("[yellow]Conversation trimmed[/yellow]")
        else:
            self.console.print("[dim]Nothing to trim[/dim]")


def main():
    """Main entry point for the chat CLI."""
    setup_logging(LogConfig(level="WARNING"))
    config = ChatConfig.from_env()
    if len(sys.argv) > 1:
        config = config.model_copy(update={"endpoint_url": sys.argv[1]})

    chat = ChatCLI(config)
    asyncio.run(chat.start())


if __name__ == "__main__":
    main()
