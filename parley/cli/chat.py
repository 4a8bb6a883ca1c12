"""Interactive chat session handler."""

from __future__ import annotations

import asyncio

from rich.console import Console

from parley.cli.output import OutputFormatter
from parley.conversation.conversation import Conversation
from parley.conversation.store import HistoryStore
from parley.errors import ParleyError
from parley.llm.chunks import Content


class ChatHandler:
    """
    Manages the interactive chat loop.

    Streams replies to the console, handles inline commands, and saves the
    conversation to the history store after every completed turn.
    """

    def __init__(
        self,
        conversation: Conversation,
        store: HistoryStore | None = None,
        console: Console | None = None,
    ) -> None:
        self.conversation = conversation
        self.store = store
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self._running = True

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        parts = command.strip().split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/history":
            self.formatter.format_history(self.conversation.history)
            return True

        if cmd == "/rollback":
            removed = self.conversation.rollback()
            if removed is None:
                self.console.print("  [dim]Nothing to roll back.[/dim]")
            else:
                self.console.print("  Removed the last exchange.")
                await self._persist()
            return True

        if cmd == "/save":
            if not arg:
                self.console.print("  [red]Usage:[/red] /save PATH")
                return True
            path = self.conversation.save_history_json(arg)
            self.console.print(f"  Saved history to {path}")
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit       - Exit the chat\n"
                "  /history    - Show conversation history\n"
                "  /rollback   - Drop the last request and reply\n"
                "  /save PATH  - Write history to a JSON file\n"
                "  /help       - Show this help\n"
            )
            return True

        return False

    async def handle_input(self, user_input: str) -> None:
        """Send user input and stream the reply."""
        try:
            async for chunk in self.conversation.send_message_streaming(user_input):
                if isinstance(chunk, Content) and chunk.response_index == 0:
                    self.console.print(chunk.delta, end="", markup=False)
        except ParleyError as e:
            self.console.print(f"\n[red]Error:[/red] {e}")
            return

        # Newline after streaming
        self.console.print()
        await self._persist()

    async def _persist(self) -> None:
        if self.store is not None:
            await self.conversation.save(self.store)

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]parley[/bold] - chat completion client\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )
        if self.conversation.conversation_id:
            self.console.print(f"[dim]Conversation {self.conversation.conversation_id}[/dim]\n")

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            self.console.print("[dim]assistant>[/dim] ", end="")
            await self.handle_input(user_input)
