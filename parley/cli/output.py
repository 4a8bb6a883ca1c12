"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Iterable

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from parley.llm.types import ChatMessage, Role

ROLE_COLORS = {
    Role.SYSTEM: "magenta",
    Role.USER: "blue",
    Role.ASSISTANT: "green",
    Role.FUNCTION: "cyan",
}


class OutputFormatter:
    """Rich-based output formatting for the parley CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_conversation_list(self, conversations: list[dict]) -> None:
        if not conversations:
            self.console.print("[dim]No conversations found.[/dim]")
            return

        table = Table(title="Conversations")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Updated", no_wrap=True)
        table.add_column("Messages", justify="right")
        table.add_column("Metadata")

        for c in conversations:
            table.add_row(
                c.get("conversation_id", "?"),
                c.get("updated_at", "?"),
                str(c.get("message_count", 0)),
                str(c.get("metadata", {})),
            )

        self.console.print(table)

    def format_history(self, messages: Iterable[ChatMessage]) -> None:
        empty = True
        for m in messages:
            empty = False
            color = ROLE_COLORS.get(m.role, "white")
            label = m.role.value if m.name is None else f"{m.role.value}:{m.name}"
            if m.function_call is not None:
                content = f"{m.function_call.name}({m.function_call.arguments[:80]})"
            else:
                content = (m.content or "")[:200]
            self.console.print(f"  [{color}]{label:>18s}[/{color}]  ", end="")
            self.console.print(content, markup=False)
        if empty:
            self.console.print("[dim]No messages.[/dim]")

    def format_config(self, config: dict) -> None:
        json_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(json_str, "json", theme="monokai"))

    def export_history(self, messages: Iterable[ChatMessage], fmt: str = "markdown") -> str:
        if fmt == "json":
            return json.dumps([m.to_dict() for m in messages], indent=2)

        lines: list[str] = ["# Conversation\n"]
        for m in messages:
            if m.role is Role.SYSTEM:
                lines.append(f"*System:* {m.content}\n")
            elif m.role is Role.USER:
                lines.append(f"> {m.content}\n")
            elif m.role is Role.FUNCTION:
                lines.append(f"**Function `{m.name}` returned:**\n")
                lines.append(f"```json\n{m.content}\n```\n")
            elif m.function_call is not None:
                lines.append(f"**Assistant called `{m.function_call.name}`:**\n")
                lines.append(f"```json\n{m.function_call.arguments}\n```\n")
            else:
                lines.append(f"{m.content}\n")
        return "\n".join(lines)
