"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from chatwire.errors import ProviderError
from chatwire.llm.types import ModelInfo, ToolCall, Usage


class OutputFormatter:
    """Rich-based output formatting for the chatwire CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_model_list(self, models: list[ModelInfo], provider_name: str = "") -> None:
        if not models:
            self.console.print("[dim]No models reported.[/dim]")
            return

        title = f"Models ({provider_name})" if provider_name else "Models"
        table = Table(title=title)
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Context", justify="right", no_wrap=True)
        table.add_column("Description")

        for m in models:
            context = str(m.context_length) if m.context_length else "-"
            table.add_row(m.id, m.name, context, m.description or "")

        self.console.print(table)

    def format_provider_list(self, names: list[str], active: str | None = None) -> None:
        table = Table(title="Registered Providers")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Active", no_wrap=True)

        for name in names:
            marker = Text("yes", style="green") if name == active else Text("")
            table.add_row(name, marker)

        self.console.print(table)

    def format_provider_help(self, name: str, help_text: str) -> None:
        self.console.print(Panel(help_text, title=f"Provider: {name}"))

    def format_tool_calls(self, tool_calls: list[ToolCall]) -> None:
        for tc in tool_calls:
            self.console.print(f"[yellow]tool call[/yellow] [bold]{tc.name}[/bold] [dim]({tc.id})[/dim]")
            args_json = json.dumps(tc.arguments, indent=2, default=str)
            self.console.print(Syntax(args_json, "json", theme="monokai"))

    def format_usage(self, usage: Usage | None, finish_reason: str | None = None) -> None:
        parts: list[str] = []
        if finish_reason:
            parts.append(f"finish={finish_reason}")
        if usage is not None:
            if usage.prompt_tokens is not None:
                parts.append(f"prompt={usage.prompt_tokens}")
            if usage.completion_tokens is not None:
                parts.append(f"completion={usage.completion_tokens}")
            if usage.total_tokens is not None:
                parts.append(f"total={usage.total_tokens}")
        if parts:
            self.console.print(f"[dim]{' '.join(parts)}[/dim]")

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))

    def format_error(self, error: ProviderError) -> None:
        self.console.print(Panel(
            Text(error.detailed_message()),
            title=f"[red]{type(error).__name__}[/red]",
            border_style="red",
        ))
