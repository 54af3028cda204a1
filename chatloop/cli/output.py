"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from chatloop.llm.types import (
    ContentChunk,
    DoneChunk,
    ErrorChunk,
    StreamChunk,
    ToolCallChunk,
    ToolResultChunk,
)


class OutputFormatter:
    """Rich-based output formatting for the chatloop CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_adapter_list(self, adapters: list[tuple[str, str, list[str]]]) -> None:
        if not adapters:
            self.console.print("[dim]No adapters configured.[/dim]")
            return

        table = Table(title="Adapters")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("URL")
        table.add_column("Models")

        for name, url, models in adapters:
            table.add_row(name, url, ", ".join(models))

        self.console.print(table)

    def format_chunk(self, chunk: StreamChunk) -> None:
        """Render one stream chunk inline."""
        if isinstance(chunk, ContentChunk):
            if chunk.delta:
                self.console.print(chunk.delta, end="", markup=False, highlight=False)
            elif chunk.content:
                # Synthetic announcement chunk (no delta).
                self.console.print(f"\n[dim]{escape(chunk.content)}[/dim]")
        elif isinstance(chunk, ToolCallChunk):
            if chunk.tool_call.function.name:
                self.console.print(
                    f"\n[cyan]-> {chunk.tool_call.function.name}[/cyan]", end=""
                )
        elif isinstance(chunk, ToolResultChunk):
            self.console.print(
                f"\n  [{chunk.tool_name}] {chunk.result[:200]}",
                markup=False,
                highlight=False,
            )
        elif isinstance(chunk, ErrorChunk):
            self.console.print(f"\n[red]Error:[/red] {escape(chunk.message)}")
        elif isinstance(chunk, DoneChunk):
            self.format_done(chunk)

    def format_done(self, chunk: DoneChunk) -> None:
        usage = ""
        if chunk.usage:
            usage = (
                f" tokens={chunk.usage.total_tokens}"
                f" (prompt={chunk.usage.prompt_tokens},"
                f" completion={chunk.usage.completion_tokens})"
            )
        self.console.print(f"\n[dim]finish={chunk.finish_reason}{usage}[/dim]")

    def format_chunk_json(self, chunk: StreamChunk) -> None:
        self.console.print_json(json.dumps(chunk.to_dict()))

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Panel(
            Syntax(config_json, "json", theme="monokai"),
            title="Effective Configuration",
        ))
