"""
Main CLI application for chatloop-core.

Usage:
    chatloop chat PROMPT [--adapter NAME] [--model ID] [--max-iterations N] [--json] [--demo-tools]
    chatloop adapters
    chatloop config show|validate
    chatloop version
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from chatloop import __version__
from chatloop.config import build_ai, load_config
from chatloop.llm.types import Message
from chatloop.tools.base import Tool

app = typer.Typer(name="chatloop", help="Chatloop - streaming chat with tool execution")
config_app = typer.Typer(help="Configuration management")

app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "chatloop.yaml",
        Path.cwd() / "chatloop.yml",
        Path.home() / ".config" / "chatloop" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _demo_tools() -> list[Tool]:
    """Small built-in tools so ``chat --demo-tools`` exercises the tool loop."""

    def current_time(args: dict) -> str:
        return datetime.now(timezone.utc).isoformat(timespec="seconds")

    return [
        Tool(
            name="current_time",
            description="Return the current UTC date and time in ISO 8601 format.",
            input_schema={"type": "object", "properties": {}},
            execute=current_time,
        )
    ]


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    prompt: str = typer.Argument(..., help="User message"),
    adapter: Optional[str] = typer.Option(None, help="Adapter name"),
    model: Optional[str] = typer.Option(None, help="Model identifier"),
    max_iterations: Optional[int] = typer.Option(None, help="Max tool rounds"),
    system: Optional[str] = typer.Option(None, help="System prompt"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    as_json: bool = typer.Option(False, "--json", help="Print raw chunks as JSON"),
    demo_tools: bool = typer.Option(
        False, "--demo-tools", help="Offer built-in demo tools (current_time) to the model"
    ),
    log_level: Optional[str] = typer.Option(None, help="Log level override"),
):
    """
    Stream a single chat completion.

    Without --demo-tools no tools are offered, so the adapter stream is
    printed as is.
    """
    from chatloop.cli.output import OutputFormatter

    overrides = {}
    if adapter:
        overrides["defaults.adapter"] = adapter
    if model:
        overrides["defaults.model"] = model
    if max_iterations is not None:
        overrides["defaults.max_iterations"] = max_iterations
    if log_level:
        overrides["logging.level"] = log_level

    formatter = OutputFormatter(console)

    async def _run(cfg):
        ai = build_ai(cfg)
        async for chunk in ai.stream_chat(
            adapter=cfg.defaults.adapter,
            model=cfg.defaults.model,
            messages=[Message(role="user", content=prompt)],
            system_prompts=[system] if system else None,
            max_iterations=cfg.defaults.max_iterations,
            tools=_demo_tools() if demo_tools else None,
        ):
            if as_json:
                formatter.format_chunk_json(chunk)
            else:
                formatter.format_chunk(chunk)

    try:
        cfg = load_config(_get_config_path(), profile=profile, cli_overrides=overrides)
        _setup_logging(cfg.logging.level)
        asyncio.run(_run(cfg))
    except (KeyError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def adapters():
    """List configured adapters and their models."""
    from chatloop.cli.output import OutputFormatter

    cfg = load_config(_get_config_path())
    formatter = OutputFormatter(console)
    formatter.format_adapter_list([(a.name, a.url, a.models) for a in cfg.adapters])


@config_app.command("show")
def config_show():
    """Show effective config."""
    from chatloop.cli.output import OutputFormatter

    cfg = load_config(_get_config_path())
    formatter = OutputFormatter(console)
    formatter.format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate():
    """Validate config and show any issues."""
    config_path = _get_config_path()
    try:
        cfg = load_config(config_path)
        console.print("[green]Config is valid.[/green]")
        if config_path:
            console.print(f"  Loaded from: {config_path}")
        else:
            console.print("  [dim]No config file found, using defaults.[/dim]")
        console.print(f"  Adapters: {', '.join(a.name for a in cfg.adapters) or 'none'}")
        console.print(f"  Default: {cfg.defaults.adapter} ({cfg.defaults.model})")
        console.print(f"  Max iterations: {cfg.defaults.max_iterations}")
    except Exception as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """Show version."""
    console.print(f"chatloop-core v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
