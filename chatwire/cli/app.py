"""
Main CLI application for chatwire.

Usage:
    chatwire chat PROMPT [--provider NAME] [--model ID] [--profile NAME] [--no-stream]
    chatwire models [--provider NAME] [--profile NAME]
    chatwire providers [NAME]
    chatwire config show|validate
    chatwire version
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from chatwire import __version__
from chatwire.cli.output import OutputFormatter
from chatwire.config import ChatwireConfig, find_config_path, load_config
from chatwire.errors import ConfigurationError, ProviderError
from chatwire.llm.registry import (
    create_provider,
    default_registry,
    provider_help,
    validate_provider_config,
)
from chatwire.llm.types import ChatRequest, ChatResponse, Message, Role
from chatwire.logging_setup import configure_logging

app = typer.Typer(name="chatwire", help="Chat with OpenAI-compatible and Gemini endpoints")
config_app = typer.Typer(help="Configuration management")

app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load(
    provider: str | None = None,
    model: str | None = None,
    profile: str | None = None,
    config_file: Path | None = None,
) -> ChatwireConfig:
    """Load config with CLI flag overrides and install logging."""
    try:
        cfg = load_config(
            config_file or find_config_path(),
            profile=profile,
            cli_overrides={"provider.name": provider, "provider.model": model},
        )
    except (KeyError, ValueError) as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)
    configure_logging(cfg.logging)
    return cfg


def _fail(error: ProviderError) -> None:
    OutputFormatter(console).format_error(error)
    raise typer.Exit(1)


async def _run_chat(cfg: ChatwireConfig, prompt: str, system: str | None, stream: bool) -> ChatResponse:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, ValueError):
        loop.add_signal_handler(signal.SIGINT, cancel.set)

    request = ChatRequest(
        messages=[Message(role=Role.USER, content=prompt)],
        system_instruction=system,
        temperature=cfg.provider.temperature,
        top_p=cfg.provider.top_p,
        max_tokens=cfg.provider.max_tokens,
        stream=stream,
    )

    def on_delta(text: str) -> None:
        console.print(text, end="", markup=False, highlight=False)

    try:
        async with create_provider(
            cfg.provider, truncation=cfg.truncation.to_policy()
        ) as llm:
            return await llm.chat(request, on_delta=on_delta, cancel=cancel)
    finally:
        with contextlib.suppress(NotImplementedError, ValueError):
            loop.remove_signal_handler(signal.SIGINT)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    prompt: str = typer.Argument(..., help="User message to send"),
    provider: Optional[str] = typer.Option(None, help="LLM provider name"),
    model: Optional[str] = typer.Option(None, help="Model identifier"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    system: Optional[str] = typer.Option(None, help="System instruction"),
    no_stream: bool = typer.Option(False, "--no-stream", help="Wait for the whole response"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
):
    """Send one prompt and print the response."""
    cfg = _load(provider, model, profile, config_file)
    formatter = OutputFormatter(console)
    stream = not no_stream

    try:
        response = asyncio.run(_run_chat(cfg, prompt, system, stream))
    except ProviderError as e:
        if stream:
            console.print()
        _fail(e)
        return

    if stream:
        # Newline after streaming
        console.print()
    elif response.text:
        console.print(response.text, markup=False, highlight=False)

    if response.tool_calls:
        formatter.format_tool_calls(response.tool_calls)
    formatter.format_usage(response.usage, response.finish_reason)


@app.command()
def models(
    provider: Optional[str] = typer.Option(None, help="LLM provider name"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
):
    """List the models the configured endpoint advertises."""
    cfg = _load(provider, None, profile, config_file)

    async def _run():
        async with create_provider(
            cfg.provider, truncation=cfg.truncation.to_policy()
        ) as llm:
            return llm.name, await llm.list_models()

    try:
        name, found = asyncio.run(_run())
    except ProviderError as e:
        _fail(e)
        return

    OutputFormatter(console).format_model_list(found, name)


@app.command()
def providers(
    name: Optional[str] = typer.Argument(None, help="Show configuration help for this provider"),
):
    """List registered providers, or show help for one."""
    registry = default_registry()
    formatter = OutputFormatter(console)
    if name:
        if name not in registry:
            _fail(ConfigurationError(
                f"Unknown LLM provider {name!r}. Registered: {registry.names()}"
            ))
        formatter.format_provider_help(name, provider_help(name))
        return

    cfg = _load()
    formatter.format_provider_list(registry.names(), active=cfg.provider.name)


@config_app.command("show")
def config_show(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
):
    """Show effective config."""
    cfg = _load(profile=profile, config_file=config_file)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate config and the provider settings it selects."""
    config_path = config_file or find_config_path()
    cfg = _load(profile=profile, config_file=config_path)

    errors = validate_provider_config(cfg.provider)
    if errors:
        console.print("[red]Config validation failed:[/red]")
        for err in errors:
            console.print(f"  - {err}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  LLM provider: {cfg.provider.name} ({cfg.provider.model or 'default model'})")
    console.print(
        f"  Tool result limits: {cfg.truncation.char_limit} chars / "
        f"{cfg.truncation.token_limit} tokens"
    )


@app.command()
def version():
    """Show version."""
    console.print(f"chatwire v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
