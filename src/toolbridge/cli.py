"""toolbridge CLI.

Usage:
    toolbridge tools http://localhost:3000/sse             # List remote tools
    toolbridge tools http://localhost:3000/sse --format json
    toolbridge call http://localhost:3000/sse grade_page --args '{"page": 1}'
    toolbridge config                                      # Show effective configuration

Global options:
    --config PATH   YAML file with client settings
    -v / -vv        INFO / DEBUG logging on stderr
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from .client import ExtensionClient
from .config import ClientConfig
from .errors import ExtensionClientError, RemoteError
from .logging_utils import configure_logging
from .protocol.methods import METHOD_CALL_TOOL
from .registry import ToolDescriptor

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file with client settings",
)
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug)")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: int) -> None:
    """toolbridge - discover and invoke tools on an SSE tool server."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    configure_logging(level)

    try:
        base = ClientConfig.from_yaml(config_path) if config_path else None
        config = ClientConfig.from_env(base)
    except (OSError, ValueError, TypeError) as e:
        raise click.UsageError(f"Invalid configuration: {e}") from e

    ctx.obj = config


def _format_tools_table(tools: list[ToolDescriptor]) -> str:
    if not tools:
        return "No tools available"

    width = max(len(t.name) for t in tools)
    lines = [f"{'NAME':<{width}}  {'REQUIRED':<20}  DESCRIPTION"]
    for tool in tools:
        required = ",".join(tool.required_parameters)
        lines.append(
            f"{tool.name:<{width}}  {truncate(required, 20):<20}  {truncate(tool.description)}"
        )
    return "\n".join(lines)


async def _list_tools(config: ClientConfig, url: str) -> list[ToolDescriptor]:
    async with ExtensionClient(config) as client:
        await client.connect(url)
        return client.tools


async def _call_tool(config: ClientConfig, url: str, name: str, arguments: dict[str, Any]) -> Any:
    async with ExtensionClient(config) as client:
        await client.connect(url)
        return await client.invoke(name, arguments)


@main.command("tools")
@click.argument("url")
@click.option(
    "--format",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_obj
def tools_command(config: ClientConfig, url: str, output_format: str) -> None:
    """Connect to URL and list the tools it offers."""
    try:
        tools = asyncio.run(_list_tools(config, url))
    except ExtensionClientError as e:
        _fail(str(e))
        return

    if output_format == FORMAT_JSON:
        data = [t.model_dump(by_alias=True, exclude_none=True) for t in tools]
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(_format_tools_table(tools))


@main.command("call")
@click.argument("url")
@click.argument("name")
@click.option("--args", "args_json", default="{}", help="Tool arguments as a JSON object")
@click.option("--timeout", type=float, default=None, help="Deadline for the call in seconds")
@click.pass_obj
def call_command(
    config: ClientConfig,
    url: str,
    name: str,
    args_json: str,
    timeout: float | None,
) -> None:
    """Connect to URL and invoke tool NAME."""
    try:
        arguments = json.loads(args_json)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--args") from e
    if not isinstance(arguments, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--args")

    if timeout is not None:
        config.method_timeouts = {**config.method_timeouts, METHOD_CALL_TOOL: timeout}

    try:
        result = asyncio.run(_call_tool(config, url, name, arguments))
    except RemoteError as e:
        _fail(f"Tool {name} failed: {e}")
        return
    except ExtensionClientError as e:
        _fail(str(e))
        return

    click.echo(json.dumps(result, indent=2))


@main.command("config")
@click.pass_obj
def config_command(config: ClientConfig) -> None:
    """Show the effective client configuration."""
    click.echo(json.dumps(config.to_dict(), indent=2))


if __name__ == "__main__":
    main()
