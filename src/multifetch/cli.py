# src/multifetch/cli.py
"""multifetch Command Line Interface.

Entry point for the multifetch CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import typer
from pydantic import ValidationError

from multifetch import __version__
from multifetch.contracts.errors import error_code_name
from multifetch.contracts.results import FetchResult
from multifetch.core.config import SchedulerConfig, load_settings
from multifetch.scheduling.scheduler import FetchScheduler

__all__ = [
    "app",
]

app = typer.Typer(
    name="multifetch",
    help="multifetch: fetch many URLs concurrently, results in finish order.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"multifetch version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    MULTIFETCH_* variables loaded here override settings files.

    Args:
        env_file: Explicit path to .env file. If None, searches current
            directory and parents.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: --env-file '{env_file}' not found.",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # We handle existence check ourselves for better error message
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """multifetch: fetch many URLs concurrently, results in finish order."""
    from multifetch.core.logging import configure_logging

    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(json_output=json_logs, level=log_level)

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _parse_header_options(values: list[str]) -> dict[str, str]:
    """Parse repeated 'Name: value' options into a header mapping."""
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Header must look like 'Name: value', got {raw!r}")
        headers[name.strip()] = value.strip()
    return headers


def _resolve_config(
    settings: Path | None,
    max_concurrent: int | None,
    raw_headers: bool,
    timeout: float | None,
) -> SchedulerConfig:
    """Combine a settings file with command-line overrides."""
    config = load_settings(settings) if settings is not None else SchedulerConfig()
    overrides: dict[str, Any] = {}
    if max_concurrent is not None:
        overrides["max_concurrent"] = max_concurrent
    if raw_headers:
        overrides["parse_headers"] = False
    if timeout is not None:
        overrides["timeout_seconds"] = timeout
    if not overrides:
        return config
    # Re-validate so overrides go through the same clamping as the file
    return SchedulerConfig(**{**config.model_dump(), **overrides})


def _result_record(result: FetchResult) -> dict[str, Any]:
    """Summarize a result as a JSON-serializable record."""
    index, url = result.user_data if result.user_data is not None else (None, None)
    return {
        "index": index,
        "url": url,
        "status": result.transport_info.get("http_code", 0),
        "error_code": error_code_name(result.error_code),
        "error": result.error_message or None,
        "bytes": len(result.body),
        "total_time": result.transport_info.get("total_time"),
        "headers": result.header,
    }


@app.command()
def fetch(
    urls: list[str] = typer.Argument(..., help="URLs to fetch."),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    max_concurrent: int | None = typer.Option(
        None,
        "--max-concurrent",
        "-c",
        help="Maximum concurrent requests (overrides settings).",
    ),
    method: str = typer.Option(
        "GET",
        "--method",
        "-X",
        help="HTTP method for every request.",
    ),
    header: list[str] = typer.Option(
        [],
        "--header",
        "-H",
        help="Request header 'Name: value' (repeatable).",
    ),
    raw_headers: bool = typer.Option(
        False,
        "--raw-headers",
        help="Emit response headers as raw text instead of a mapping.",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Per-request timeout in seconds (overrides settings).",
    ),
) -> None:
    """Fetch URLs concurrently and print one JSON line per finished request.

    Lines are printed in the order requests finish, not the order given.
    Exits with status 1 if any request failed at the transport level.

    Examples:

        multifetch fetch https://example.com https://example.org -c 2

        multifetch fetch -s settings.yaml -H "Accept: application/json" URL...
    """
    try:
        config = _resolve_config(settings, max_concurrent, raw_headers, timeout)
    except ValidationError as e:
        typer.secho(f"Configuration errors:\n{e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None

    request_headers = _parse_header_options(header)
    failed = 0

    with FetchScheduler(config) as scheduler:
        client = httpx.Client(headers=request_headers)
        try:
            for index, url in enumerate(urls):
                try:
                    request = client.build_request(method.upper(), url)
                except httpx.InvalidURL as e:
                    typer.secho(f"Skipping invalid URL {url!r}: {e}", fg=typer.colors.YELLOW, err=True)
                    failed += 1
                    continue
                scheduler.submit(request, user_data=(index, url))

            for result in scheduler.drain():
                if not result.ok:
                    failed += 1
                typer.echo(json.dumps(_result_record(result), default=str))
        finally:
            client.close()

    if failed:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
