"""tunnel-config CLI."""

from __future__ import annotations

import json
import logging
import re
import sys
from pathlib import Path

import requests
import typer

from tunnel_config.parse_tunnel_config import parse_tunnel_config
from tunnel_config.shared.settings import get_settings
from tunnel_config.transport import default_transport_builder

DYNAMIC_KEY_URL_RE = re.compile(r"^(?P<scheme>ssconf|https)://(?P<rest>.+)$", re.IGNORECASE)


def _dynamic_key_fetch_url(url: str) -> str:
    match = DYNAMIC_KEY_URL_RE.match(url.strip())
    if not match:
        raise typer.BadParameter(
            "Unsupported --url value. Supported formats: "
            "ssconf://<host>/<path> (dynamic access key) or https://<host>/<path>."
        )
    return f"https://{match.group('rest')}"


def _load_dynamic_key(url: str, timeout: float) -> str:
    fetch_url = _dynamic_key_fetch_url(url)
    try:
        response = requests.get(fetch_url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise typer.BadParameter(f"Failed to fetch dynamic access key: {exc}") from exc
    return response.text


def _read_input(file: Path | None, text: str, url: str, timeout: float) -> str:
    provided = [source for source in (file is not None, bool(text), bool(url)) if source]
    if len(provided) > 1:
        raise typer.BadParameter("Use only one of --file, --text or --url")
    if file is not None:
        return file.read_text()
    if text:
        return text
    if url:
        return _load_dynamic_key(url, timeout)
    return sys.stdin.read()


app = typer.Typer(add_completion=False, help="tunnel-config: tunnel configuration normalizer")


@app.callback()
def main() -> None:
    """Normalize tunnel configuration text (ss:// links, legacy JSON, YAML)."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.WARNING))


@app.command()
def parse(
    file: Path = typer.Option(None, "--file"),
    text: str = typer.Option("", "--text"),
    url: str = typer.Option("", "--url"),
) -> None:
    """Normalize a tunnel config and print the result envelope as JSON."""
    settings = get_settings()
    try:
        raw_input = _read_input(file, text, url, settings.fetch_timeout)
    except typer.BadParameter as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    result = parse_tunnel_config(raw_input, default_transport_builder(settings))
    typer.echo(json.dumps(result.to_dict(), indent=2))
    if result.error is not None:
        raise typer.Exit(code=1)


@app.command()
def ciphers() -> None:
    """Print the Shadowsocks ciphers accepted by the configured builder."""
    builder = default_transport_builder(get_settings())
    for cipher in builder.allowed_ciphers:
        typer.echo(cipher)
