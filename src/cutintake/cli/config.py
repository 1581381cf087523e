"""Commands to inspect the resolved cutintake configuration."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import typer

from ..config import IntakeSettings, get_settings

__all__ = ["app"]

app = typer.Typer(help="Inspect parser, validation and vision settings.", add_completion=False)


def _lexicon_status(settings: IntakeSettings) -> Dict[str, Any]:
    path = settings.materials_lexicon
    if path is None:
        return {"path": None, "status": "builtin"}
    return {"path": str(path), "status": "ok" if path.is_file() else "missing"}


@app.command("show")
def show_settings(
    config_file: Path = typer.Option(
        None,
        "--config-file",
        exists=True,
        dir_okay=False,
        readable=True,
        help="TOML/YAML configuration to use instead of the environment.",
    ),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore the cache and rebuild the settings."),
) -> None:
    """Print the resolved settings as JSON (the API key is masked)."""

    settings = get_settings(refresh=refresh, config_file=config_file)
    payload = {
        "config_source": str(config_file) if config_file else "environment",
        "settings": settings.as_dict(),
        "materials_lexicon": _lexicon_status(settings),
    }
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
