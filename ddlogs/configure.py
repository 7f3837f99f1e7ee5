"""Interactive `ddlogs configure`: prompt for credentials and write the config file."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Callable, TextIO

from ddlogs.config import DEFAULT_SITE, Config, config_path
from ddlogs.errors import ConfigError
from ddlogs.logging import get_logger

logger = get_logger(__name__)


def _toml_string(value: str) -> str:
    # JSON string escapes are valid TOML basic-string escapes.
    return json.dumps(value, ensure_ascii=False)


def render_config(config: Config) -> str:
    lines = []
    for key in ("api_key", "app_key", "site"):
        value = getattr(config, key)
        if value is not None:
            lines.append(f"{key} = {_toml_string(value)}")
    return "\n".join(lines) + "\n"


def _write_file(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        os.chmod(path, 0o600)
    except OSError as e:
        raise ConfigError(f"Could not write config file {path}: {e}") from e


def _prompt(label: str, read: Callable[[], str], out: TextIO) -> str:
    out.write(label)
    out.flush()
    return read().strip()


def run_configure(
    *,
    path: Path | None = None,
    read: Callable[[], str] | None = None,
    out: TextIO | None = None,
) -> Path:
    """Prompt for API key, application key and site, then save them.

    Returns the path written.
    """
    out = sys.stdout if out is None else out
    read = sys.stdin.readline if read is None else read
    path = path or config_path()

    out.write("Configure ddlogs\n\n")
    api_key = _prompt("Datadog API Key: ", read, out)
    app_key = _prompt("Datadog Application Key: ", read, out)
    site = _prompt(f"Datadog Site [{DEFAULT_SITE}]: ", read, out) or DEFAULT_SITE

    config = Config(api_key=api_key, app_key=app_key, site=site)
    _write_file(path, render_config(config))
    logger.info("config saved", path=str(path), site=site)

    out.write(f"\nConfiguration saved to {path}\n")
    return path
