"""Credential and site configuration: TOML file first, DD_* environment overrides."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

from ddlogs.errors import MissingCredentials
from ddlogs.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SITE = "datadoghq.com"
CONFIG_PATH_ENV = "DDLOGS_CONFIG"

ENV_API_KEY = "DD_API_KEY"
ENV_APP_KEY = "DD_APP_KEY"
ENV_SITE = "DD_SITE"


@dataclass(frozen=True)
class Config:
    api_key: str | None = None
    app_key: str | None = None
    site: str | None = None

    def require_credentials(self) -> tuple[str, str]:
        missing = tuple(
            name for name in ("api_key", "app_key") if not getattr(self, name)
        )
        if missing:
            raise MissingCredentials(missing)
        return self.api_key, self.app_key  # type: ignore[return-value]

    @property
    def site_or_default(self) -> str:
        return self.site or DEFAULT_SITE


def config_path(environ: Mapping[str, str] | None = None) -> Path:
    # ~/.config on all platforms for consistency.
    env = os.environ if environ is None else environ
    override = env.get(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "ddlogs" / "config.toml"


def _read_config_file(path: Path) -> Config:
    if not path.exists():
        return Config()
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("ignoring unreadable config file", path=str(path), error=str(e))
        return Config()

    def _str(key: str) -> str | None:
        value = data.get(key)
        return value if isinstance(value, str) else None

    return Config(api_key=_str("api_key"), app_key=_str("app_key"), site=_str("site"))


def load_config(
    environ: Mapping[str, str] | None = None, path: Path | None = None
) -> Config:
    """Load the config file, then let DD_API_KEY / DD_APP_KEY / DD_SITE override it."""
    env = os.environ if environ is None else environ
    path = path or config_path(env)
    config = _read_config_file(path)

    overrides = {}
    if ENV_API_KEY in env:
        overrides["api_key"] = env[ENV_API_KEY]
    if ENV_APP_KEY in env:
        overrides["app_key"] = env[ENV_APP_KEY]
    if ENV_SITE in env:
        overrides["site"] = env[ENV_SITE]
    if overrides:
        config = replace(config, **overrides)

    logger.debug(
        "config loaded",
        path=str(path),
        site=config.site_or_default,
        has_api_key=bool(config.api_key),
        has_app_key=bool(config.app_key),
    )
    return config
