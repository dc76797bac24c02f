"""Functions for reading and validating the network configuration."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..exceptions import ConfigError
from .models import NetworkConfig


class ConfigFiles:
    """Canonical configuration filenames."""

    NETWORK = "network.toml"


def load_network_config(path: Path) -> NetworkConfig:
    """Load the network configuration from *path* (a file or a directory)."""

    path = Path(path)
    if path.is_dir():
        path = path / ConfigFiles.NETWORK
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(path, "file not found") from exc
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigError(path, f"failed to read TOML: {exc}") from exc

    try:
        return NetworkConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(path, _format_validation_errors(exc)) from exc


def _format_validation_errors(error: ValidationError) -> str:
    messages = []
    for err in error.errors(include_context=False):
        loc = _format_location(err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        if loc:
            messages.append(f"{loc}: {msg}")
        else:
            messages.append(msg)
    return "; ".join(messages)


def _format_location(loc: tuple[Any, ...]) -> str:
    if not loc:
        return ""

    parts: list[str] = []
    for entry in loc:
        if isinstance(entry, int):
            if not parts:
                parts.append(f"[{entry}]")
            else:
                parts[-1] = parts[-1] + f"[{entry}]"
        else:
            parts.append(str(entry))
    return ".".join(parts)
