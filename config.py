from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

"""Config loader and validator.

Provides `load_config` which accepts either a path to a YAML file,
a dictionary or None and returns a normalized configuration dict
using DEFAULTS for missing values.
"""


DEFAULTS: dict[str, Any] = {
    "step_limit": None,
    "trace": False,
    "channel_capacity": 0,
}


class ConfigError(ValueError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def _convert_types(cfg: dict[str, Any]) -> None:
    """Normalize types for configuration values in-place.

    Raises ConfigError on conversion failure.
    """
    try:
        # step_limit (null means unlimited)
        v = cfg.get("step_limit")
        if v is None:
            cfg["step_limit"] = None
        else:
            cfg["step_limit"] = int(v)

        # channel_capacity (0 means unbounded)
        cc = cfg.get("channel_capacity")
        if cc is None:
            cfg["channel_capacity"] = int(DEFAULTS["channel_capacity"])
        else:
            cfg["channel_capacity"] = int(cc)
    except Exception as e:
        msg = f"Bad types in config: {e}"
        raise ConfigError(msg) from e


def _validate_cfg(cfg: dict[str, Any]) -> None:
    """Perform semantic validation on normalized config dict.

    Raises ConfigError on invalid values.
    """
    unknown = sorted(set(cfg) - set(DEFAULTS))
    if unknown:
        msg = f"Unknown config keys: {', '.join(unknown)}"
        raise ConfigError(msg)

    if cfg["step_limit"] is not None and cfg["step_limit"] < 1:
        msg = "step_limit must be positive or null"
        raise ConfigError(msg)

    if cfg["channel_capacity"] < 0:
        msg = "channel_capacity must be non-negative"
        raise ConfigError(msg)

    if not isinstance(cfg["trace"], bool):
        msg = "trace must be boolean"
        raise ConfigError(msg)


def load_config(path_or_dict: str | Path | dict[str, Any] | None = None) -> dict[str, Any]:
    """Load and normalize configuration.

    Accepts:
      - None -> returns DEFAULTS copy
      - dict -> overlay DEFAULTS with provided dict
      - str or Path -> load YAML and overlay DEFAULTS

    Returns a normalized dict or raises ConfigError.
    """
    if path_or_dict is None:
        cfg: dict[str, Any] = dict(DEFAULTS)
    elif isinstance(path_or_dict, dict):
        cfg = dict(DEFAULTS)
        cfg.update(path_or_dict)
    elif isinstance(path_or_dict, (str, Path)):
        p = Path(path_or_dict)
        if not p.exists():
            msg = f"Config file not found: {path_or_dict}"
            raise ConfigError(msg)
        try:
            with p.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except Exception as e:
            msg = f"Failed to load config file {path_or_dict}: {e}"
            raise ConfigError(msg) from e
        if not isinstance(data, dict):
            msg = f"Config file {path_or_dict} does not contain a mapping"
            raise ConfigError(msg)
        cfg = dict(DEFAULTS)
        cfg.update(data)
    else:
        msg = "Unsupported config input"
        raise ConfigError(msg)

    # convert types and validate semantics
    _convert_types(cfg)
    _validate_cfg(cfg)

    return cfg
