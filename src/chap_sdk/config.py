from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    # CLI output defaults
    model_out: str = "model.pkl"
    predictions_out: str = "predictions.csv"

    # nested predictions
    samples_col: str = "samples"

    # column sniffing, in order of preference
    time_candidates: tuple = ("time_period", "date", "week", "month", "year", "time", "period")
    key_candidates: tuple = ("location", "region", "district", "area", "site", "id", "country", "province")


def read_model_config(config_path: str) -> Dict[str, Any]:
    """Read a YAML or JSON model configuration file.

    Files ending in ``.json`` are parsed as JSON, everything else as YAML.
    An empty document yields an empty dict.
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        if config_path.lower().endswith(".json"):
            try:
                config = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Failed to parse JSON configuration: {e}") from e
        else:
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Failed to parse YAML configuration: {e}") from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValueError(
            f"Configuration must be a mapping at the top level, got {type(config).__name__}"
        )
    return config


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """Return the parsed configuration, or ``{}`` when there is none to load."""
    if not config_path:
        return {}
    if not os.path.exists(config_path):
        logger.warning("Config file not found: %s. Using empty config.", config_path)
        return {}
    return read_model_config(config_path)


def write_model_config(config: Mapping[str, Any], config_path: str, indent: int = 2) -> None:
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(
            dict(config),
            f,
            indent=indent,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    logger.info("Configuration written to %s", config_path)


_MISSING = object()


def get_config_param(config: Any, *keys: Any, default: Any = None) -> Any:
    """Walk ``keys`` into nested mappings/sequences, returning ``default`` on a miss.

    >>> get_config_param({"model": {"params": {"lr": 0.01}}}, "model", "params", "lr")
    0.01
    >>> get_config_param({"model": {}}, "model", "missing", default="x")
    'x'
    """
    node = config
    for key in keys:
        if isinstance(node, Mapping):
            node = node.get(key, _MISSING)
        elif isinstance(node, (list, tuple)) and isinstance(key, int):
            node = node[key] if -len(node) <= key < len(node) else _MISSING
        else:
            node = _MISSING
        if node is _MISSING or node is None:
            return default
    return node
