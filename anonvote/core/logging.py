"""Logging setup for the API process and scripts."""
from __future__ import annotations

import logging.config
from pathlib import Path

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "configs" / "logging.yaml"


def configure_logging(config_path: Path | None = None, *, level: int = logging.INFO) -> None:
    """Apply the YAML dictConfig at ``config_path``, or a basic console setup when it is missing."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        logging.basicConfig(level=level)
        return

    import yaml  # type: ignore[import-untyped]

    with path.open("r", encoding="utf-8") as config_file:
        logging.config.dictConfig(yaml.safe_load(config_file))


__all__ = ["DEFAULT_CONFIG_PATH", "configure_logging"]
