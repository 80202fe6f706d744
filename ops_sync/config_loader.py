# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 1 & 8: Configuration Loader
# Tasks: T0006, T0041
# ═══════════════════════════════════════════════════════════════════════

"""
config_loader.py - YAML/JSON Configuration Loader

TASKS IMPLEMENTED:
- T0006: Build starter config loader (YAML/JSON)
- T0041: Pipeline settings file (config/pipeline_config.yaml)

Methods:
- load_yaml(): Load YAML configuration files
- load_json(): Load JSON configuration files

Usage:
    settings = ConfigLoader.load_yaml('config/pipeline_config.yaml')
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

import yaml

from .errors import ConfigurationError

PathLike = Union[str, Path]


class ConfigLoader:
    """Lightweight configuration loader for YAML/JSON files.

    Responsibilities:
    - Read YAML/JSON files from disk and return dicts
    - Raise ConfigurationError for missing or unparsable files
    """

    @staticmethod
    def _ensure_exists(path: PathLike) -> Path:
        p = Path(path)
        if not p.exists():
            raise ConfigurationError(f"Config file not found: {p}")
        if not p.is_file():
            raise ConfigurationError(f"Config path is not a file: {p}")
        return p

    @staticmethod
    def load_yaml(path: PathLike) -> dict[str, Any]:
        """Load a YAML file and return a dictionary."""
        p = ConfigLoader._ensure_exists(path)
        with p.open("r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {p}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected a mapping at the top of {p}")
        return data

    @staticmethod
    def load_json(path: PathLike) -> dict[str, Any]:
        """Load a JSON file and return a dictionary."""
        p = ConfigLoader._ensure_exists(path)
        with p.open("r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {p}: {e}") from e
        if not isinstance(data, dict):
            return {"_": data}
        return data

    @staticmethod
    def load(path: PathLike) -> dict[str, Any]:
        """Dispatch on the file extension (.yaml/.yml/.json)."""
        suffix = Path(path).suffix.lower()
        if suffix == ".json":
            return ConfigLoader.load_json(path)
        return ConfigLoader.load_yaml(path)
