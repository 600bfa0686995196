# tightbudget/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

import yaml

ADVANCE_POLICIES = ("calendar", "fixed")

DEFAULT_CONFIG: Dict[str, object] = {
    "db_path": "tightbudget.db",
    "output_dir": "data",
    "output_modules": {
        "csv": "tightbudget.outputs.csv_output.CSVOutput",
        "excel": "tightbudget.outputs.excel_output.ExcelOutput",
    },
    "recurring": {
        "advance_policy": "calendar",
        "catch_up": False,
        "max_catch_up": 366,
    },
    "log_level": "INFO",
}


def _merge_defaults(current: Dict[str, object], defaults: Dict[str, object]) -> Dict[str, object]:
    """Merge missing default keys into the current config recursively."""
    merged = dict(current)
    for key, value in defaults.items():
        if key not in merged:
            merged[key] = value
        elif isinstance(value, dict) and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
    return merged


def load_config(path: str | Path | None = None) -> Dict[str, object]:
    """Load a YAML config file, filling gaps from ``DEFAULT_CONFIG``.

    A missing file yields the defaults. ``TIGHTBUDGET_DB`` and ``LOG_LEVEL``
    in the environment override the file.
    """
    data: Dict[str, object] = {}
    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    config = _merge_defaults(data, DEFAULT_CONFIG)

    if os.getenv("TIGHTBUDGET_DB"):
        config["db_path"] = os.environ["TIGHTBUDGET_DB"]
    if os.getenv("LOG_LEVEL"):
        config["log_level"] = os.environ["LOG_LEVEL"]

    policy = config["recurring"]["advance_policy"]
    if policy not in ADVANCE_POLICIES:
        raise ValueError(
            f"Unknown advance_policy '{policy}'; expected one of {', '.join(ADVANCE_POLICIES)}."
        )
    return config


def save_config(config: Dict[str, object], path: str | Path) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fp:
        yaml.safe_dump(config, fp, sort_keys=False)
