from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from invoicer.core.schema import LineItem

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

_FALLBACK_DEFAULTS: dict[str, dict[str, Any]] = {
    "bulk": {"name": "Default Service", "rate": 100.0, "quantity": 1},
    "single": {"name": "Service", "description": "General service provided", "rate": 0.0, "quantity": 1},
}


@lru_cache
def _load_defaults() -> dict[str, dict[str, Any]]:
    path = CONFIG_DIR / "invoice_defaults.yaml"
    if not path.exists():
        return _FALLBACK_DEFAULTS
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    return {**_FALLBACK_DEFAULTS, **data}


def default_line_item(variant: str = "bulk") -> LineItem:
    """Return the configured placeholder line item for ``variant``."""

    defaults = _load_defaults()
    if variant not in defaults:
        raise KeyError(f"unknown invoice template variant: {variant}")
    return LineItem(**defaults[variant])


def line_item_payload(item: LineItem) -> dict[str, Any]:
    return item.model_dump(exclude_none=True)
