"""Configuration module for loading project settings and environment variables."""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_CONFIG: Dict[str, Any] = {
    "chart": {
        "url": "https://www.tradingview.com/chart/?symbol=OANDA:XAUUSD",
        "ready_selector": ".chart-gui-wrapper",
        "viewport": {"width": 1920, "height": 1080},
        "timeout_ms": 45000,
        "ready_timeout_ms": 15000,
        "settle_ms": 3000,
        "placeholder_image": "/chart-placeholder.png",
    },
    "render": {
        "mode": "auto",
        "executable_path": None,
        "ws_endpoint": None,
    },
    "market": {
        "symbol": "GC=F",
        "daily": {"period": "1d", "interval": "15m"},
        "weekly": {"period": "5d", "interval": "1h"},
    },
    "sources": [
        {"name": "FXSTREET", "kind": "feed", "url": "https://www.fxstreet.com/rss/news"},
        {"name": "INVESTING", "kind": "feed", "url": "https://www.investing.com/rss/news_11.rss"},
        {
            "name": "FOREXFACTORY",
            "kind": "scrape",
            "url": "https://www.forexfactory.com/news",
            "xpath": "//a[contains(concat(' ', normalize-space(@class), ' '), ' flexposts__story-title ')]",
        },
    ],
    "news": {
        "max_items": 5,
        "summary_max_chars": 300,
        "source_timeout_seconds": 15,
    },
    "analysis": {
        "models": [
            "gemini/gemini-2.0-flash",
            "gemini/gemini-1.5-flash",
            "openai/gpt-4o-mini",
        ],
        "timeout_seconds": 30,
    },
    "pipeline": {"run_timeout_seconds": 60},
    "history": {"path": "data/history.json"},
}


def merge_config(base: Mapping[str, Any], override: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Deep-merge ``override`` on top of ``base`` without mutating either.

    Nested dicts are merged key by key; lists and scalars in ``override``
    replace the base value wholesale.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in (override or {}).items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: str | Path = "config.yaml") -> Dict[str, Any]:
    """
    Load configuration from the specified YAML file, layered over the defaults.

    Args:
        config_path (str | Path): Path to the configuration file. Defaults to "config.yaml".

    Returns:
        Dict[str, Any]: A dictionary containing the configuration settings.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    with open(config_file, "r", encoding="utf-8") as file:
        config_data = yaml.safe_load(file)

    if not config_data:
        raise ValueError(f"Configuration file {config_path} is empty or invalid.")

    return merge_config(DEFAULT_CONFIG, config_data)


def get_env(name: str, default: str = "") -> str:
    """Return a stripped environment variable, or ``default`` when unset/blank."""
    value = os.getenv(name, "")
    return value.strip() or default
