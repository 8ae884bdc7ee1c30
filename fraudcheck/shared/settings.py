"""Runtime configuration (environment variables + YAML model catalog)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

LOGGER = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[1] / "configs" / "models.yaml"

# Ranked from most powerful/experimental to most conservative.
DEFAULT_MODELS = [
    "gemini-2.0-flash-exp",
    "gemini-1.5-pro",
    "gemini-1.5-flash",
    "gemini-pro",
    "gemini-1.0-pro",
]
DEFAULT_STABLE_INDEX = 1

API_KEY_ENV_NAMES = ("GEMINI_API_KEY", "GOOGLE_AI_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY")


@dataclass
class Settings:
    provider: str = "mock"
    models: List[str] = field(default_factory=lambda: list(DEFAULT_MODELS))
    stable_index: int = DEFAULT_STABLE_INDEX
    fallback_model: Optional[str] = None
    timeout_s: float = 20.0
    report_log_path: Optional[Path] = None
    log_level: str = "INFO"


def load_yaml(path: Path) -> Dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config must be a mapping (key: value).")
    return data


def get_provider() -> str:
    provider = os.getenv("DETECT_PROVIDER", "mock").strip().lower()
    if provider not in {"mock", "gemini"}:
        return "mock"
    return provider


def get_gemini_api_key() -> str:
    for name in API_KEY_ENV_NAMES:
        key = os.getenv(name)
        if key:
            return key
    raise RuntimeError("Missing GEMINI_API_KEY (or GOOGLE_AI_API_KEY) for provider=gemini")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    return value if value > 0 else default


def load_catalog(path: Optional[Path] = None) -> Dict[str, Any]:
    """Read `models`, `stable_index` and `fallback_model` from YAML.

    A missing file falls back to the built-in catalog.
    """

    catalog_path = Path(path) if path is not None else DEFAULT_CATALOG_PATH
    try:
        cfg = load_yaml(catalog_path)
    except FileNotFoundError:
        LOGGER.warning("Model catalog %s not found, using built-in defaults", catalog_path)
        cfg = {}

    models_raw = cfg.get("models", DEFAULT_MODELS)
    if not isinstance(models_raw, list) or not models_raw:
        raise ValueError("models must be a non-empty list of model ids")
    models = [str(m).strip() for m in models_raw]
    if any(not m for m in models):
        raise ValueError("model ids must be non-empty strings")

    stable_index = int(cfg.get("stable_index", DEFAULT_STABLE_INDEX))
    if len(models) == 1:
        stable_index = 0
    if not 0 <= stable_index < len(models):
        raise ValueError(f"stable_index {stable_index} out of range for {len(models)} models")

    fallback = cfg.get("fallback_model")
    return {
        "models": models,
        "stable_index": stable_index,
        "fallback_model": str(fallback).strip() if fallback else None,
    }


def load_settings() -> Settings:
    catalog_env = os.getenv("FRAUD_MODEL_CATALOG")
    catalog = load_catalog(Path(catalog_env) if catalog_env else None)

    report_log = os.getenv("FRAUD_REPORT_LOG")
    return Settings(
        provider=get_provider(),
        models=catalog["models"],
        stable_index=catalog["stable_index"],
        fallback_model=catalog["fallback_model"],
        timeout_s=_get_float("PROVIDER_TIMEOUT_S", 20.0),
        report_log_path=Path(report_log) if report_log else None,
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
