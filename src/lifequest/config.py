from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from lifequest.constants import DEFAULT_TUNING
from lifequest.generation import GenerationConfig
from lifequest.time_utils import DEFAULT_TZ

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    user_id: str
    database_path: Path
    tz: str
    tuning_path: Path
    generation_enabled: bool
    generation_base_url: str
    generation_api_key: str | None
    generation_model: str
    generation_image_model: str
    api_token: str | None
    api_host: str
    api_port: int


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def load_settings() -> Settings:
    _load_env_file(Path(".env"))

    user_id = os.getenv("LIFEQUEST_USER_ID", "").strip()
    if not user_id:
        raise RuntimeError("LIFEQUEST_USER_ID is required")

    api_key = os.getenv("GENERATION_API_KEY") or None
    enabled = _parse_bool(os.getenv("GENERATION_ENABLED"), default=False)
    if enabled and not api_key:
        logger.warning("GENERATION_ENABLED is set but GENERATION_API_KEY is empty; generation disabled")
        enabled = False

    return Settings(
        user_id=user_id,
        database_path=Path(os.getenv("DATABASE_PATH", "./data/lifequest.db")),
        tz=os.getenv("TZ", DEFAULT_TZ),
        tuning_path=Path(os.getenv("LIFEQUEST_TUNING", "./tuning.yaml")),
        generation_enabled=enabled,
        generation_base_url=os.getenv("GENERATION_BASE_URL", "https://api.openai.com/v1"),
        generation_api_key=api_key,
        generation_model=os.getenv("GENERATION_MODEL", "gpt-4o-mini"),
        generation_image_model=os.getenv("GENERATION_IMAGE_MODEL", "gpt-image-1"),
        api_token=os.getenv("API_TOKEN") or None,
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=_parse_int(os.getenv("API_PORT"), 8080),
    )


def load_tuning(path: Path) -> dict[str, int]:
    """Read reward constants from YAML, falling back to defaults key by key."""
    tuning = dict(DEFAULT_TUNING)
    if not path.exists():
        return tuning
    raw: Any = yaml.safe_load(path.read_text()) or {}
    if not isinstance(raw, dict):
        logger.warning("ignoring tuning file that is not a mapping path=%s", path)
        return tuning
    for key, value in raw.items():
        if key not in DEFAULT_TUNING:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning("ignoring non-integer tuning value key=%s", key)
            continue
        tuning[key] = value
    return tuning


def generation_config(settings: Settings) -> GenerationConfig | None:
    if not settings.generation_enabled or not settings.generation_api_key:
        return None
    return GenerationConfig(
        base_url=settings.generation_base_url,
        api_key=settings.generation_api_key,
        model=settings.generation_model,
        image_model=settings.generation_image_model,
    )
