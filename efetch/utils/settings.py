"""
efetch/utils/settings.py

WHAT THIS FILE IS FOR
---------------------
This module defines the *single source of truth* for environment-driven
configuration of an HttpFetchClient built via
`HttpFetchClient.from_settings()`.

It is responsible for:
- Defining all supported configuration fields (via Pydantic BaseSettings)
- Loading default values from parameters/parameters.yaml
- Overriding defaults with environment variables (EFETCH_*)
- Validating required settings (base_url)
- Exposing a cached, fully-validated Settings object

Code that constructs ClientConfig directly does not need this module.

LOAD & PRECEDENCE MODEL
-----------------------
Configuration is loaded in the following order (last wins):

1) YAML defaults from:
       parameters/parameters.yaml
2) Environment variables:
       EFETCH_*

Dict-valued fields (default_headers) are given as JSON in the
environment, e.g. EFETCH_DEFAULT_HEADERS='{"Accept": "application/json"}'.

WHAT THIS FILE IS NOT FOR
-------------------------
This module is NOT responsible for:
- HTTP calls
- Retry decisions
- Logging configuration (see logging_config.py)

DESIGN INTENT
-------------
- All runtime-configurable behavior MUST be declared here
- Any missing required setting should fail fast
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import AnyHttpUrl, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)

PARAMETERS_PATH = Path(__file__).resolve().parents[2] / "parameters" / "parameters.yaml"


class Settings(BaseSettings):
    """
    Runtime settings for efetch clients.

    Load order / precedence:
        1) YAML defaults (parameters/parameters.yaml)
        2) Environment variables (EFETCH_*), overriding YAML
    """

    model_config = SettingsConfigDict(
        env_prefix="EFETCH_",
        extra="ignore",
    )

    # Service metadata
    service_name: str = "efetch"
    environment: str = "local"
    log_level: str = "INFO"

    # Optional at the model level to allow partial env loading;
    # enforced explicitly in get_settings().
    base_url: Optional[AnyHttpUrl] = None

    default_headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request unless overridden per call.",
    )

    # Retry behavior: wait retry_backoff_base ** attempt seconds before retry `attempt`
    retry_count: int = Field(default=3, ge=0)
    retry_backoff_base: float = Field(default=2.0, ge=0)

    timeout_seconds: float = Field(default=60.0, gt=0)


@lru_cache(maxsize=1)
def _load_yaml_parameters() -> Dict[str, Any]:
    """
    Load base configuration from parameters/parameters.yaml.

    A missing or malformed file is logged and treated as empty.
    """
    if not PARAMETERS_PATH.exists():
        logger.warning("parameters_yaml_missing", expected=str(PARAMETERS_PATH))
        return {}

    try:
        with PARAMETERS_PATH.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("parameters_yaml_load_error", path=str(PARAMETERS_PATH), error=str(exc))
        return {}

    if not isinstance(data, dict):
        logger.warning(
            "parameters_yaml_not_dict",
            path=str(PARAMETERS_PATH),
            type=type(data).__name__,
        )
        return {}

    logger.info("parameters_yaml_loaded", path=str(PARAMETERS_PATH))
    return data


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Construct and return the final validated Settings object.

    Cached per process. Call `get_settings.cache_clear()` after changing
    the environment (tests do this).
    """
    # 1) YAML defaults
    yaml_data = _load_yaml_parameters()

    # 2) env overrides (partial)
    try:
        env_settings = Settings()
        env_data = env_settings.model_dump(exclude_unset=True)
        logger.info("settings_loaded_env_only_partial", fields=list(env_data.keys()))
    except ValidationError as exc:
        logger.warning("settings_env_validation_error", errors=exc.errors())
        env_data = {}

    # 3) merge
    merged: Dict[str, Any] = {**yaml_data, **env_data}

    # 4) enforce required URL
    if not merged.get("base_url"):
        logger.error("settings_missing_base_url", yaml_path=str(PARAMETERS_PATH))
        raise RuntimeError(
            "Missing required setting: base_url. "
            "Set it either in the environment (EFETCH_BASE_URL) "
            f"or in {PARAMETERS_PATH}."
        )

    # 5) final validation
    settings = Settings.model_validate(merged)

    logger.info(
        "settings_loaded",
        environment=settings.environment,
        service_name=settings.service_name,
        base_url=str(settings.base_url),
        default_header_names=sorted(settings.default_headers),
        retry_count=settings.retry_count,
        retry_backoff_base=settings.retry_backoff_base,
        timeout_seconds=settings.timeout_seconds,
    )

    return settings
