"""Runtime configuration for running scripts.

Configuration is read from a YAML file::

    model: openai:gpt-4o-mini
    providers:
      openai:
        api_key: sk-...
    request_params:
      temperature: 0.2
    log_level: INFO

The older ``openai: {token: ...}`` layout is still accepted and mapped to ``providers.openai.api_key``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator
import yaml

from aisuite import Client

from .core.context import DEFAULT_MODEL
from .types_.base import JSON

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


class ScriptConfig(BaseModel, extra="ignore"):
    model: str = Field(default=DEFAULT_MODEL, description="Model identifier in 'provider:identifier' format.")
    providers: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Per-provider client settings passed to aisuite."
    )
    request_params: dict[str, JSON] = Field(default_factory=dict, description="Extra parameters for every request.")
    log_level: str = "WARNING"

    @model_validator(mode="before")
    @classmethod
    def _legacy_openai_token(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("openai"), dict) and "token" in data["openai"]:
            data = dict(data)
            providers = dict(data.get("providers") or {})
            openai = dict(providers.get("openai") or {})
            openai.setdefault("api_key", data.pop("openai")["token"])
            providers["openai"] = openai
            data["providers"] = providers
        return data


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> ScriptConfig:
    """Load configuration from YAML; a missing file yields the defaults."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"No configuration found at {path}, using defaults")
        return ScriptConfig()

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return ScriptConfig.model_validate(data)


def build_client(config: ScriptConfig) -> Client:
    """Create an aisuite Client configured for the providers in ``config``."""
    return Client(provider_configs=config.providers)
