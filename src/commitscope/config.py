"""Process settings and runtime-mutable AI provider configuration."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from commitscope.types.git import DEFAULT_DEPTH

DEFAULT_HOSTED_BASE_URL = "https://api.openai.com/v1"
DEFAULT_HOSTED_MODEL = "gpt-4o"
DEFAULT_LOCAL_MODEL = "codellama:latest"

# Environment variables mirrored by ConfigStore.update
ENV_KEYS = {
    "api_key": "AI_API_KEY",
    "base_url": "AI_BASE_URL",
    "default_model": "AI_MODEL",
    "available_models": "AI_MODELS",
}


@dataclass
class Settings:
    """Static settings read once at process start."""

    repos_base: str = "repos"
    default_depth: int = DEFAULT_DEPTH
    config_file: str = "data.json"
    host: str = "127.0.0.1"
    port: int = 5000
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5100"])

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("COMMITSCOPE_CORS_ORIGINS", "http://localhost:5100")
        return cls(
            repos_base=os.getenv("COMMITSCOPE_REPOS_BASE", "repos"),
            default_depth=int(os.getenv("COMMITSCOPE_DEFAULT_DEPTH", str(DEFAULT_DEPTH))),
            config_file=os.getenv("COMMITSCOPE_CONFIG_FILE", "data.json"),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "5000")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


class AIConfig(BaseModel):
    """Provider settings exposed through /api/config."""

    model_config = ConfigDict(populate_by_name=True)

    api_key: Optional[str] = Field(default=None, alias="apiKey")
    base_url: Optional[str] = Field(default=None, alias="baseUrl")
    default_model: Optional[str] = Field(default=None, alias="defaultModel")
    available_models: Optional[str] = Field(default=None, alias="availableModels")

    def model_list(self) -> List[str]:
        """The comma-separated ``available_models`` as a list."""
        if not self.available_models:
            return []
        return [m.strip() for m in self.available_models.split(",") if m.strip()]

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ConfigStore:
    """File-backed AI configuration layered over environment defaults.

    The persisted values live under the ``aiConfig`` key of a JSON file so the
    file can hold other application data. ``get_config`` re-resolves on every
    call, so updates take effect for the next request without a restart.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._stored = AIConfig()
        self.reload()

    def reload(self) -> None:
        """Re-read the persisted configuration from disk."""
        document = self._read_document()
        stored = document.get("aiConfig") or {}
        if not isinstance(stored, dict):
            logger.warning(f"Ignoring malformed aiConfig in {self.path}")
            stored = {}
        self._stored = AIConfig.model_validate(stored)

    def get_config(self) -> AIConfig:
        """Resolve the effective configuration for one request."""
        api_key = self._stored.api_key or os.getenv(ENV_KEYS["api_key"])
        base_url = self._stored.base_url or os.getenv(ENV_KEYS["base_url"])
        default_model = self._stored.default_model or os.getenv(ENV_KEYS["default_model"])

        return AIConfig(
            api_key=api_key or None,
            base_url=base_url or (DEFAULT_HOSTED_BASE_URL if api_key else ""),
            default_model=default_model or (DEFAULT_HOSTED_MODEL if api_key else DEFAULT_LOCAL_MODEL),
            available_models=self._stored.available_models or os.getenv(ENV_KEYS["available_models"]),
        )

    def update(self, changes: AIConfig) -> None:
        """Merge ``changes`` into the stored configuration, persist it and mirror it to the environment."""
        updates = changes.model_dump(exclude_unset=True)
        self._stored = self._stored.model_copy(update=updates)
        self._save()
        self.reload()

        for name, value in updates.items():
            env_key = ENV_KEYS[name]
            if value is None or (name == "api_key" and value == ""):
                os.environ.pop(env_key, None)
            else:
                os.environ[env_key] = value

    def _read_document(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config from {self.path}: {e}")
            return {}
        return document if isinstance(document, dict) else {}

    def _save(self) -> None:
        document = self._read_document()
        document["aiConfig"] = self._stored.to_json()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        logger.debug(f"Saved AI configuration to {self.path}")
