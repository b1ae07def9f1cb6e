from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from coderoom.constants import AI_CONFIG_FILE, AI_PROVIDERS, CONFIG_FILE
from coderoom.models import AIConfig, AIProviderConfig, ClientConfig

logger = logging.getLogger(__name__)


class ConfigRepository:
    def __init__(self, base_dir: str | Path = "."):
        self.base_dir = Path(base_dir)

    @property
    def config_path(self) -> Path:
        return self.base_dir / CONFIG_FILE

    @property
    def ai_config_path(self) -> Path:
        return self.base_dir / AI_CONFIG_FILE

    def _read_json(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to load config from %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object config in %s", path)
            return None
        return data

    def load_config(self) -> ClientConfig:
        data = self._read_json(self.config_path)
        if data is None:
            return ClientConfig()
        try:
            return ClientConfig.model_validate(data)
        except ValidationError as exc:
            logger.warning("Invalid client config in %s: %s", self.config_path, exc)
            return ClientConfig()

    def save_config(self, config: ClientConfig) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(config.model_dump(mode="json"), f)

    def load_ai_config(self) -> AIConfig:
        merged = AIConfig()
        loaded = self._read_json(self.ai_config_path)
        if loaded is None:
            return merged

        providers = loaded.get("providers", {})
        if not isinstance(providers, dict):
            providers = {}
        for provider_name in AI_PROVIDERS:
            existing = providers.get(provider_name, {})
            if isinstance(existing, dict):
                merged.providers[provider_name].update(
                    {key: str(value) for key, value in existing.items()}
                )
        default_provider = str(loaded.get("default_provider", "")).strip().lower()
        if default_provider in merged.providers:
            merged.default_provider = default_provider
        return merged

    def save_ai_config(self, config: AIConfig) -> None:
        try:
            os.makedirs(self.ai_config_path.parent, exist_ok=True)
            with open(self.ai_config_path, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(mode="json"), f, indent=2)
        except OSError as exc:
            logger.warning("Failed saving AI config: %s", exc)

    def resolve_provider(
        self, config: AIConfig, provider_override: str | None = None
    ) -> tuple[AIProviderConfig | None, str | None]:
        provider = (provider_override or config.default_provider).strip().lower()
        if provider not in AI_PROVIDERS:
            return None, f"Unknown provider '{provider}'."
        provider_data = config.providers.get(provider, {})
        api_key = str(provider_data.get("api_key", "")).strip()
        model = str(provider_data.get("model", "")).strip()
        if not api_key:
            return None, f"Provider '{provider}' is missing API key."
        if not model:
            return None, f"Provider '{provider}' is missing model."
        return AIProviderConfig(provider=provider, api_key=api_key, model=model), None
