from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib import error as urlerror
from urllib import request as urlrequest

from coderoom.constants import AI_HTTP_TIMEOUT_SECONDS
from coderoom.errors import InferenceError
from coderoom.models import AIConfig, InferenceRequest
from coderoom.providers.base import PostJsonRequest, ProviderClient
from coderoom.repositories.config_repository import ConfigRepository

logger = logging.getLogger(__name__)


def post_json_request(
    url: str, headers: dict[str, str], payload: dict[str, Any]
) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    request = urlrequest.Request(
        url=url,
        data=body,
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urlrequest.urlopen(request, timeout=AI_HTTP_TIMEOUT_SECONDS) as response:
            raw = response.read().decode("utf-8")
            data = json.loads(raw) if raw else {}
            if isinstance(data, dict):
                return data
            return {}
    except urlerror.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise RuntimeError(f"HTTP {exc.code} from provider. {detail[:200]}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise RuntimeError(f"Provider request failed: {exc}") from exc


def build_system_prompt(request: InferenceRequest) -> str | None:
    if not request.room_context:
        return None
    return (
        f"You are a helpful assistant in coding chat room {request.room_context}. "
        "Answer concisely."
    )


class ProviderInferenceClient:
    """Inference collaborator backed by the configured HTTP provider."""

    def __init__(
        self,
        config_repository: ConfigRepository,
        provider_clients: dict[str, ProviderClient],
        ai_config: AIConfig | None = None,
        post_json: PostJsonRequest = post_json_request,
    ):
        self.config_repository = config_repository
        self.provider_clients = provider_clients
        self.ai_config = ai_config
        self.post_json = post_json

    def get_ai_config(self) -> AIConfig:
        if self.ai_config is None:
            self.ai_config = self.config_repository.load_ai_config()
        return self.ai_config

    async def invoke(self, request: dict[str, Any]) -> dict[str, Any]:
        parsed = InferenceRequest.model_validate(request)
        provider_config, error = self.config_repository.resolve_provider(
            self.get_ai_config()
        )
        if provider_config is None:
            raise InferenceError(error or "No AI provider configured.")
        client = self.provider_clients.get(provider_config.provider)
        if client is None:
            raise InferenceError(f"Unsupported provider '{provider_config.provider}'")

        try:
            reply = await asyncio.to_thread(
                client.generate,
                api_key=provider_config.api_key,
                model=provider_config.model,
                prompt=parsed.prompt,
                post_json_request=self.post_json,
                system_prompt=build_system_prompt(parsed),
            )
        except RuntimeError as exc:
            raise InferenceError(str(exc)) from exc
        logger.debug(
            "Provider %s answered with %s chars", provider_config.provider, len(reply)
        )
        return {"reply": reply}
