"""Model gateway — HTTP client for OpenAI-compatible chat completion endpoints.

The pipeline injects a gateway callable matching the protocol:

    async def __call__(self, request: GenerationRequest) -> str: ...

ChatCompletionsGateway is the production implementation, built from the
active ApiPreset. Tests use scripted gateways (defined in the test helpers)
or patch httpx.AsyncClient.post.

Endpoint paths come from a resolver. The default resolver is a heuristic
for user-typed base addresses:

    https://api.x.com/     →  https://api.x.com/v1/chat/completions
    https://api.x.com/v1   →  https://api.x.com/v1/chat/completions

Gateways that live under a non-standard prefix can pass an ExplicitPaths
resolver instead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

import httpx

from pocketphone.errors import GatewayUnavailable, MalformedReply
from pocketphone.models import ApiPreset, GenerationRequest

logger = logging.getLogger(__name__)

TEMPERATURE = 0.85
DEFAULT_TIMEOUT = 120.0

COMPLETIONS = "chat/completions"
MODELS = "models"


# ---------------------------------------------------------------------------
# Protocol: every gateway implementation must match this signature
# ---------------------------------------------------------------------------

class Gateway(Protocol):
    async def __call__(self, request: GenerationRequest) -> str: ...


# ---------------------------------------------------------------------------
# Endpoint resolution
# ---------------------------------------------------------------------------

EndpointResolver = Callable[[str, str], str]


def normalize_base(base_url: str) -> str:
    return base_url.strip().rstrip("/")


def versioned_url(base_url: str, resource: str) -> str:
    """Append `resource` under /v1 unless the base already has a /v1 segment."""
    base = normalize_base(base_url)
    if "/v1" in base:
        return f"{base}/{resource}"
    return f"{base}/v1/{resource}"


class ExplicitPaths:
    """Resolver with a fixed path per resource, for non-standard gateways.

    Args:
        paths: resource → path suffix, e.g. {"chat/completions": "/api/chat"}.
               Resources missing from the mapping fall back to the heuristic.
    """

    def __init__(self, paths: dict[str, str]) -> None:
        self._paths = paths

    def __call__(self, base_url: str, resource: str) -> str:
        path = self._paths.get(resource)
        if path is None:
            return versioned_url(base_url, resource)
        return f"{normalize_base(base_url)}/{path.lstrip('/')}"


# ---------------------------------------------------------------------------
# ChatCompletionsGateway: connects to a real backend
# ---------------------------------------------------------------------------

class ChatCompletionsGateway:
    """Async HTTP client for one configured endpoint.

    Request:  POST {resolved}/chat/completions
              {"model": ..., "messages": [...], "temperature": 0.85}
    Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        preset:      Base URL, credential and model identifier.
        timeout:     HTTP timeout in seconds. Expiry is GatewayUnavailable.
        resolve_url: Endpoint resolver. Defaults to versioned_url.
    """

    def __init__(
        self,
        preset: ApiPreset,
        timeout: float = DEFAULT_TIMEOUT,
        resolve_url: EndpointResolver = versioned_url,
    ) -> None:
        self._preset = preset
        self._timeout = timeout
        self._resolve_url = resolve_url

    @property
    def completions_url(self) -> str:
        return self._resolve_url(self._preset.base_url, COMPLETIONS)

    @property
    def models_url(self) -> str:
        return self._resolve_url(self._preset.base_url, MODELS)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._preset.api_key:
            headers["Authorization"] = f"Bearer {self._preset.api_key}"
        return headers

    def _body(self, request: GenerationRequest) -> dict[str, Any]:
        return {
            "model": self._preset.model,
            "messages": request.to_messages(),
            "temperature": TEMPERATURE,
        }

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                if method == "POST":
                    resp = await client.post(url, headers=self._headers(), **kwargs)
                else:
                    resp = await client.get(url, headers=self._headers(), **kwargs)
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise GatewayUnavailable(f"Cannot connect to model endpoint at {url}") from e
        except httpx.HTTPStatusError as e:
            raise GatewayUnavailable(
                f"Model endpoint returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise GatewayUnavailable(f"Model endpoint timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"Model endpoint request failed: {e}") from e
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedReply("Model endpoint did not return JSON") from e

    @staticmethod
    def _parse_reply(data: Any) -> str:
        """Extract choices[0].message.content from the response body."""
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedReply("Unexpected response format from model endpoint") from e
        if not isinstance(content, str):
            raise MalformedReply(
                f"Reply content is {type(content).__name__}, expected a string"
            )
        return content

    async def __call__(self, request: GenerationRequest) -> str:
        url = self.completions_url
        logger.debug(
            "gateway call url=%s model=%s messages=%d",
            url, self._preset.model, len(request.history) + 1,
        )
        resp = await self._send("POST", url, json=self._body(request))
        text = self._parse_reply(self._json(resp))
        logger.debug("gateway reply len=%d", len(text))
        return text

    async def list_models(self) -> list[str]:
        """Return the model ids the endpoint advertises at /models."""
        resp = await self._send("GET", self.models_url)
        data = self._json(resp)
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise MalformedReply("Unexpected model list format from model endpoint")
        return [m["id"] for m in items if isinstance(m, dict) and "id" in m]
