from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from lifequest.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class GenerationService(Protocol):
    async def generate_text(self, prompt: str, schema: dict[str, Any] | None = None) -> str: ...

    async def generate_image(self, prompt: str) -> bytes: ...


@dataclass(frozen=True)
class GenerationConfig:
    base_url: str
    api_key: str
    model: str
    image_model: str
    timeout_seconds: int = 45
    max_tokens: int = 800


def _extract_text(payload: dict[str, Any]) -> str | None:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, str):
        return content.strip() or None
    if isinstance(content, list):
        chunks: list[str] = []
        for item in content:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                chunks.append(str(item["text"]))
        joined = "\n".join(chunks).strip()
        return joined or None
    return None


def _extract_image(payload: dict[str, Any]) -> bytes | None:
    data = payload.get("data")
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    encoded = data[0].get("b64_json")
    if not isinstance(encoded, str):
        return None
    try:
        return base64.b64decode(encoded, validate=True)
    except ValueError:
        return None


class HttpGenerationClient:
    """OpenAI-compatible chat/images client."""

    def __init__(self, config: GenerationConfig) -> None:
        self.config = config

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.config.base_url.rstrip('/')}/{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                resp = await client.post(url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"generation request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise ExternalServiceError(f"generation service returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ExternalServiceError("generation service returned non-JSON body") from exc
        if not isinstance(data, dict):
            raise ExternalServiceError("generation service returned unexpected payload")
        return data

    async def generate_text(self, prompt: str, schema: dict[str, Any] | None = None) -> str:
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.config.max_tokens,
            "temperature": 0.7,
        }
        if schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": schema},
            }
        data = await self._post("chat/completions", payload)
        text = _extract_text(data)
        if not text:
            raise ExternalServiceError("generation service returned no text")
        logger.info("generated text model=%s chars=%s", self.config.model, len(text))
        return text

    async def generate_image(self, prompt: str) -> bytes:
        payload = {
            "model": self.config.image_model,
            "prompt": prompt,
            "n": 1,
            "response_format": "b64_json",
        }
        data = await self._post("images/generations", payload)
        image = _extract_image(data)
        if image is None:
            raise ExternalServiceError("generation service returned no image")
        return image


def parse_json_payload(text: str) -> Any:
    """Pull a JSON value out of model output (plain, fenced, or embedded in prose)."""
    raw = text.strip()
    if not raw:
        raise ExternalServiceError("empty generation output")

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    fenced = re.search(r"```(?:json)?\s*([\[{].*?[\]}])\s*```", raw, re.DOTALL | re.IGNORECASE)
    if fenced:
        try:
            return json.loads(fenced.group(1))
        except json.JSONDecodeError:
            pass

    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start = raw.find(open_ch)
        end = raw.rfind(close_ch)
        if start == -1 or end == -1 or end <= start:
            continue
        try:
            return json.loads(raw[start : end + 1])
        except json.JSONDecodeError:
            continue
    raise ExternalServiceError("generation output is not valid JSON")
