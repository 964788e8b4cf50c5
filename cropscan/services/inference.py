"""Vision model integration using the OpenAI client."""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx
from openai import APITimeoutError, AsyncOpenAI, OpenAIError

from cropscan.config import Settings
from cropscan.errors import ConfigError, UpstreamTimeoutError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 30.0

DIAGNOSIS_PROMPT = """You are an expert agricultural pathologist. Analyze this crop image and provide a diagnosis.

Respond ONLY with valid JSON in this exact format (no markdown, no code fences):
{
  "disease": "Name of the disease, pest, or deficiency detected",
  "confidence": 85,
  "severity": "LOW" | "MEDIUM" | "HIGH",
  "crop": "Identified crop type",
  "status": "HEALTHY" | "DISEASED" | "AT_RISK" | "UNKNOWN",
  "treatment": "Specific recommended treatment with dosage and application method",
  "prevention": "Prevention tips for future seasons"
}

confidence is an integer from 0 to 100.
If the image is not a crop/plant photo, set disease to "Not a crop image", confidence to 0, severity to "LOW", and status to "UNKNOWN".
Be specific with treatment dosages and methods relevant to East African smallholder farmers."""


@dataclass(frozen=True)
class InferenceResult:
    text: str
    model_version: str


def _load_timeout(value: Any = None) -> float:
    """Parse a timeout in seconds, falling back to 30 and never exceeding it."""
    if value is None:
        value = os.environ.get("OPENAI_TIMEOUT_SECONDS")
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        return _DEFAULT_TIMEOUT_SECONDS
    if timeout <= 0:
        return _DEFAULT_TIMEOUT_SECONDS
    return min(timeout, _DEFAULT_TIMEOUT_SECONDS)


def _image_data_url(image: bytes, content_type: str) -> str:
    encoded = base64.b64encode(image).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def build_messages(image: bytes, content_type: str) -> list[dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": DIAGNOSIS_PROMPT},
                {
                    "type": "image_url",
                    "image_url": {"url": _image_data_url(image, content_type)},
                },
            ],
        }
    ]


class InferenceClient:
    """Single-shot structured-output request to a vision model."""

    def __init__(
        self,
        api_key: str | None,
        model: str,
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = _load_timeout(timeout)
        self._client: AsyncOpenAI | None = None
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, cfg: Settings) -> "InferenceClient":
        return cls(cfg.openai_api_key, cfg.openai_model, cfg.openai_timeout_seconds)

    def _get_client(self) -> AsyncOpenAI:
        """Lazily build and cache the OpenAI client."""
        if not self.api_key:
            raise ConfigError("OPENAI_API_KEY not configured")
        if self._client is None:
            mounts: dict[str, httpx.AsyncHTTPTransport] = {}
            http_proxy = os.environ.get("HTTP_PROXY")
            https_proxy = os.environ.get("HTTPS_PROXY")
            if http_proxy:
                mounts["http://"] = httpx.AsyncHTTPTransport(proxy=http_proxy)
            if https_proxy:
                mounts["https://"] = httpx.AsyncHTTPTransport(proxy=https_proxy)

            self._http_client = httpx.AsyncClient(mounts=mounts) if mounts else None
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                http_client=self._http_client,
                max_retries=0,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
        if self._http_client is not None:
            await self._http_client.aclose()
        self._http_client = None
        self._client = None

    async def diagnose(self, image: bytes, content_type: str) -> InferenceResult:
        """Send the photo to the model and return its raw reply text.

        Raises ConfigError without touching the network when no API key is
        set. Cancelling the awaiting task aborts the HTTP request.
        """
        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.model,
                    messages=build_messages(image, content_type),
                    response_format={"type": "json_object"},
                    timeout=self.timeout,
                ),
                # slack for connection setup on top of the SDK timeout
                timeout=self.timeout + 1,
            )
        except (APITimeoutError, asyncio.TimeoutError) as exc:
            raise UpstreamTimeoutError("Inference request timed out") from exc
        except OpenAIError as exc:
            logger.warning("Inference request failed: %s", exc)
            raise UpstreamUnavailableError("Inference request failed") from exc

        return InferenceResult(
            text=_extract_text(response),
            model_version=self.model,
        )


def _extract_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content if isinstance(content, str) else ""


_client: InferenceClient | None = None


def init_inference(cfg: Settings) -> InferenceClient:
    global _client
    _client = InferenceClient.from_settings(cfg)
    return _client


async def close_inference() -> None:
    global _client
    if _client is not None:
        await _client.close()
    _client = None


def get_inference_client() -> InferenceClient:
    if _client is None:
        raise RuntimeError("Inference client not initialized")
    return _client


__all__ = [
    "DIAGNOSIS_PROMPT",
    "InferenceClient",
    "InferenceResult",
    "build_messages",
    "get_inference_client",
    "init_inference",
]
