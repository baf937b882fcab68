"""
FAL nano-banana provider (sync mode).
Text-to-image: fal-ai/nano-banana. With a reference image: fal-ai/nano-banana/edit.
"""
import logging
import time
from uuid import uuid4

import httpx
import pybreaker

from app.core.config import settings
from app.services.circuit_breaker import get_circuit_breaker
from app.services.generation.base import (
    GenerationProviderError,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ImageProvider,
)
from app.utils.metrics import provider_request_duration_seconds, provider_requests_total

logger = logging.getLogger(__name__)


class FalImageProvider(ImageProvider):
    name = "fal"

    def __init__(self, config: dict | None = None, transport: httpx.BaseTransport | None = None):
        config = config or {}
        self.api_key = config.get("api_key", settings.fal_api_key)
        self.api_url = config.get("api_url", settings.fal_api_url).rstrip("/")
        self.image_model = config.get("image_model", settings.fal_image_model)
        self.edit_model = config.get("edit_model", settings.fal_edit_model)
        self.timeout = config.get("timeout", settings.fal_timeout)
        self._transport = transport
        self._breaker = get_circuit_breaker("fal")

    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        model = self.edit_model if request.reference_image_url else self.image_model
        payload = {
            "prompt": request.prompt,
            "num_images": 1,
            "output_format": request.output_format,
            "aspect_ratio": request.aspect_ratio,
            "sync_mode": True,
        }
        if request.reference_image_url:
            payload["image_urls"] = [request.reference_image_url]

        headers = {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }
        operation = "edit" if request.reference_image_url else "generate"
        start = time.time()
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = self._breaker.call(
                    client.post, f"{self.api_url}/{model}", headers=headers, json=payload
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            provider_requests_total.labels(provider=self.name, operation=operation, status="error").inc()
            raise GenerationProviderError(
                f"FAL request failed with status {e.response.status_code}",
                detail={"status_code": e.response.status_code, "body": e.response.text[:500]},
            ) from e
        except (httpx.HTTPError, pybreaker.CircuitBreakerError, ValueError) as e:
            provider_requests_total.labels(provider=self.name, operation=operation, status="error").inc()
            raise GenerationProviderError(f"FAL request failed: {e}") from e
        finally:
            provider_request_duration_seconds.labels(provider=self.name, operation=operation).observe(
                time.time() - start
            )

        images = data.get("images") if isinstance(data, dict) else None
        if not images or not isinstance(images[0], dict) or not images[0].get("url"):
            provider_requests_total.labels(provider=self.name, operation=operation, status="empty").inc()
            raise GenerationProviderError("FAL returned no image", detail={"response_keys": list(data or {})})

        provider_requests_total.labels(provider=self.name, operation=operation, status="ok").inc()
        return ImageGenerationResponse(
            image_url=images[0]["url"],
            image_id=f"fal-{data.get('request_id') or uuid4().hex}",
            model=model,
            provider=self.name,
            description=data.get("description"),
        )
