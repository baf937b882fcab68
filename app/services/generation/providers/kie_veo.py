"""
Kie.ai Veo 3 provider.
Start: POST /veo/generate. Status: GET /veo/record-info?taskId=. Credits: GET /chat/credit.
"""
import logging
import random
import time
from typing import Any

import httpx
import pybreaker

from app.core.config import settings
from app.services.circuit_breaker import get_circuit_breaker
from app.services.generation.base import (
    SEED_MAX,
    SEED_MIN,
    TASK_COMPLETED,
    TASK_FAILED,
    TASK_PENDING,
    TASK_PROCESSING,
    GenerationProviderError,
    VideoGenerationRequest,
    VideoProvider,
    VideoTaskStatus,
)
from app.utils.metrics import provider_request_duration_seconds, provider_requests_total

logger = logging.getLogger(__name__)

# record-info successFlag -> task status
SUCCESS_FLAG_STATUS = {
    0: TASK_PROCESSING,
    1: TASK_COMPLETED,
    2: TASK_FAILED,
    3: TASK_FAILED,
}


class KieVeoProvider(VideoProvider):
    name = "kie"

    def __init__(self, config: dict | None = None, transport: httpx.BaseTransport | None = None):
        config = config or {}
        self.api_key = config.get("api_key", settings.kie_api_key)
        self.api_url = config.get("api_url", settings.kie_api_url).rstrip("/")
        self.default_model = config.get("model", settings.kie_default_model)
        self.timeout = config.get("timeout", settings.kie_timeout)
        self._transport = transport
        self._breaker = get_circuit_breaker("kie")

    def _call(self, operation: str, method: str, path: str, **kwargs) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        start = time.time()
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = self._breaker.call(
                    client.request, method, f"{self.api_url}{path}", headers=headers, **kwargs
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            provider_requests_total.labels(provider=self.name, operation=operation, status="error").inc()
            raise GenerationProviderError(
                f"Kie request failed with status {e.response.status_code}",
                detail={"status_code": e.response.status_code, "body": e.response.text[:500]},
            ) from e
        except (httpx.HTTPError, pybreaker.CircuitBreakerError, ValueError) as e:
            provider_requests_total.labels(provider=self.name, operation=operation, status="error").inc()
            raise GenerationProviderError(f"Kie request failed: {e}") from e
        finally:
            provider_request_duration_seconds.labels(provider=self.name, operation=operation).observe(
                time.time() - start
            )

        if not isinstance(data, dict):
            raise GenerationProviderError("Kie returned a malformed response")
        # Kie answers HTTP 200 with an application-level code
        code = data.get("code")
        if code is not None and code != 200:
            provider_requests_total.labels(provider=self.name, operation=operation, status=str(code)).inc()
            raise GenerationProviderError(
                data.get("msg") or f"Kie request failed with code {code}",
                detail={"code": code},
            )
        provider_requests_total.labels(provider=self.name, operation=operation, status="ok").inc()
        return data

    def start(self, request: VideoGenerationRequest) -> str:
        payload: dict[str, Any] = {
            "prompt": request.prompt,
            "imageUrls": list(request.image_urls),
            "model": request.model or self.default_model,
            "aspectRatio": request.aspect_ratio,
            "seeds": request.seeds if request.seeds is not None else random.randint(SEED_MIN, SEED_MAX),
            "enableFallback": request.enable_fallback,
            "enableTranslation": request.enable_translation,
        }
        if request.watermark:
            payload["watermark"] = request.watermark
        if request.callback_url:
            payload["callBackUrl"] = request.callback_url

        data = self._call("start", "POST", "/veo/generate", json=payload)
        task_id = (data.get("data") or {}).get("taskId")
        if not task_id:
            raise GenerationProviderError("Kie returned no task id", detail={"response_keys": list(data)})
        logger.info("video_task_started", extra={"task_id": task_id, "provider": self.name})
        return task_id

    def get_status(self, task_id: str) -> VideoTaskStatus:
        data = self._call("status", "GET", "/veo/record-info", params={"taskId": task_id})
        info = data.get("data") or {}
        status = SUCCESS_FLAG_STATUS.get(info.get("successFlag"), TASK_PENDING)
        response = info.get("response") or {}
        urls = response.get("resultUrls") or []
        return VideoTaskStatus(
            task_id=task_id,
            status=status,
            video_url=urls[0] if urls else None,
            error=info.get("errorMessage"),
            raw=info,
        )

    def get_remaining_credits(self) -> int:
        data = self._call("credits", "GET", "/chat/credit")
        try:
            return int(data.get("data") or 0)
        except (TypeError, ValueError) as e:
            raise GenerationProviderError("Kie returned malformed credits") from e
