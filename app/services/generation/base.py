"""
Base classes and types for generation providers (image: FAL, video: Kie Veo 3).
Providers only talk HTTP; billing and persistence live in GenerationService.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

IMAGE_ASPECT_RATIOS = ("16:9", "9:16", "1:1")
VIDEO_ASPECT_RATIOS = ("16:9", "9:16")

VIDEO_PROMPT_MIN = 10
VIDEO_PROMPT_MAX = 1000
SEED_MIN = 10000
SEED_MAX = 99999

# Provider task states
TASK_PENDING = "pending"
TASK_PROCESSING = "processing"
TASK_COMPLETED = "completed"
TASK_FAILED = "failed"


@dataclass
class ImageGenerationRequest:
    """Request for image generation."""
    prompt: str
    aspect_ratio: str = "1:1"
    reference_image_url: str | None = None
    output_format: str = "jpeg"


@dataclass
class ImageGenerationResponse:
    """Response from image generation."""
    image_url: str
    image_id: str
    model: str
    provider: str
    description: str | None = None


@dataclass
class VideoGenerationRequest:
    prompt: str
    aspect_ratio: str = "9:16"
    image_urls: list[str] = field(default_factory=list)
    model: str | None = None
    seeds: int | None = None
    watermark: str | None = None
    callback_url: str | None = None
    enable_fallback: bool = False
    enable_translation: bool = True


@dataclass
class VideoTaskStatus:
    task_id: str
    status: str  # pending / processing / completed / failed
    video_url: str | None = None
    error: str | None = None
    raw: dict[str, Any] | None = None


class GenerationProviderError(Exception):
    """Provider call failed. detail holds provider fields for logging."""
    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class ImageProvider(ABC):
    name = "image"

    @abstractmethod
    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        """Generate one image. Raises GenerationProviderError on failure."""
        pass


class VideoProvider(ABC):
    name = "video"

    @abstractmethod
    def start(self, request: VideoGenerationRequest) -> str:
        """Start a generation task; returns the provider task id."""
        pass

    @abstractmethod
    def get_status(self, task_id: str) -> VideoTaskStatus:
        pass

    @abstractmethod
    def get_remaining_credits(self) -> int:
        """Credits left on the provider account."""
        pass
