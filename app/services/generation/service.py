"""
GenerationService — paid image/video generation.

Order of operations for every request:
1. validate input
2. early balance check (no provider spend for users who cannot pay)
3. provider call, outside any transaction
4. record insert + conditional debit, one commit

A provider failure leaves no record and no debit. A commit failure after the
provider succeeded is logged as generation_unbilled and not retried.
"""
import logging
import math

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import ContentNotFound, InsufficientTokens, UpstreamUnavailable, ValidationFailed
from app.models.image import Image
from app.models.user import User
from app.models.video import Video
from app.services.generation.base import (
    IMAGE_ASPECT_RATIOS,
    SEED_MAX,
    SEED_MIN,
    TASK_COMPLETED,
    TASK_FAILED,
    VIDEO_ASPECT_RATIOS,
    VIDEO_PROMPT_MAX,
    VIDEO_PROMPT_MIN,
    GenerationProviderError,
    ImageGenerationRequest,
    ImageProvider,
    VideoGenerationRequest,
    VideoProvider,
)
from app.services.ledger.service import IMAGE_TARIFF, VIDEO_TARIFF, TokenLedgerService
from app.utils.metrics import balance_rejected_total, generation_unbilled_total, token_debits_total

logger = logging.getLogger(__name__)

VIDEO_STATUS_GENERATING = "generating"
IN_FLIGHT_STATUSES = ("generating", "pending", "processing")


def paginate(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


class GenerationService:
    def __init__(
        self,
        db: Session,
        image_provider: ImageProvider | None = None,
        video_provider: VideoProvider | None = None,
    ):
        self.db = db
        self.image_provider = image_provider
        self.video_provider = video_provider
        self.ledger = TokenLedgerService(db)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def generate_image(
        self,
        user: User,
        prompt: str,
        aspect_ratio: str = "1:1",
        reference_image_url: str | None = None,
    ) -> Image:
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationFailed("Prompt is required", field="prompt")
        if aspect_ratio not in IMAGE_ASPECT_RATIOS:
            raise ValidationFailed("Invalid aspect ratio", field="aspectRatio")

        self._ensure_balance(user.id, IMAGE_TARIFF, "image")

        try:
            result = self.image_provider.generate(
                ImageGenerationRequest(
                    prompt=prompt,
                    aspect_ratio=aspect_ratio,
                    reference_image_url=reference_image_url or None,
                )
            )
        except GenerationProviderError as e:
            logger.warning(
                "image_provider_failed",
                extra={"user_id": user.id, "provider": getattr(self.image_provider, "name", None), "error": str(e)},
            )
            raise UpstreamUnavailable("Failed to generate image") from e

        image = Image(
            user_id=user.id,
            prompt=prompt,
            aspect_ratio=aspect_ratio,
            reference_image_url=reference_image_url or None,
            image_url=result.image_url,
            image_id=result.image_id,
            tokens_used=IMAGE_TARIFF,
        )
        self._record_and_debit(image, user.id, IMAGE_TARIFF, "image", result.image_id)
        return image

    def list_images(self, user: User, page: int = 1, limit: int = 12) -> tuple[list[Image], dict]:
        query = self.db.query(Image).filter(Image.user_id == user.id)
        total = query.count()
        items = query.order_by(Image.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
        return items, paginate(page, limit, total)

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------

    def provider_credits(self) -> int:
        """Credits left on the video provider account."""
        provider_name = getattr(self.video_provider, "name", None)
        try:
            return self.video_provider.get_remaining_credits()
        except GenerationProviderError as e:
            logger.warning("video_provider_credits_failed", extra={"provider": provider_name, "error": str(e)})
            raise UpstreamUnavailable("Failed to fetch video provider credits. Please try again.") from e

    def generate_video(
        self,
        user: User,
        prompt: str,
        image_url: str | None = None,
        aspect_ratio: str = "9:16",
        model: str | None = None,
        seeds: int | None = None,
        enable_fallback: bool = False,
        enable_translation: bool = True,
        watermark: str | None = None,
        callback_url: str | None = None,
    ) -> Video:
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationFailed("Prompt is required", field="prompt")
        if len(prompt) < VIDEO_PROMPT_MIN:
            raise ValidationFailed(
                f"Prompt must be at least {VIDEO_PROMPT_MIN} characters long", field="prompt"
            )
        if len(prompt) > VIDEO_PROMPT_MAX:
            raise ValidationFailed(f"Prompt must be at most {VIDEO_PROMPT_MAX} characters long", field="prompt")
        if aspect_ratio not in VIDEO_ASPECT_RATIOS:
            raise ValidationFailed("Aspect ratio must be 16:9 or 9:16", field="aspectRatio")
        if seeds is not None and not (SEED_MIN <= seeds <= SEED_MAX):
            raise ValidationFailed(f"Seeds must be between {SEED_MIN} and {SEED_MAX}", field="seeds")

        self._ensure_balance(user.id, VIDEO_TARIFF, "video")

        if self.provider_credits() < 1:
            logger.error("video_provider_out_of_credits", extra={"provider": getattr(self.video_provider, "name", None)})
            raise UpstreamUnavailable("Video generation is temporarily unavailable")

        request = VideoGenerationRequest(
            prompt=prompt,
            aspect_ratio=aspect_ratio,
            image_urls=[image_url] if image_url else [],
            model=model,
            seeds=seeds,
            watermark=watermark,
            callback_url=callback_url,
            enable_fallback=enable_fallback,
            enable_translation=enable_translation,
        )
        try:
            task_id = self.video_provider.start(request)
        except GenerationProviderError as e:
            logger.warning(
                "video_provider_failed",
                extra={"user_id": user.id, "provider": getattr(self.video_provider, "name", None), "error": str(e)},
            )
            raise UpstreamUnavailable("Failed to start generation") from e

        video = Video(
            user_id=user.id,
            prompt=prompt,
            aspect_ratio=aspect_ratio,
            seed=seeds or 0,
            image_url=image_url or None,
            video_url=None,
            task_id=task_id,
            status=VIDEO_STATUS_GENERATING,
            tokens_used=VIDEO_TARIFF,
        )
        self._record_and_debit(video, user.id, VIDEO_TARIFF, "video", task_id)
        return video

    def refresh_video(self, user: User, task_id: str) -> Video:
        """Poll the provider and persist status/url. Token fields are never touched."""
        video = (
            self.db.query(Video)
            .filter(Video.task_id == task_id, Video.user_id == user.id)
            .one_or_none()
        )
        if video is None:
            raise ContentNotFound("Video not found")
        try:
            status = self.video_provider.get_status(task_id)
        except GenerationProviderError as e:
            logger.warning("video_status_failed", extra={"task_id": task_id, "error": str(e)})
            raise UpstreamUnavailable("Failed to fetch video details") from e
        self._apply_status(video, status)
        self.db.commit()
        self.db.refresh(video)
        return video

    def list_videos(self, user: User, page: int = 1, limit: int = 12) -> tuple[list[Video], dict]:
        """Paginated videos; in-flight ones are refreshed on the way out."""
        query = self.db.query(Video).filter(Video.user_id == user.id)
        total = query.count()
        items = query.order_by(Video.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

        changed = False
        for video in items:
            if video.status not in IN_FLIGHT_STATUSES:
                continue
            try:
                status = self.video_provider.get_status(video.task_id)
            except GenerationProviderError as e:
                logger.info("video_refresh_skipped", extra={"task_id": video.task_id, "error": str(e)})
                continue
            changed = self._apply_status(video, status) or changed
        if changed:
            self.db.commit()
        return items, paginate(page, limit, total)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_balance(self, user_id: str, tariff: int, kind: str) -> None:
        try:
            self.ledger.ensure_balance(user_id, tariff)
        except InsufficientTokens:
            balance_rejected_total.labels(kind=kind).inc()
            raise

    def _record_and_debit(self, record, user_id: str, tariff: int, kind: str, ref: str) -> None:
        try:
            self.db.add(record)
            self.db.flush()
            self.ledger.debit(user_id, tariff)
            self.db.commit()
        except InsufficientTokens:
            # balance spent by a concurrent request after the early check
            self.db.rollback()
            balance_rejected_total.labels(kind=kind).inc()
            generation_unbilled_total.labels(kind=kind).inc()
            logger.error(
                "generation_unbilled",
                extra={"user_id": user_id, "kind": kind, "task_id": ref, "tariff": tariff, "error": "insufficient_tokens"},
            )
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            generation_unbilled_total.labels(kind=kind).inc()
            logger.error(
                "generation_unbilled",
                extra={"user_id": user_id, "kind": kind, "task_id": ref, "tariff": tariff, "error": str(e)},
            )
            raise
        self.db.refresh(record)
        token_debits_total.labels(kind=kind).inc(tariff)
        logger.info(
            "generation_billed",
            extra={"user_id": user_id, "kind": kind, "task_id": ref, "tariff": tariff},
        )

    def _apply_status(self, video: Video, status) -> bool:
        changed = False
        if status.status != video.status:
            video.status = status.status
            changed = True
        if status.video_url and status.video_url != video.video_url:
            video.video_url = status.video_url
            changed = True
        if changed:
            self.db.add(video)
            if status.status in (TASK_COMPLETED, TASK_FAILED):
                logger.info("video_task_finished", extra={"task_id": video.task_id, "outcome": status.status})
        return changed
