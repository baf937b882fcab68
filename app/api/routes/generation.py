"""
Paid generation routes: images (1 token) and videos (10 tokens).
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_image_provider, get_video_provider
from app.auth.session import get_current_user
from app.db.session import get_db
from app.models.image import Image
from app.models.user import User
from app.models.video import Video
from app.schemas.generation import ImageGenerateIn, VideoGenerateIn
from app.services.generation.base import ImageProvider, VideoProvider
from app.services.generation.service import GenerationService

router = APIRouter(tags=["generation"])


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _image_out(image: Image) -> dict:
    return {
        "id": image.id,
        "imageId": image.image_id,
        "imageUrl": image.image_url,
        "prompt": image.prompt,
        "aspectRatio": image.aspect_ratio,
        "referenceImageUrl": image.reference_image_url,
        "tokensUsed": image.tokens_used,
        "createdAt": _iso(image.created_at),
    }


def _video_out(video: Video) -> dict:
    completed = video.status == "completed"
    return {
        "taskId": video.task_id,
        "prompt": video.prompt,
        "imageUrl": video.image_url,
        "aspectRatio": video.aspect_ratio,
        "seed": video.seed,
        "status": video.status,
        "videoUrl": video.video_url if completed else None,
        "tokensUsed": video.tokens_used,
        "createTime": _iso(video.created_at),
        "completeTime": _iso(video.updated_at) if completed else None,
    }


@router.post("/image/generate")
def generate_image(
    payload: ImageGenerateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: ImageProvider = Depends(get_image_provider),
) -> dict:
    image = GenerationService(db, image_provider=provider).generate_image(
        user,
        prompt=payload.prompt,
        aspect_ratio=payload.aspect_ratio,
        reference_image_url=payload.reference_image_url,
    )
    return _image_out(image)


@router.get("/images/list")
def list_images(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    images, pagination = GenerationService(db).list_images(user, page=page, limit=limit)
    return {"images": [_image_out(i) for i in images], "pagination": pagination}


@router.post("/video/generate")
def generate_video(
    payload: VideoGenerateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: VideoProvider = Depends(get_video_provider),
) -> dict:
    video = GenerationService(db, video_provider=provider).generate_video(
        user,
        prompt=payload.prompt,
        image_url=payload.image_url,
        aspect_ratio=payload.aspect_ratio,
        model=payload.model,
        seeds=payload.seeds,
        enable_fallback=payload.enable_fallback,
        enable_translation=payload.enable_translation,
        watermark=payload.watermark,
        callback_url=payload.callback_url,
    )
    return {"taskId": video.task_id, "status": video.status, "tokensUsed": video.tokens_used}


@router.get("/video/details")
def video_details(
    task_id: str = Query(..., alias="taskId", min_length=1),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: VideoProvider = Depends(get_video_provider),
) -> dict:
    video = GenerationService(db, video_provider=provider).refresh_video(user, task_id)
    return _video_out(video)


@router.get("/videos/list")
def list_videos(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: VideoProvider = Depends(get_video_provider),
) -> dict:
    videos, pagination = GenerationService(db, video_provider=provider).list_videos(user, page=page, limit=limit)
    return {"videos": [_video_out(v) for v in videos], "count": len(videos), "pagination": pagination}
