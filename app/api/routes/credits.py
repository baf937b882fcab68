from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_video_provider
from app.auth.session import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.services.credits.service import CreditHistoryService
from app.services.generation.base import VideoProvider
from app.services.generation.service import GenerationService

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("")
def provider_credits(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: VideoProvider = Depends(get_video_provider),
) -> dict:
    """Credits left on the video provider account (not the user's token balance)."""
    credits = GenerationService(db, video_provider=provider).provider_credits()
    return {"credits": credits, "message": f"You have {credits} credits remaining"}


@router.get("/history")
def credit_history(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """Purchases (credit) and generations (debit), newest first."""
    return CreditHistoryService(db).history(user.id, page=page, limit=limit)
