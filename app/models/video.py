from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, Text

from app.db.base import Base


class Video(Base):
    __tablename__ = "videos"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    prompt = Column(Text, nullable=False)
    aspect_ratio = Column(String, nullable=False)
    seed = Column(Integer, nullable=False, default=0)
    image_url = Column(String, nullable=True)
    video_url = Column(String, nullable=True)  # filled in once the provider reports completion
    task_id = Column(String, unique=True, nullable=False, index=True)  # provider task id
    status = Column(String, nullable=False, default="generating")  # generating / pending / processing / completed / failed
    tokens_used = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
