"""
Generation Job Model
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text

from reelsmith.models import Base
from reelsmith.models.generation_settings import GenerationSettings, parse_generation_settings


class JobStatus(str, Enum):
    """Generation job lifecycle states"""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


class GenerationJobModel(Base):
    """
    GenerationJob - one provider request producing one clip for one room

    sort_order is unique within a batch and defines the final clip order.
    """

    __tablename__ = "generation_jobs"

    id = Column(String, primary_key=True, default=lambda: GenerationJobModel.generate_id())
    video_batch_id = Column(String, ForeignKey("video_batches.id"), nullable=False, index=True)

    # Provider-assigned id, known once dispatch succeeds or a callback backfills it
    request_id = Column(String, nullable=True, unique=True, index=True)

    status = Column(String, nullable=False, default=JobStatus.PENDING.value, index=True)
    video_url = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)

    # Error handling
    error_message = Column(Text, nullable=True)
    error_type = Column(String, nullable=True)
    error_retryable = Column(Boolean, nullable=False, default=False)

    # Versioned settings document, read through parse_generation_settings
    generation_settings = Column(JSON, nullable=False)
    sort_order = Column(Integer, nullable=False)

    # {"duration", "file_size", "width", "height", "aspect_ratio", "orientation", "checksum_sha256"}
    clip_metadata = Column(JSON, nullable=True)

    # Processing lease held by the webhook worker running post-processing
    claim_token = Column(String, nullable=True)
    claimed_at = Column(DateTime, nullable=True)

    # Outbound webhook tracking
    webhook_attempts = Column(Integer, nullable=False, default=0)
    webhook_last_error = Column(Text, nullable=True)
    webhook_delivered_at = Column(DateTime, nullable=True)

    # Timestamps
    processing_started_at = Column(DateTime, nullable=True)
    processing_completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_generation_jobs_batch_sort", "video_batch_id", "sort_order", unique=True),
    )

    @property
    def settings(self) -> GenerationSettings:
        return parse_generation_settings(self.generation_settings)

    def to_dict(self) -> dict:
        """Convert job model to dictionary"""
        return {
            "id": self.id,
            "video_batch_id": self.video_batch_id,
            "request_id": self.request_id,
            "status": self.status,
            "video_url": self.video_url,
            "thumbnail_url": self.thumbnail_url,
            "error_message": self.error_message,
            "error_type": self.error_type,
            "error_retryable": self.error_retryable,
            "generation_settings": self.generation_settings,
            "sort_order": self.sort_order,
            "clip_metadata": self.clip_metadata,
            "webhook_attempts": self.webhook_attempts,
            "webhook_last_error": self.webhook_last_error,
            "webhook_delivered_at": self.webhook_delivered_at.isoformat() if self.webhook_delivered_at else None,
            "processing_started_at": self.processing_started_at.isoformat() if self.processing_started_at else None,
            "processing_completed_at": self.processing_completed_at.isoformat() if self.processing_completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @staticmethod
    def generate_id() -> str:
        """Generate a unique job ID"""
        return str(uuid.uuid4())
