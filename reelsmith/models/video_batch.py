"""
Video Batch Model
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from reelsmith.models import Base


class BatchStatus(str, Enum):
    """
    Video batch lifecycle states

    A batch stays pending while its clips generate. It moves to processing
    when composition starts, which is the at-most-once composition gate.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_BATCH_STATUSES = (
    BatchStatus.COMPLETED.value,
    BatchStatus.FAILED.value,
    BatchStatus.CANCELED.value,
)


class VideoBatchModel(Base):
    """VideoBatch - the parent video aggregating all generation jobs of one request"""

    __tablename__ = "video_batches"

    id = Column(String, primary_key=True, default=lambda: VideoBatchModel.generate_id())
    listing_id = Column(String, nullable=False, index=True)
    owner_id = Column(String, nullable=False, index=True)
    display_name = Column(String, nullable=True)

    status = Column(String, nullable=False, default=BatchStatus.PENDING.value, index=True)
    video_url = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)

    # {"duration", "file_size"}
    batch_metadata = Column(JSON, nullable=True)

    # Calling application's webhook target and composition options
    callback_url = Column(String, nullable=True)
    composition_settings = Column(JSON, nullable=True)
    composition_started_at = Column(DateTime, nullable=True)

    # Outbound webhook tracking
    webhook_attempts = Column(Integer, nullable=False, default=0)
    webhook_last_error = Column(Text, nullable=True)
    webhook_delivered_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert batch model to dictionary"""
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "owner_id": self.owner_id,
            "display_name": self.display_name,
            "status": self.status,
            "video_url": self.video_url,
            "thumbnail_url": self.thumbnail_url,
            "error_message": self.error_message,
            "metadata": self.batch_metadata,
            "composition_settings": self.composition_settings,
            "webhook_attempts": self.webhook_attempts,
            "webhook_last_error": self.webhook_last_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @staticmethod
    def generate_id() -> str:
        """Generate a unique batch ID"""
        return str(uuid.uuid4())
