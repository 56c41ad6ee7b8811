"""
Listing Models - fan-out input and derived plans
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from reelsmith.models.generation_settings import GenerationSettingsV1, Orientation


class ListingImage(BaseModel):
    """A categorized listing photo"""

    url: str
    category: Optional[str] = None
    is_primary: bool = False
    primary_score: Optional[float] = None
    perspective: Optional[str] = None  # "aerial" or "ground" for exteriors
    uploaded_at: Optional[datetime] = None

    @field_validator("category")
    @classmethod
    def normalize_category(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None


class RoomPlan(BaseModel):
    """One room derived from a category group; never persisted"""

    id: str
    category: str
    name: str
    room_number: Optional[int] = None
    perspective: Optional[str] = None
    images: List[ListingImage] = Field(default_factory=list)


class JobSpec(BaseModel):
    """A planned generation job before it is persisted"""

    sort_order: int
    settings: GenerationSettingsV1


class ListingGenerationRequest(BaseModel):
    """Everything the planner needs for one listing"""

    listing_id: str
    owner_id: str
    images: List[ListingImage]
    primary_image_url: Optional[str] = None
    orientation: Orientation = "vertical"
    ai_directions: Optional[str] = None
    enable_priority_secondary: Optional[bool] = None
