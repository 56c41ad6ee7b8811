"""
Generation Settings - versioned settings document stored on each job row

Rows are written as GenerationSettingsV1. Rows created before versioning
(no schema_version key) are read as LegacyGenerationSettings.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


Orientation = Literal["vertical", "landscape"]


class LegacyGenerationSettings(BaseModel):
    """Loosely shaped settings written before schema versioning"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    schema_version: Literal[0] = 0
    model: Optional[str] = None
    orientation: Orientation = "vertical"
    image_urls: List[str] = Field(default_factory=list, alias="imageUrls")
    prompt: Optional[str] = None
    category: Optional[str] = None
    room_name: Optional[str] = Field(default=None, alias="roomName")
    sort_order: int = Field(default=0, alias="sortOrder")
    clip_index: int = Field(default=0, alias="clipIndex")


class GenerationSettingsV1(BaseModel):
    """Closed settings document for one generation job"""

    model_config = ConfigDict(extra="forbid")

    schema_version: Literal[1] = 1
    model: str
    orientation: Orientation = "vertical"
    image_urls: List[str]
    prompt: str
    template_key: str
    category: str
    room_id: str
    room_name: str
    room_number: Optional[int] = None
    sort_order: int = Field(ge=0)
    clip_index: int = Field(default=0, ge=0, le=1)
    duration_s: int = Field(default=5, gt=0)
    ai_directions: Optional[str] = None

    @field_validator("image_urls")
    @classmethod
    def validate_image_urls(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one image URL is required")
        return v


GenerationSettings = Annotated[
    Union[LegacyGenerationSettings, GenerationSettingsV1],
    Field(discriminator="schema_version"),
]

_settings_adapter = TypeAdapter(GenerationSettings)


def parse_generation_settings(raw: Dict[str, Any]) -> Union[LegacyGenerationSettings, GenerationSettingsV1]:
    """
    Validate a stored settings document into its versioned variant

    Raises:
        pydantic.ValidationError: If the document matches no known variant
    """
    data = dict(raw or {})
    data.setdefault("schema_version", 0)
    return _settings_adapter.validate_python(data)
