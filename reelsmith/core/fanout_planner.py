"""
Fan-out Planner - turn a listing's categorized photos into ordered job specs
"""

from collections import defaultdict
from typing import Dict, FrozenSet, List, Optional, Tuple

from reelsmith.config.constants import PRIORITY_CATEGORIES, ROOM_CATEGORY_INDEX, SECONDARY_IMAGE_MIN_SCORE
from reelsmith.core.prompt_selector import Picker, base_category, is_exterior, select_prompt
from reelsmith.models.generation_settings import GenerationSettingsV1
from reelsmith.models.listing import JobSpec, ListingGenerationRequest, ListingImage, RoomPlan
from reelsmith.services.errors import InvalidRequestError
from reelsmith.services.observability import logger


def _category_suffix(category: str) -> Optional[int]:
    base = base_category(category)
    if base == category:
        return None
    return int(category[len(base) + 1:])


def _category_sort_key(category: str) -> Tuple:
    base = base_category(category)
    entry = ROOM_CATEGORY_INDEX.get(base)
    if entry is None:
        return (1, 0, 0, category)
    return (0, entry["order"], _category_suffix(category) or 0, "")


def _room_label(category: str) -> str:
    base = base_category(category)
    suffix = _category_suffix(category)
    entry = ROOM_CATEGORY_INDEX.get(base)
    if entry is None:
        label = " ".join(word.capitalize() for word in base.split("-") if word)
        numbered = True
    else:
        label = entry["label"]
        numbered = entry["numbered"]
    if suffix is not None and numbered:
        return f"{label} {suffix}"
    return label


def _image_sort_key(image: ListingImage) -> Tuple:
    uploaded = image.uploaded_at.timestamp() if image.uploaded_at else float("inf")
    return (0 if image.is_primary else 1, uploaded)


def derive_rooms(images: List[ListingImage]) -> List[RoomPlan]:
    """
    Group categorized images into rooms in canonical category order

    Known categories follow the category table, suffixed variants
    ("bedroom-2") sort right after their base, unknown categories come last
    alphabetically. Uncategorized images are ignored.
    """
    grouped: Dict[str, List[ListingImage]] = defaultdict(list)
    for image in images:
        if image.category:
            grouped[image.category].append(image)

    rooms: List[RoomPlan] = []
    for category in sorted(grouped, key=_category_sort_key):
        room_images = sorted(grouped[category], key=_image_sort_key)
        perspective = None
        if is_exterior(category):
            perspective = next((img.perspective for img in room_images if img.perspective), None)
        rooms.append(
            RoomPlan(
                id=f"room-{category}",
                category=category,
                name=_room_label(category),
                room_number=_category_suffix(category),
                perspective=perspective,
                images=room_images,
            )
        )
    return rooms


class FanoutPlanner:
    """
    Plan one generation job per room plus an optional secondary clip for
    priority categories
    """

    def __init__(
        self,
        model: str,
        clip_duration_s: int = 5,
        enable_priority_secondary: bool = True,
        priority_categories: FrozenSet[str] = PRIORITY_CATEGORIES,
        picker: Optional[Picker] = None,
    ):
        self.model = model
        self.clip_duration_s = clip_duration_s
        self.enable_priority_secondary = enable_priority_secondary
        self.priority_categories = priority_categories
        self.picker = picker

    def plan(self, request: ListingGenerationRequest) -> List[JobSpec]:
        """
        Build ordered job specs for a listing

        Args:
            request: Listing images, primary image and orientation

        Returns:
            Job specs with gapless sort_order starting at 0

        Raises:
            InvalidRequestError: If no rooms can be derived or the listing has
                no primary image
        """
        if not request.primary_image_url:
            raise InvalidRequestError("Primary image missing for listing")

        rooms = derive_rooms(request.images)
        if not rooms:
            raise InvalidRequestError("At least one room is required to generate videos")

        enable_secondary = self.enable_priority_secondary
        if request.enable_priority_secondary is not None:
            enable_secondary = request.enable_priority_secondary

        specs: List[JobSpec] = []
        previous_key: Optional[str] = None

        for room in rooms:
            primary_url = self._primary_image_url(room, request.primary_image_url)
            clip_urls = [primary_url]

            secondary_url = self._secondary_image_url(room, primary_url)
            if (
                enable_secondary
                and base_category(room.category) in self.priority_categories
                and secondary_url is not None
            ):
                clip_urls.append(secondary_url)

            for clip_index, image_url in enumerate(clip_urls):
                selection = select_prompt(
                    category=room.category,
                    room_name=room.name,
                    perspective=room.perspective,
                    previous_key=previous_key,
                    picker=self.picker,
                )
                previous_key = selection.key
                sort_order = len(specs)
                specs.append(
                    JobSpec(
                        sort_order=sort_order,
                        settings=GenerationSettingsV1(
                            model=self.model,
                            orientation=request.orientation,
                            image_urls=[image_url],
                            prompt=selection.prompt,
                            template_key=selection.key,
                            category=room.category,
                            room_id=room.id,
                            room_name=room.name,
                            room_number=room.room_number,
                            sort_order=sort_order,
                            clip_index=clip_index,
                            duration_s=self.clip_duration_s,
                            ai_directions=request.ai_directions,
                        ),
                    )
                )

        logger.info(
            "fanout_planned",
            listing_id=request.listing_id,
            room_count=len(rooms),
            job_count=len(specs),
        )
        return specs

    @staticmethod
    def _primary_image_url(room: RoomPlan, listing_primary_url: str) -> str:
        for image in room.images:
            if image.is_primary:
                return image.url
        return listing_primary_url

    @staticmethod
    def _secondary_image_url(room: RoomPlan, primary_url: str) -> Optional[str]:
        scored = [
            image
            for image in room.images
            if image.url != primary_url
            and image.primary_score is not None
            and image.primary_score >= SECONDARY_IMAGE_MIN_SCORE
        ]
        if not scored:
            return None
        return max(scored, key=lambda image: image.primary_score).url
