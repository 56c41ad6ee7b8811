"""
Application Constants Configuration
"""

from typing import Dict, FrozenSet, List, Tuple


# Canonical room categories in the order their clips appear in the final video.
# "numbered" categories get a numeric suffix in display names ("Bedroom 2").
ROOM_CATEGORIES: List[Dict] = [
    {"id": "exterior-front", "label": "Front Exterior", "group": "exterior", "numbered": False},
    {"id": "entryway", "label": "Entryway", "group": "interior", "numbered": False},
    {"id": "living-room", "label": "Living Room", "group": "interior", "numbered": True},
    {"id": "family-room", "label": "Family Room", "group": "interior", "numbered": True},
    {"id": "dining-room", "label": "Dining Room", "group": "interior", "numbered": False},
    {"id": "kitchen", "label": "Kitchen", "group": "interior", "numbered": True},
    {"id": "office", "label": "Office", "group": "interior", "numbered": True},
    {"id": "primary-bedroom", "label": "Primary Bedroom", "group": "interior", "numbered": False},
    {"id": "primary-bathroom", "label": "Primary Bathroom", "group": "interior", "numbered": False},
    {"id": "bedroom", "label": "Bedroom", "group": "interior", "numbered": True},
    {"id": "bathroom", "label": "Bathroom", "group": "interior", "numbered": True},
    {"id": "laundry-room", "label": "Laundry Room", "group": "interior", "numbered": False},
    {"id": "basement", "label": "Basement", "group": "interior", "numbered": False},
    {"id": "garage", "label": "Garage", "group": "interior", "numbered": True},
    {"id": "exterior-backyard", "label": "Backyard", "group": "exterior", "numbered": False},
    {"id": "pool", "label": "Pool", "group": "exterior", "numbered": False},
    {"id": "patio", "label": "Patio", "group": "exterior", "numbered": False},
]

ROOM_CATEGORY_INDEX: Dict[str, Dict] = {
    category["id"]: {**category, "order": position}
    for position, category in enumerate(ROOM_CATEGORIES)
}

# Categories that get a second clip when a distinct secondary image exists
PRIORITY_CATEGORIES: FrozenSet[str] = frozenset(
    {"kitchen", "living-room", "primary-bedroom", "exterior-front"}
)

# Minimum selection score for a secondary image to earn its own clip
SECONDARY_IMAGE_MIN_SCORE = 0.0

# Prompt display names that read better than the category label
PROMPT_ROOM_NAMES: Dict[str, str] = {
    "exterior-front": "front of the house",
    "exterior-backyard": "back of the house",
}

PROMPT_CONSTRAINTS = "No people. No added objects. Keep architecture and materials unchanged."

# Orientation -> aspect ratio handed to the provider and the normalizer
ORIENTATION_ASPECT_RATIOS: Dict[str, str] = {
    "vertical": "9:16",
    "landscape": "16:9",
}

ASPECT_RATIO_DIMENSIONS: Dict[str, Tuple[int, int]] = {
    "9:16": (1080, 1920),
    "16:9": (1920, 1080),
}

# Composition canvas per orientation
COMPOSITION_DIMENSIONS: Dict[str, Tuple[int, int]] = {
    "vertical": (720, 1280),
    "landscape": (1280, 720),
}

# FFmpeg Configuration
FFMPEG_VIDEO_CODEC = "libx264"
FFMPEG_PRESET = "medium"
FFMPEG_CRF = "23"
FFMPEG_PIXEL_FORMAT = "yuv420p"
FFMPEG_FRAME_RATE = 30
FFMPEG_THUMBNAIL_QUALITY = "2"
FFMPEG_FALLBACK_DIRS: List[str] = ["/usr/bin", "/usr/local/bin", "/opt/homebrew/bin"]

# Composition
CROSSFADE_DURATION_S = 0.5
LOGO_MARGIN_PX = 20
LOGO_MAX_SIZE_PX = 500
SUBTITLE_MAX_CHARS = 40
SUBTITLE_FONT_SIZE = 24
SUBTITLE_DEFAULT_FONT = "Arial"

# Outbound webhook retry budgets
JOB_WEBHOOK_MAX_RETRIES = 3
BATCH_WEBHOOK_MAX_RETRIES = 6
WEBHOOK_BACKOFF_MS = 1000
WEBHOOK_USER_AGENT = "reelsmith-webhooks/1.0"

# Inbound provider webhook verification
FAL_WEBHOOK_TIMESTAMP_TOLERANCE_S = 300
FAL_JWKS_CACHE_TTL_S = 24 * 60 * 60

# Provider submission retry
PROVIDER_MAX_RETRY_ATTEMPTS = 3
PROVIDER_RETRY_INITIAL_DELAY_S = 2
PROVIDER_RETRY_MAX_DELAY_S = 20

# A webhook worker that crashed mid-processing releases its claim after this
JOB_CLAIM_LEASE_S = 15 * 60

DEFAULT_CANCEL_REASON = "Canceled by user request"
