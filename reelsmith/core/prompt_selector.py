"""
Prompt Selector - choose a non-repeating camera-motion prompt per room
"""

import random
from typing import Callable, Dict, List, Optional, Sequence
from pydantic import BaseModel

from reelsmith.config.constants import PROMPT_CONSTRAINTS, PROMPT_ROOM_NAMES, ROOM_CATEGORY_INDEX


class PromptTemplate(BaseModel):
    key: str
    template: str


class PromptSelection(BaseModel):
    key: str
    prompt: str


INTERIOR_TEMPLATES: List[PromptTemplate] = [
    PromptTemplate(key="interior-forward-pan", template="Forward pan through the {room_name}."),
    PromptTemplate(key="interior-center-push", template="Steady push-in toward the center of the {room_name}."),
    PromptTemplate(key="interior-corner-reveal", template="Gentle corner reveal into the {room_name}."),
]

EXTERIOR_AERIAL_TEMPLATES: List[PromptTemplate] = [
    PromptTemplate(
        key="exterior-aerial-flyover",
        template="Aerial flyover of the {room_name}, gliding forward above the property.",
    ),
    PromptTemplate(key="exterior-aerial-orbit", template="Smooth orbit around the {room_name}, aerial perspective."),
    PromptTemplate(key="exterior-aerial-descend", template="Descending aerial shot toward the {room_name}."),
    PromptTemplate(
        key="exterior-aerial-sweep",
        template="Aerial sweep across the {room_name}, wide cinematic movement.",
    ),
]

EXTERIOR_GROUND_TEMPLATES: List[PromptTemplate] = [
    PromptTemplate(key="exterior-ground-approach", template="Steady approach toward the {room_name}."),
    PromptTemplate(key="exterior-ground-lateral", template="Lateral tracking pan across the {room_name}."),
    PromptTemplate(key="exterior-ground-orbit", template="Steady pan around the {room_name}."),
]

# Category overrides are tried before the family defaults
CATEGORY_TEMPLATES: Dict[str, List[PromptTemplate]] = {
    "bathroom": [PromptTemplate(key="bathroom-slow-push", template="Slow camera pan into the {room_name}.")],
    "bedroom": [
        PromptTemplate(
            key="bedroom-center-push",
            template="Steady camera movement toward the center of the {room_name}.",
        )
    ],
}

Picker = Callable[[Sequence[PromptTemplate]], PromptTemplate]


def base_category(category: str) -> str:
    """Strip a numeric suffix: "bedroom-2" -> "bedroom" """
    head, _, tail = category.rpartition("-")
    if head and tail.isdigit():
        return head
    return category


def is_exterior(category: str) -> bool:
    base = base_category(category)
    entry = ROOM_CATEGORY_INDEX.get(base)
    if entry:
        return entry["group"] == "exterior"
    return base.startswith("exterior")


def template_pool(category: str, perspective: Optional[str] = None) -> List[PromptTemplate]:
    """All candidate templates for a category, overrides first"""
    base = base_category(category)
    if is_exterior(base):
        family = EXTERIOR_GROUND_TEMPLATES if perspective == "ground" else EXTERIOR_AERIAL_TEMPLATES
    else:
        family = INTERIOR_TEMPLATES
    return CATEGORY_TEMPLATES.get(base, []) + family


def prompt_room_name(category: str, room_name: str) -> str:
    return PROMPT_ROOM_NAMES.get(base_category(category), room_name.lower())


def select_prompt(
    category: str,
    room_name: str,
    perspective: Optional[str] = None,
    previous_key: Optional[str] = None,
    picker: Optional[Picker] = None,
) -> PromptSelection:
    """
    Pick a motion prompt for a room, avoiding the previous template key

    Args:
        category: Room category id, possibly suffixed ("bedroom-2")
        room_name: Display name of the room
        perspective: "aerial" or "ground" for exterior categories
        previous_key: Template key used by the previous clip in the batch
        picker: Chooses one template from the candidates (random.choice by default)

    Returns:
        PromptSelection with the template key and the full prompt text
    """
    pool = template_pool(category, perspective)
    if len(pool) == 1:
        chosen = pool[0]
    else:
        candidates = [t for t in pool if t.key != previous_key] or pool
        chosen = (picker or random.choice)(candidates)

    motion = chosen.template.format(room_name=prompt_room_name(category, room_name))
    return PromptSelection(key=chosen.key, prompt=f"{motion} {PROMPT_CONSTRAINTS}")
