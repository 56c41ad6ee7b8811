"""
Unit Tests for Prompt Selector
"""

from reelsmith.config.constants import PROMPT_CONSTRAINTS
from reelsmith.core.prompt_selector import (
    CATEGORY_TEMPLATES,
    EXTERIOR_AERIAL_TEMPLATES,
    EXTERIOR_GROUND_TEMPLATES,
    INTERIOR_TEMPLATES,
    base_category,
    is_exterior,
    prompt_room_name,
    select_prompt,
    template_pool,
)


def first(candidates):
    return candidates[0]


def test_base_category_strips_numeric_suffix():
    assert base_category("bedroom-2") == "bedroom"
    assert base_category("living-room") == "living-room"
    assert base_category("exterior-front") == "exterior-front"


def test_is_exterior():
    assert is_exterior("exterior-front")
    assert is_exterior("pool")
    assert not is_exterior("kitchen")


def test_template_pool_puts_overrides_first():
    pool = template_pool("bathroom")
    assert pool[0] == CATEGORY_TEMPLATES["bathroom"][0]
    assert pool[1:] == INTERIOR_TEMPLATES


def test_template_pool_uses_perspective_for_exteriors():
    assert template_pool("exterior-front", "ground") == EXTERIOR_GROUND_TEMPLATES
    assert template_pool("exterior-front", "aerial") == EXTERIOR_AERIAL_TEMPLATES
    assert template_pool("exterior-front") == EXTERIOR_AERIAL_TEMPLATES


def test_prompt_room_name_uses_display_overrides():
    assert prompt_room_name("exterior-front", "Front Exterior") == "front of the house"
    assert prompt_room_name("exterior-backyard", "Backyard") == "back of the house"
    assert prompt_room_name("bedroom-2", "Bedroom 2") == "bedroom 2"


def test_select_prompt_appends_constraints():
    selection = select_prompt("kitchen", "Kitchen", picker=first)

    assert selection.key == "interior-forward-pan"
    assert selection.prompt == f"Forward pan through the kitchen. {PROMPT_CONSTRAINTS}"


def test_select_prompt_avoids_previous_key():
    selection = select_prompt("kitchen", "Kitchen", previous_key="interior-forward-pan", picker=first)
    assert selection.key == "interior-center-push"


def test_select_prompt_never_repeats_across_many_draws():
    previous = None
    for _ in range(50):
        selection = select_prompt("living-room", "Living Room", previous_key=previous)
        assert selection.key != previous
        previous = selection.key


def test_select_prompt_falls_back_to_whole_pool(monkeypatch):
    monkeypatch.setitem(CATEGORY_TEMPLATES, "office", [INTERIOR_TEMPLATES[0], INTERIOR_TEMPLATES[0]])
    monkeypatch.setattr("reelsmith.core.prompt_selector.INTERIOR_TEMPLATES", [])

    selection = select_prompt("office", "Office", previous_key=INTERIOR_TEMPLATES[0].key, picker=first)
    assert selection.key == INTERIOR_TEMPLATES[0].key
