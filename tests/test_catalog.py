from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from zoneinfo import ZoneInfo

from quiz_quest.catalog import (
    DEFAULT_QUESTS,
    BadgeDef,
    Catalog,
    default_catalog,
    fresh_progress,
    load_catalog,
    sync_catalog,
)


def test_default_catalog_contents() -> None:
    catalog = default_catalog()
    assert len(catalog.badges) == 8
    assert len(catalog.quests) == 5
    assert len(catalog.achievements) == 5
    assert len(catalog.power_ups) == 4
    assert [(c.id, c.reward, c.difficulty) for c in catalog.challenges] == [
        ("speed-quiz", 30, "medium"),
        ("perfect-day", 45, "hard"),
        ("ai-master", 35, "medium"),
        ("early-riser", 25, "easy"),
    ]
    scholar = catalog.badge("scholar")
    assert scholar is not None and scholar.rule == {"type": "sessions_at_least", "value": 10}


def test_missing_file_falls_back_to_defaults(tmp_path) -> None:
    assert load_catalog(tmp_path / "nope.yaml") == default_catalog()


def test_yaml_sections_replace_defaults(tmp_path) -> None:
    path = tmp_path / "catalog.yaml"
    path.write_text(
        """
badges:
  - id: marathoner
    name: Marathoner
    rarity: legendary
    rule: {type: session_minutes_at_least, value: 180}
  - id: broken
    rule: {type: moon_phase, value: 1}
power_ups:
  - id: double-points
    duration_minutes: 15
    multiplier: 2
  - id: pricey
    duration_minutes: 60
    cost: 250
challenges:
  - id: flashcard-sprint
    name: Flashcard Sprint
    reward: 20
    difficulty: HARD
    rule: {type: flashcards_known_at_least, value: 10}
  - id: odd
    difficulty: legendary
    rule: {type: quizzes_at_least, value: 1}
  - id: no-rule
"""
    )
    catalog = load_catalog(path)
    assert [b.id for b in catalog.badges] == ["marathoner"]
    assert catalog.badges[0].rarity == "legendary"
    assert catalog.quests == DEFAULT_QUESTS
    double = catalog.power_up("double-points")
    assert double is not None and double.cost is None and double.duration_minutes == 15
    pricey = catalog.power_up("pricey")
    assert pricey is not None and pricey.cost == 250
    assert [(c.id, c.difficulty) for c in catalog.challenges] == [("flashcard-sprint", "hard"), ("odd", "easy")]
    sprint = catalog.challenge("flashcard-sprint")
    assert sprint is not None and sprint.reward == 20


def test_sync_appends_new_entries_and_keeps_state() -> None:
    catalog = default_catalog()
    earned_at = datetime(2026, 3, 2, 10, tzinfo=ZoneInfo("Europe/Oslo"))
    progress = fresh_progress(1, catalog)
    progress = replace(
        progress,
        badges=tuple(replace(b, earned=True, earned_at=earned_at) if b.id == "first-quiz" else b for b in progress.badges),
    )
    extended = Catalog(
        badges=catalog.badges + (BadgeDef("night-shift", "Night Shift", "", "", "rare", {"type": "studied_from_hour", "value": 23}),),
        achievements=catalog.achievements,
        quests=catalog.quests,
        power_ups=catalog.power_ups,
    )
    synced = sync_catalog(progress, extended)
    assert [b.id for b in synced.badges][-1] == "night-shift"
    first = next(b for b in synced.badges if b.id == "first-quiz")
    assert first.earned and first.earned_at == earned_at
    assert sync_catalog(synced, extended) is synced
