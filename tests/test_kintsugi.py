import json
from datetime import date, datetime, timedelta

import pytest

from kintsugi import (
    STORAGE_KEY, create_default_profile, load_profile, save_profile,
    record_visit, record_anxiety, record_activity, calculate_vessel_visual,
    crack_path, find_first_unrepaired, vessel_message
)

START = datetime(2024, 3, 1, 9, 30)


def profile_at(when=START):
    return create_default_profile(now=when)


# -------------------------
# load / save
# -------------------------

def test_load_profile_without_state_returns_fresh_profile(memory_store):
    profile = load_profile(memory_store)

    assert profile["stats"]["totalVisits"] == 1
    assert profile["stats"]["currentStreak"] == 1
    assert profile["cracks"] == []
    assert profile["activities"] == []
    assert profile["totalRepairs"] == 0


def test_load_profile_with_garbage_returns_fresh_profile(memory_store):
    memory_store.set(STORAGE_KEY, "{not json")
    profile = load_profile(memory_store)
    assert profile["stats"]["totalVisits"] == 1
    assert profile["cracks"] == []


def test_load_profile_rejects_non_object_json(memory_store):
    memory_store.set(STORAGE_KEY, "[1, 2, 3]")
    assert load_profile(memory_store)["activities"] == []


def test_load_profile_swallows_read_errors(broken_store):
    profile = load_profile(broken_store)
    assert profile["stats"]["totalVisits"] == 1


def test_save_then_load_keeps_state(memory_store):
    profile = record_anxiety(profile_at(), "deadline")
    save_profile(memory_store, profile)

    loaded = load_profile(memory_store)
    assert loaded["id"] == profile["id"]
    assert loaded["cracks"][0]["text"] == "deadline"


def test_save_profile_keeps_japanese_text_readable(memory_store):
    save_profile(memory_store, record_anxiety(profile_at(), "不安です"))
    assert "不安です" in memory_store.get(STORAGE_KEY)


def test_save_profile_failure_is_not_raised(broken_store):
    profile = profile_at()
    save_profile(broken_store, profile)
    # in-memory object still usable
    assert record_visit(profile, now=START + timedelta(days=1))["stats"]["totalVisits"] == 2


def test_load_profile_fills_missing_counters(memory_store):
    old = profile_at()
    del old["stats"]["tatamiSessions"]
    memory_store.set(STORAGE_KEY, json.dumps(old))

    loaded = load_profile(memory_store)
    assert loaded["stats"]["tatamiSessions"] == 0
    assert loaded["id"] == old["id"]


# -------------------------
# visits and streaks
# -------------------------

def test_same_day_visit_is_idempotent():
    profile = profile_at()
    once = record_visit(profile, now=START + timedelta(hours=3))
    twice = record_visit(once, now=START + timedelta(hours=5))

    assert twice["stats"] == profile["stats"]
    assert twice["cracks"] == profile["cracks"]


def test_repeat_visit_on_new_day_counts_only_once():
    later = START + timedelta(days=1)
    first = record_visit(profile_at(), now=later)
    second = record_visit(first, now=later + timedelta(hours=2))

    assert second["stats"]["totalVisits"] == 2
    assert second["stats"]["currentStreak"] == 2


def test_next_day_visit_extends_streak():
    profile = profile_at()
    profile["stats"]["currentStreak"] = 4
    profile["stats"]["longestStreak"] = 4

    updated = record_visit(profile, now=START + timedelta(days=1))

    assert updated["stats"]["currentStreak"] == 5
    assert updated["stats"]["longestStreak"] == 5
    assert updated["stats"]["totalVisits"] == 2
    assert updated["cracks"] == []


def test_record_visit_does_not_mutate_input():
    profile = profile_at()
    record_visit(profile, now=START + timedelta(days=3))
    assert profile["stats"]["totalVisits"] == 1
    assert profile["cracks"] == []


def test_long_gap_resets_streak_and_caps_absence_cracks():
    profile = profile_at()
    profile["stats"]["currentStreak"] = 3
    profile["stats"]["longestStreak"] = 3

    updated = record_visit(profile, now=START + timedelta(days=10))

    assert updated["stats"]["currentStreak"] == 1
    assert updated["stats"]["longestStreak"] == 3
    absences = [c for c in updated["cracks"] if c["type"] == "absence"]
    assert len(absences) == 6
    assert [c["date"] for c in absences] == [
        (date(2024, 3, 1) + timedelta(days=i)).isoformat() for i in range(1, 7)
    ]
    assert all(not c["repaired"] for c in absences)


def test_two_day_gap_adds_one_absence_crack():
    updated = record_visit(profile_at(), now=START + timedelta(days=2))
    assert len(updated["cracks"]) == 1
    assert updated["cracks"][0]["date"] == "2024-03-02"
    assert updated["stats"]["currentStreak"] == 1


def test_visit_updates_last_visit():
    now = START + timedelta(days=1, hours=2)
    assert record_visit(profile_at(), now=now)["lastVisit"] == now.isoformat()


# -------------------------
# cracks and repairs
# -------------------------

def test_record_anxiety_appends_unrepaired_crack():
    updated = record_anxiety(profile_at(), "stressed")
    crack = updated["cracks"][-1]
    assert crack["type"] == "anxiety"
    assert crack["text"] == "stressed"
    assert crack["repaired"] is False


def test_activity_repairs_earliest_crack_only():
    profile = record_anxiety(record_anxiety(profile_at(), "first"), "second")
    c1, c2 = profile["cracks"]

    updated = record_activity(profile, "study")

    assert updated["cracks"][0]["id"] == c1["id"]
    assert updated["cracks"][0]["repaired"] is True
    assert "repairedDate" in updated["cracks"][0]
    assert updated["cracks"][1]["id"] == c2["id"]
    assert updated["cracks"][1]["repaired"] is False
    assert updated["totalRepairs"] == profile["totalRepairs"] + 1


def test_activity_skips_already_repaired_cracks():
    profile = record_anxiety(record_anxiety(profile_at(), "a"), "b")
    profile = record_activity(profile, "tatami")
    profile = record_activity(profile, "tatami")

    assert [c["repaired"] for c in profile["cracks"]] == [True, True]
    assert profile["totalRepairs"] == 2


def test_activity_without_cracks_still_logged():
    profile = profile_at()
    updated = record_activity(profile, "tatami", {"breathingMinutes": 5})

    assert updated["totalRepairs"] == 0
    assert len(updated["activities"]) == 1
    assert updated["activities"][0]["details"] == {"breathingMinutes": 5}
    assert updated["stats"]["tatamiSessions"] == 1


def test_repaired_crack_never_reverts():
    profile = record_activity(record_anxiety(profile_at(), "x"), "study")
    profile = record_visit(profile, now=START + timedelta(days=5))
    profile = record_activity(profile, "garden")
    assert profile["cracks"][0]["repaired"] is True


def test_garden_counter_uses_action_count():
    updated = record_activity(profile_at(), "garden", {"actionCount": 3})
    assert updated["stats"]["gardenActions"] == 3

    updated = record_activity(updated, "garden")
    assert updated["stats"]["gardenActions"] == 4


def test_study_counter_ignores_details():
    updated = record_activity(profile_at(), "study", {"questionsAnswered": 3})
    assert updated["stats"]["studySessions"] == 1


def test_unknown_activity_type_rejected():
    with pytest.raises(ValueError):
        record_activity(profile_at(), "kitchen")


@pytest.mark.parametrize("count", [[2], {"n": 2}, "many", -1])
def test_garden_rejects_bad_action_count(count):
    with pytest.raises(ValueError):
        record_activity(profile_at(), "garden", {"actionCount": count})


@pytest.mark.parametrize("field,value", [
    ("cracks", [1]),
    ("cracks", [{"id": "c1", "type": "struggle", "repaired": False}]),
    ("activities", ["garden"]),
    ("totalRepairs", "3"),
    ("stats", {"totalVisits": 2.5}),
    ("stats", [1, 2]),
])
def test_load_profile_with_malformed_fields_starts_fresh(memory_store, field, value):
    stored = record_anxiety(profile_at(), "x")
    stored[field] = value
    memory_store.set(STORAGE_KEY, json.dumps(stored))

    loaded = load_profile(memory_store)
    assert loaded["id"] != stored["id"]
    assert loaded["cracks"] == []


def test_find_first_unrepaired():
    cracks = [{"repaired": True}, {"repaired": False}, {"repaired": False}]
    assert find_first_unrepaired(cracks) == 1
    assert find_first_unrepaired([{"repaired": True}]) is None
    assert find_first_unrepaired([]) is None


def test_end_to_end_anxiety_then_garden():
    profile = record_anxiety(profile_at(), "stressed")
    profile = record_activity(profile, "garden", {"actionCount": 1})

    assert len(profile["cracks"]) == 1
    assert profile["cracks"][0]["repaired"] is True
    assert profile["totalRepairs"] == 1
    assert profile["stats"]["gardenActions"] == 1


# -------------------------
# vessel visual
# -------------------------

def test_fresh_vessel():
    visual = calculate_vessel_visual(profile_at(), today=START.date())
    assert visual["depth"] == 1
    assert visual["goldIntensity"] == 0
    assert visual["repairedCount"] == 0
    assert visual["patina"] == 0
    assert visual["cracks"] == []


def test_depth_is_clamped():
    profile = profile_at()
    profile["activities"] = [{"id": str(i), "type": "garden", "date": START.isoformat()} for i in range(50)]
    profile["cracks"] = [
        {"id": f"c{i}", "type": "absence", "date": "2024-03-01", "repaired": False} for i in range(50)
    ]
    assert calculate_vessel_visual(profile)["depth"] == 100


def test_gold_intensity_mixes_ratio_and_repairs():
    profile = record_anxiety(record_anxiety(profile_at(), "a"), "b")
    profile = record_activity(profile, "study")

    visual = calculate_vessel_visual(profile, today=START.date())
    # ratio 1/2 -> 25, plus one repair -> 5
    assert visual["goldIntensity"] == 30
    assert visual["repairedCount"] == 1
    assert visual["depth"] == 5 + 6 + 1


def test_gold_intensity_is_clamped():
    profile = profile_at()
    profile["totalRepairs"] = 40
    assert calculate_vessel_visual(profile)["goldIntensity"] == 100


def test_patina_grows_with_age():
    assert calculate_vessel_visual(profile_at(), today=date(2024, 3, 11))["patina"] == 20
    assert calculate_vessel_visual(profile_at(), today=date(2025, 3, 1))["patina"] == 100


def test_crack_paths_are_deterministic():
    path = crack_path("abc123", 0)
    assert path == crack_path("abc123", 0)
    assert path.startswith("M")
    assert " L" in path


def test_crack_path_for_known_id():
    # hash("a") == 97 -> template (0 + 97) % 8 == 1
    assert crack_path("a", 0) == "M107 50 L127 90 L117 130"


def test_vessel_lists_one_path_per_crack():
    profile = record_activity(record_anxiety(record_anxiety(profile_at(), "a"), "b"), "study")
    cracks = calculate_vessel_visual(profile)["cracks"]
    assert [c["repaired"] for c in cracks] == [True, False]
    assert all(c["type"] == "anxiety" for c in cracks)


def test_vessel_message_states():
    fresh = profile_at()
    assert vessel_message(fresh).startswith("Your vessel is new")

    cracked = record_anxiety(fresh, "x")
    assert "waiting" in vessel_message(cracked)

    repaired = record_activity(record_anxiety(cracked, "y"), "study")
    assert vessel_message(repaired) == "1 crack repaired with gold. Your vessel tells a beautiful story."

    both = record_activity(repaired, "study")
    assert vessel_message(both).startswith("2 cracks repaired")
    assert vessel_message(both, "ja").startswith("2箇所")
