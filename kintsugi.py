"""
Kintsugi profile model.

A profile tracks visits and streaks, "cracks" (missed days and logged
anxiety) and their golden "repairs" through completed module activities.
The vessel visual is derived from the profile on every call.

Profiles are plain JSON-compatible dicts so the same record can be read by
the browser client and stored as text in any key-value store exposing
``get(key)`` and ``set(key, value)``.
"""
import copy
import json
import logging
import uuid
from datetime import date, datetime, timedelta

from modules_config import get_module

logger = logging.getLogger(__name__)

STORAGE_KEY = "kintsugi-profile"

# at most this many absence cracks per broken streak
MAX_ABSENCE_CRACKS = 6

CRACK_TYPES = ("absence", "anxiety")

STAT_KEYS = (
    "totalVisits", "currentStreak", "longestStreak",
    "gardenActions", "studySessions", "tatamiSessions",
)

# (x base, x spread, y) per point; x = base + hash % spread
CRACK_TEMPLATES = [
    [(60, 40, 40), (55, 30, 80), (65, 20, 120), (50, 40, 160)],
    [(100, 30, 50), (110, 20, 90), (95, 25, 130)],
    [(70, 30, 100), (85, 20, 140), (75, 25, 180)],
    [(110, 25, 70), (120, 20, 110), (105, 30, 150), (115, 20, 190)],
    [(80, 20, 130), (95, 25, 170), (85, 20, 200)],
    [(50, 30, 80), (60, 25, 120), (45, 30, 160)],
    [(130, 20, 60), (140, 15, 100), (125, 25, 140)],
    [(90, 25, 50), (100, 20, 85), (85, 30, 120), (95, 20, 155)],
]

VESSEL_MESSAGES = {
    "empty": {
        "en": "Your vessel is new and unblemished. Through your journey, it will gain character.",
        "ja": "あなたの器はまだ新しく、傷ひとつありません。歩みの中で、個性が刻まれていきます。",
    },
    "waiting": {
        "en": "Your vessel has cracks waiting to be repaired. Continue your journey to heal them with gold.",
        "ja": "ヒビが修復を待っています。歩みを続けて、金で繋いでいきましょう。",
    },
}


def generate_id():
    return uuid.uuid4().hex


def _now(now=None):
    return now or datetime.utcnow()


def _day(timestamp: str) -> date:
    return date.fromisoformat(timestamp[:10])


def create_default_profile(now=None):
    stamp = _now(now).isoformat()
    return {
        "id": generate_id(),
        "createdAt": stamp,
        "lastVisit": stamp,
        "cracks": [],
        "totalRepairs": 0,
        "activities": [],
        "stats": {
            "totalVisits": 1,
            "currentStreak": 1,
            "longestStreak": 1,
            "gardenActions": 0,
            "studySessions": 0,
            "tatamiSessions": 0,
        },
    }


def _normalize(data):
    """Fill counters missing from older records; raise ValueError on a bad shape."""
    if not isinstance(data, dict):
        raise ValueError("profile is not an object")

    profile = create_default_profile()
    profile.update(data)

    stored_stats = data.get("stats") or {}
    if not isinstance(stored_stats, dict):
        raise ValueError("stats must be an object")
    stats = {k: 0 for k in STAT_KEYS}
    stats.update(stored_stats)
    profile["stats"] = stats

    counters = [profile["totalRepairs"]] + [stats[k] for k in STAT_KEYS]
    if not all(isinstance(n, int) and not isinstance(n, bool) for n in counters):
        raise ValueError("counters must be integers")

    if not isinstance(profile["cracks"], list) or not isinstance(profile["activities"], list):
        raise ValueError("cracks and activities must be lists")
    for crack in profile["cracks"]:
        if not isinstance(crack, dict) or not isinstance(crack.get("id"), str) or crack.get("type") not in CRACK_TYPES:
            raise ValueError("malformed crack")
    for activity in profile["activities"]:
        if not isinstance(activity, dict) or not isinstance(activity.get("type"), str):
            raise ValueError("malformed activity")

    _day(profile["lastVisit"])
    _day(profile["createdAt"])
    return profile


def load_profile(store):
    """
    Read the stored profile. Absent or unreadable state yields a fresh
    profile; this never raises.
    """
    try:
        stored = store.get(STORAGE_KEY)
        if stored:
            return _normalize(json.loads(stored))
    except Exception as e:
        logger.warning("Failed to load profile, starting fresh: %s", e)
    return create_default_profile()


def save_profile(store, profile):
    """Persist the full snapshot. Failures are logged, never raised."""
    try:
        store.set(STORAGE_KEY, json.dumps(profile, ensure_ascii=False))
    except Exception:
        logger.exception("Failed to save profile %s", profile.get("id"))


def record_visit(profile, now=None):
    now = _now(now)
    today = now.date()
    last_visit = _day(profile["lastVisit"])

    if today == last_visit:
        return profile

    updated = copy.deepcopy(profile)
    stats = updated["stats"]
    gap = abs((today - last_visit).days)

    if gap == 1:
        stats["currentStreak"] += 1
    elif gap > 1:
        for i in range(1, min(gap, MAX_ABSENCE_CRACKS + 1)):
            updated["cracks"].append({
                "id": generate_id(),
                "type": "absence",
                "date": (last_visit + timedelta(days=i)).isoformat(),
                "repaired": False,
            })
        stats["currentStreak"] = 1

    stats["totalVisits"] += 1
    stats["longestStreak"] = max(stats["longestStreak"], stats["currentStreak"])
    updated["lastVisit"] = now.isoformat()
    return updated


def record_anxiety(profile, text, now=None):
    updated = copy.deepcopy(profile)
    updated["cracks"].append({
        "id": generate_id(),
        "type": "anxiety",
        "date": _now(now).isoformat(),
        "text": text,
        "repaired": False,
    })
    return updated


def find_first_unrepaired(cracks):
    """Index of the earliest unrepaired crack in insertion order, or None."""
    for index, crack in enumerate(cracks):
        if not crack.get("repaired"):
            return index
    return None


def record_activity(profile, activity_type, details=None, now=None):
    module = get_module(activity_type)
    if module is None:
        raise ValueError(f"Unknown activity type: {activity_type!r}")

    details = dict(details or {})
    step = 1
    if activity_type == "garden":
        try:
            step = int(details.get("actionCount") or 1)
        except (TypeError, ValueError):
            raise ValueError("actionCount must be a number")
        if step < 1:
            raise ValueError("actionCount must be at least 1")

    stamp = _now(now).isoformat()
    updated = copy.deepcopy(profile)

    updated["activities"].append({
        "id": generate_id(),
        "type": activity_type,
        "date": stamp,
        "details": details,
    })

    index = find_first_unrepaired(updated["cracks"])
    if index is not None:
        crack = updated["cracks"][index]
        crack["repaired"] = True
        crack["repairedDate"] = stamp
        updated["totalRepairs"] += 1

    updated["stats"][module["stat"]] += step
    return updated


def _hash_id(value: str) -> int:
    # 32-bit signed string hash, absolute value
    h = 0
    for ch in value:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def crack_path(crack_id: str, index: int) -> str:
    h = _hash_id(crack_id)
    points = CRACK_TEMPLATES[(index + h) % len(CRACK_TEMPLATES)]
    parts = []
    for n, (base, spread, y) in enumerate(points):
        parts.append(f"{'M' if n == 0 else 'L'}{base + h % spread} {y}")
    return " ".join(parts)


def calculate_vessel_visual(profile, today=None):
    cracks = profile["cracks"]
    stats = profile["stats"]

    depth = min(100, len(profile["activities"]) * 5 + len(cracks) * 3 + stats["totalVisits"])

    repaired_count = sum(1 for c in cracks if c.get("repaired"))
    repair_ratio = repaired_count / len(cracks) if cracks else 0
    gold_intensity = min(100, repair_ratio * 50 + profile["totalRepairs"] * 5)

    today = today or datetime.utcnow().date()
    days_since_creation = abs((today - _day(profile["createdAt"])).days)
    patina = min(100, days_since_creation * 2)

    return {
        "depth": depth,
        "goldIntensity": gold_intensity,
        "repairedCount": repaired_count,
        "patina": patina,
        "cracks": [
            {"path": crack_path(c["id"], i), "repaired": bool(c.get("repaired")), "type": c["type"]}
            for i, c in enumerate(cracks)
        ],
    }


def vessel_message(profile, lang="en"):
    cracks = profile["cracks"]
    if not cracks:
        return VESSEL_MESSAGES["empty"][lang]

    repaired = sum(1 for c in cracks if c.get("repaired"))
    if repaired:
        if lang == "ja":
            return f"{repaired}箇所のヒビが金で修復されました。あなたの器は美しい物語を語っています。"
        plural = "s" if repaired > 1 else ""
        return f"{repaired} crack{plural} repaired with gold. Your vessel tells a beautiful story."

    return VESSEL_MESSAGES["waiting"][lang]
