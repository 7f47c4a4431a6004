# report.py
from datetime import date, datetime, timedelta

from modules_config import module_ids

ENCOURAGEMENT = {
    "idle": {
        "en": "Start your journey to see your weekly progress here.",
        "ja": "この画面で週間の進捗を見るには、まず旅を始めましょう。",
    },
    "steady": {
        "en": "Every step forward, no matter how small, is progress.",
        "ja": "どんなに小さくても、前への一歩は進歩です。",
    },
    "golden": {
        "en": "Cracks were mended with gold this week. Your vessel carries your story.",
        "ja": "今週、ヒビが金で繋がれました。あなたの器は物語を宿しています。",
    },
}


def _day_of(timestamp):
    if not timestamp:
        return None
    try:
        return date.fromisoformat(timestamp[:10])
    except ValueError:
        return None


def _level(sessions, repaired):
    if repaired:
        return "gold"
    if sessions >= 3:
        return "active"
    if sessions >= 1:
        return "light"
    return "none"


def build_weekly_report(profile, lang="en", today=None):
    """
    Summarize the seven calendar days ending today.
    Weekday numbering starts at Sunday = 0.
    """
    today = today or datetime.utcnow().date()
    start = today - timedelta(days=6)
    window = [start + timedelta(days=i) for i in range(7)]

    sessions_by_day = {d: 0 for d in window}
    repairs_by_day = {d: 0 for d in window}
    by_type = {m: 0 for m in module_ids()}

    for activity in profile["activities"]:
        d = _day_of(activity.get("date"))
        if d in sessions_by_day:
            sessions_by_day[d] += 1
            if activity["type"] in by_type:
                by_type[activity["type"]] += 1

    for crack in profile["cracks"]:
        if not crack.get("repaired"):
            continue
        d = _day_of(crack.get("repairedDate"))
        if d in repairs_by_day:
            repairs_by_day[d] += 1

    total = sum(sessions_by_day.values())
    repairs = sum(repairs_by_day.values())

    most_active = None
    best = 0
    for module_id, count in by_type.items():
        if count > best:
            most_active, best = module_id, count

    if total == 0:
        encouragement = ENCOURAGEMENT["idle"][lang]
    elif repairs:
        encouragement = ENCOURAGEMENT["golden"][lang]
    else:
        encouragement = ENCOURAGEMENT["steady"][lang]

    days = []
    for d in window:
        days.append({
            "date": d.isoformat(),
            "weekday": (d.weekday() + 1) % 7,
            "sessions": sessions_by_day[d],
            "repaired": repairs_by_day[d] > 0,
            "level": _level(sessions_by_day[d], repairs_by_day[d] > 0),
        })

    return {
        "startDate": start.isoformat(),
        "endDate": today.isoformat(),
        "currentStreak": profile["stats"]["currentStreak"],
        "totalSessions": total,
        "avgPerDay": round(total / 7, 1),
        "repairs": repairs,
        "byType": by_type,
        "mostActive": most_active,
        "days": days,
        "encouragement": encouragement,
    }
