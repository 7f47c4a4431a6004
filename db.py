import json
import sqlite3
from datetime import datetime
from pathlib import Path

import config

DB_PATH = config.DB_PATH
SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def get_conn():
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    conn = get_conn()
    conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
    conn.commit()
    conn.close()


# -------------------------
# KEY-VALUE STORE
# -------------------------

def kv_get(scope, key):
    conn = get_conn()
    row = conn.execute(
        "SELECT value FROM kv_store WHERE scope=? AND key=?",
        (scope, key)
    ).fetchone()
    conn.close()
    return row["value"] if row else None


def kv_set(scope, key, value):
    conn = get_conn()
    conn.execute(
        """INSERT INTO kv_store (scope, key, value, updated_at) VALUES (?,?,?,?)
           ON CONFLICT(scope, key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at""",
        (scope, key, value, datetime.utcnow().isoformat())
    )
    conn.commit()
    conn.close()


class DeviceStore:
    """get/set view of the key-value table for one device."""

    def __init__(self, scope):
        self.scope = scope

    def get(self, key):
        return kv_get(self.scope, key)

    def set(self, key, value):
        kv_set(self.scope, key, value)


# -------------------------
# SERVER MIRROR
# -------------------------

def sync_profile(user_id, profile):
    """Upsert a profile snapshot with its cracks and activities."""
    stats = profile["stats"]
    conn = get_conn()
    try:
        conn.execute(
            """INSERT INTO profiles (
                id, user_id, created_at, last_visit, total_repairs,
                stats_total_visits, stats_current_streak, stats_longest_streak,
                stats_garden_actions, stats_study_sessions, stats_tatami_sessions,
                updated_at
            ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?)
            ON CONFLICT(id) DO UPDATE SET
                user_id=excluded.user_id,
                last_visit=excluded.last_visit,
                total_repairs=excluded.total_repairs,
                stats_total_visits=excluded.stats_total_visits,
                stats_current_streak=excluded.stats_current_streak,
                stats_longest_streak=excluded.stats_longest_streak,
                stats_garden_actions=excluded.stats_garden_actions,
                stats_study_sessions=excluded.stats_study_sessions,
                stats_tatami_sessions=excluded.stats_tatami_sessions,
                updated_at=excluded.updated_at""",
            (
                profile["id"], user_id, profile["createdAt"], profile["lastVisit"],
                profile["totalRepairs"],
                stats["totalVisits"], stats["currentStreak"], stats["longestStreak"],
                stats["gardenActions"], stats["studySessions"], stats["tatamiSessions"],
                datetime.utcnow().isoformat()
            )
        )

        for position, crack in enumerate(profile["cracks"]):
            conn.execute(
                """INSERT INTO cracks (id, profile_id, position, type, date, text, repaired, repaired_at)
                   VALUES (?,?,?,?,?,?,?,?)
                   ON CONFLICT(id) DO UPDATE SET
                       repaired=excluded.repaired,
                       repaired_at=excluded.repaired_at""",
                (
                    crack["id"], profile["id"], position, crack["type"],
                    crack.get("date"), crack.get("text"),
                    1 if crack.get("repaired") else 0, crack.get("repairedDate")
                )
            )

        for position, activity in enumerate(profile["activities"]):
            conn.execute(
                """INSERT OR IGNORE INTO activities (id, profile_id, position, type, data, created_at)
                   VALUES (?,?,?,?,?,?)""",
                (
                    activity["id"], profile["id"], position, activity["type"],
                    json.dumps(activity.get("details") or {}, ensure_ascii=False),
                    activity.get("date")
                )
            )

        conn.commit()
    finally:
        conn.close()


def load_mirrored_profile(user_id):
    """Rebuild the most recently synced profile for user_id, or None."""
    conn = get_conn()
    row = conn.execute(
        "SELECT * FROM profiles WHERE user_id=? ORDER BY updated_at DESC LIMIT 1",
        (user_id,)
    ).fetchone()
    if not row:
        conn.close()
        return None

    crack_rows = conn.execute(
        "SELECT * FROM cracks WHERE profile_id=? ORDER BY position",
        (row["id"],)
    ).fetchall()
    activity_rows = conn.execute(
        "SELECT * FROM activities WHERE profile_id=? ORDER BY position",
        (row["id"],)
    ).fetchall()
    conn.close()

    cracks = []
    for c in crack_rows:
        crack = {"id": c["id"], "type": c["type"], "date": c["date"], "repaired": bool(c["repaired"])}
        if c["text"] is not None:
            crack["text"] = c["text"]
        if c["repaired_at"]:
            crack["repairedDate"] = c["repaired_at"]
        cracks.append(crack)

    activities = []
    for a in activity_rows:
        try:
            details = json.loads(a["data"]) if a["data"] else {}
        except ValueError:
            details = {}
        activities.append({"id": a["id"], "type": a["type"], "date": a["created_at"], "details": details})

    return {
        "id": row["id"],
        "createdAt": row["created_at"],
        "lastVisit": row["last_visit"],
        "cracks": cracks,
        "totalRepairs": row["total_repairs"],
        "activities": activities,
        "stats": {
            "totalVisits": row["stats_total_visits"],
            "currentStreak": row["stats_current_streak"],
            "longestStreak": row["stats_longest_streak"],
            "gardenActions": row["stats_garden_actions"],
            "studySessions": row["stats_study_sessions"],
            "tatamiSessions": row["stats_tatami_sessions"],
        },
    }


def add_checkin(checkin_id, user_id, weather, note, created_at):
    conn = get_conn()
    conn.execute(
        "INSERT INTO checkins (id, user_id, weather, note, created_at) VALUES (?,?,?,?,?)",
        (checkin_id, user_id, weather, note, created_at)
    )
    conn.commit()
    conn.close()


def get_checkins(user_id, limit=20):
    conn = get_conn()
    rows = conn.execute(
        "SELECT id, weather, note, created_at FROM checkins WHERE user_id=? ORDER BY created_at DESC LIMIT ?",
        (user_id, limit)
    ).fetchall()
    conn.close()
    return rows
