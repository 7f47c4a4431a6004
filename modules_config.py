# modules_config.py
MODULES = [
    {
        "id": "garden",
        "name": {"en": "Garden", "ja": "庭"},
        "practice": "Morita",
        "focus": {"en": "Small actions alongside anxiety", "ja": "不安とともに、小さな行動から"},
        "stat": "gardenActions",
        "route": "/garden",
    },
    {
        "id": "study",
        "name": {"en": "Study", "ja": "書斎"},
        "practice": "Naikan",
        "focus": {"en": "Reflecting on your connections", "ja": "繋がりを見つめ直す時間"},
        "stat": "studySessions",
        "route": "/study",
    },
    {
        "id": "tatami",
        "name": {"en": "Tatami", "ja": "座敷"},
        "practice": "Zen",
        "focus": {"en": "Returning to the present in stillness", "ja": "静寂の中で、今に還る"},
        "stat": "tatamiSessions",
        "route": "/tatami",
    },
]

# inner weather -> module to suggest
WEATHER_SUGGESTIONS = {
    "stormy": "garden",
    "rainy": "garden",
    "cloudy": "study",
    "sunny": "tatami",
}

WEATHER_MESSAGES = {
    "sunny": {"en": "A calm day. Let's cherish this harmony.",
              "ja": "穏やかな日ですね。この調和を大切にしましょう。"},
    "cloudy": {"en": "A bit cloudy. That's natural too.",
               "ja": "少し曇り空。それも自然なことです。"},
    "rainy": {"en": "On rainy days, let's walk in the rain.",
              "ja": "雨の日は、雨の中を歩きましょう。"},
    "stormy": {"en": "Even in the storm, you are here.",
               "ja": "嵐の中でも、あなたはここにいます。"},
}


def module_ids():
    return [m["id"] for m in MODULES]


def get_module(module_id):
    for m in MODULES:
        if m["id"] == module_id:
            return m
    return None


def suggest_module(weather):
    """Module suggested for an inner-weather check-in, or None for unknown weather."""
    return get_module(WEATHER_SUGGESTIONS.get(weather))
