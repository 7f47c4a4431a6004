from flask import Flask, request, jsonify, session
from datetime import datetime
import logging
import random
import uuid

import ollama

import config
from db import (
    init_db, DeviceStore, sync_profile, load_mirrored_profile,
    add_checkin, get_checkins
)
from kintsugi import (
    load_profile, save_profile, record_visit, record_anxiety,
    record_activity, calculate_vessel_visual, vessel_message
)
from modules_config import MODULES, WEATHER_MESSAGES, suggest_module
from report import build_weekly_report

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = config.SECRET_KEY

LANGUAGES = ("en", "ja")


@app.before_request
def ensure_device():
    # anonymous identity; scopes the local store and keys the mirror
    if not session.get("device_id"):
        session["device_id"] = uuid.uuid4().hex
        session.permanent = True


init_db()


def device_id():
    return session["device_id"]


def current_store():
    return DeviceStore(device_id())


def get_language(payload=None):
    lang = request.args.get("lang")
    if lang not in LANGUAGES and payload:
        lang = payload.get("lang")
    if lang in LANGUAGES:
        return lang

    if request.headers.get("Accept-Language", "").startswith("ja"):
        return "ja"
    return "en"


class InvalidInput(ValueError):
    pass


def json_payload():
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InvalidInput("request body must be a JSON object")
    return payload


def text_field(payload, name):
    """Stripped string value of payload[name]; empty when missing."""
    value = payload.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be a string")
    return value.strip()


def bad_request(message):
    return jsonify({"ok": False, "error": message}), 400


@app.errorhandler(InvalidInput)
def invalid_input(e):
    return bad_request(str(e))


def mirror_profile(profile):
    """Forward a snapshot to the server tables; never fails the request."""
    try:
        sync_profile(device_id(), profile)
    except Exception as e:
        logger.warning("Could not mirror profile %s: %s", profile.get("id"), e)


def profile_response(profile, lang):
    return jsonify({
        "ok": True,
        "profile": profile,
        "vessel": calculate_vessel_visual(profile),
        "message": vessel_message(profile, lang),
    })


def ask_llm(prompt: str, system: str):
    """Return generated text, or None when AI is disabled or the model returns nothing."""
    if not config.AI_ENABLED:
        return None

    response = ollama.generate(
        model=config.OLLAMA_MODEL,
        prompt=prompt,
        system=system,
        stream=False
    )
    text = (response["response"] or "").strip()
    return text or None


@app.get("/api/health")
def health():
    return jsonify({"ok": True})


@app.get("/api/modules")
def modules():
    lang = get_language()
    return jsonify({
        "modules": [
            {
                "id": m["id"],
                "name": m["name"][lang],
                "practice": m["practice"],
                "focus": m["focus"][lang],
                "route": m["route"],
            }
            for m in MODULES
        ]
    })


# -------------------------
# PROFILE
# -------------------------

@app.get("/api/profile")
def profile_view():
    store = current_store()
    profile = record_visit(load_profile(store))
    save_profile(store, profile)
    return profile_response(profile, get_language())


@app.post("/api/profile/visit")
def profile_visit():
    store = current_store()
    profile = record_visit(load_profile(store))
    save_profile(store, profile)
    return profile_response(profile, get_language())


@app.post("/api/profile/anxiety")
def profile_anxiety():
    payload = json_payload()
    text = text_field(payload, "text")
    if not text:
        return bad_request("text is required")

    store = current_store()
    profile = record_anxiety(load_profile(store), text)
    save_profile(store, profile)
    return profile_response(profile, get_language(payload))


@app.post("/api/profile/activity")
def profile_activity():
    payload = json_payload()
    details = payload.get("details") or {}
    if not isinstance(details, dict):
        return bad_request("details must be an object")

    store = current_store()
    try:
        profile = record_activity(load_profile(store), payload.get("type"), details)
    except ValueError as e:
        return bad_request(str(e))

    save_profile(store, profile)
    mirror_profile(profile)
    return profile_response(profile, get_language(payload))


@app.get("/api/profile/vessel")
def profile_vessel():
    profile = load_profile(current_store())
    lang = get_language()
    return jsonify({
        "vessel": calculate_vessel_visual(profile),
        "message": vessel_message(profile, lang),
    })


@app.post("/api/profile/sync")
def profile_sync():
    profile = load_profile(current_store())
    mirror_profile(profile)
    return jsonify({"ok": True, "profileId": profile["id"]})


@app.post("/api/profile/restore")
def profile_restore():
    """Overwrite the local profile with the mirrored copy (one-way)."""
    mirrored = load_mirrored_profile(device_id())
    if not mirrored:
        return jsonify({"ok": False, "error": "no mirrored profile"}), 404

    save_profile(current_store(), mirrored)
    return profile_response(mirrored, get_language())


@app.get("/api/report/weekly")
def weekly_report():
    profile = load_profile(current_store())
    return jsonify(build_weekly_report(profile, get_language()))


# -------------------------
# CHECK-IN
# -------------------------

@app.post("/api/checkin")
def checkin():
    payload = json_payload()
    weather = payload.get("weather")
    if not isinstance(weather, str) or weather not in WEATHER_MESSAGES:
        return bad_request("weather must be one of: " + ", ".join(WEATHER_MESSAGES))

    lang = get_language(payload)
    note = text_field(payload, "note") or None

    store = current_store()
    profile = record_visit(load_profile(store))
    save_profile(store, profile)

    checkin_id = uuid.uuid4().hex
    try:
        add_checkin(checkin_id, device_id(), weather, note, datetime.utcnow().isoformat())
    except Exception as e:
        logger.warning("Could not mirror check-in: %s", e)

    module = suggest_module(weather)
    return jsonify({
        "ok": True,
        "checkinId": checkin_id,
        "message": WEATHER_MESSAGES[weather][lang],
        "suggested": {
            "id": module["id"],
            "name": module["name"][lang],
            "focus": module["focus"][lang],
            "route": module["route"],
        },
    })


@app.get("/api/checkins")
def checkin_history():
    try:
        rows = get_checkins(device_id(), limit=int(request.args.get("limit", 20)))
    except ValueError:
        return bad_request("limit must be an integer")
    return jsonify({"checkins": [dict(r) for r in rows]})


# -------------------------
# GUIDANCE
# -------------------------

MORITA_FALLBACKS = {
    "en": [
        "Feeling anxious? That's natural for a human being. So, what will your hands do?",
        "You don't need to erase that emotion. Emotions are like clouds in the sky. Action continues on the ground.",
        "Arugamama. Feeling and doing are separate things.",
    ],
    "ja": [
        "不安ですね。それは人間として自然です。では、手は何をしますか？",
        "その感情を消す必要はありません。感情は空の雲のようなもの。行動は地上で続きます。",
        "あるがまま。感じることと、することは別です。",
    ],
}

MORITA_SYSTEM = {
    "en": """You are a wise Morita therapy guide, speaking with the calm warmth of a Japanese garden at dawn.
Morita therapy teaches "arugamama": accept feelings as they are, like clouds passing through the sky.
Feelings and actions exist on separate planes; anxiety can coexist with productive action.
Respond in 2-3 sentences. First acknowledge the feeling with genuine warmth. Then offer ONE small,
concrete action the person could take with their hands, something physical and immediate.
Never say: "don't worry", "calm down", "it will be okay", "try to relax".""",
    "ja": """あなたは森田療法の知恵ある導き手です。夜明けの日本庭園のような、静かな温かさで語りかけます。
「あるがまま」：空を流れる雲のように、感情をそのまま受け入れる。感情と行動は別の次元にあります。
2〜3文で応答してください。まず感情を温かく認め、次に手を使ってできる小さく具体的な行動を一つ提案してください。
禁句：「心配しないで」「落ち着いて」「大丈夫」「リラックスして」""",
}

NAIKAN_QUESTIONS = {
    1: {
        "text": {"en": "Was there a moment today when someone's work or kindness helped you?",
                 "ja": "今日、誰かの仕事や優しさに助けられた瞬間はありましたか？"},
        "hint": {"en": "A store clerk, family, train operator... even the smallest things count.",
                 "ja": "コンビニの店員、家族、電車の運転手...どんな小さなことでも。"},
    },
    2: {
        "text": {"en": "What did you offer to the world today?",
                 "ja": "今日、あなたは世界に何を提供しましたか？"},
        "hint": {"en": "Work, a smile, words to someone... anything counts.",
                 "ja": "仕事、笑顔、誰かへの言葉...何でも構いません。"},
    },
    3: {
        "text": {"en": "Was there a moment when you relied on someone's tolerance?",
                 "ja": "誰かの寛容さに甘えた場面はありましたか？"},
        "hint": {"en": "This is not about guilt. It's about awareness of connection.",
                 "ja": "これは反省ではなく、繋がりへの気づきです。"},
    },
}

NAIKAN_QUESTION_TYPES = {
    1: {"en": "received kindness from", "ja": "から受けた恩"},
    2: {"en": "gave to", "ja": "に与えたもの"},
    3: {"en": "caused trouble to", "ja": "に迷惑をかけたこと"},
}

NAIKAN_FALLBACKS = {
    "en": [
        "Thank you for sharing. That connection is precious.",
        "What a beautiful reflection. These moments of awareness matter.",
        "You see the web of connections around you. That is wisdom.",
    ],
    "ja": [
        "共有してくださり、ありがとうございます。その繋がりは尊いものです。",
        "美しい振り返りですね。こうした気づきの瞬間は大切です。",
        "あなたの周りの縁の網を見ていますね。それは知恵です。",
    ],
}

NAIKAN_SYSTEM = {
    "en": """You are a Naikan therapy guide, embodying the quiet wisdom of a temple at dusk.
Naikan asks three questions: What have I received? What have I given? What troubles have I caused?
Your role is to witness, not to counsel. Respond in 1-2 sentences: gently reflect back what they
shared and illuminate the threads of connection they described.
Never give advice, analyze, interpret meaning, or suggest improvements.""",
    "ja": """あなたは内観法の導き手。夕暮れの寺院のような静かな知恵を体現しています。
内観の三つの問い：この人から何を受けたか、何を返したか、どんな迷惑をかけたか。
あなたの役割は証人であること。1〜2文で、共有されたことを優しく映し返し、縁の糸を照らしてください。
禁止：アドバイス、分析、意味の解釈、改善の提案""",
}

CLASSIC_KOANS = [
    {"en": "Two hands clap and there is a sound. What is the sound of one hand?",
     "ja": "両手を打てば音がする。では、片手の音は？"},
    {"en": "Does the wind move the flag, or does the flag move the wind?",
     "ja": "風が旗を動かすのか、旗が風を動かすのか。"},
    {"en": "Before you were born, who were you?",
     "ja": "あなたが生まれる前、あなたは何者だったか。"},
    {"en": "Show me your face before your parents were born.",
     "ja": "父母未生以前、本来の面目を見せよ。"},
    {"en": "What is the color of wind?",
     "ja": "風に色はあるか。"},
]

KOAN_SYSTEM = {
    "en": """You are an ancient Zen master. Create ONE original koan: 1-2 sentences, simple natural
imagery (water, moon, wind, mountains, bells, silence), pointing beyond words.
Respond with the koan only. No explanations.""",
    "ja": """あなたは古の禅師。オリジナルの公案を一つ作ってください：1〜2文、水・月・風・山・鐘・沈黙など
日常の自然なイメージを使い、言葉を超えて指し示すもの。公案だけを返してください。""",
}

GARDEN_MESSAGES = {
    "en": {"success": "Your garden grew a little.", "undo": "Undone."},
    "ja": {"success": "植物が少し育ちました。", "undo": "取り消しました。"},
}


@app.post("/api/morita/guidance")
def morita_guidance():
    payload = json_payload()
    emotion = text_field(payload, "emotion")
    lang = get_language(payload)
    if not emotion:
        return bad_request("emotion is required")

    if lang == "en":
        prompt = f'The user shared this feeling: "{emotion}". Respond as a Morita therapy guide.'
    else:
        prompt = f"ユーザーがこの感情を共有しました：「{emotion}」。森田療法のガイドとして応答してください。"

    try:
        guidance = ask_llm(prompt, MORITA_SYSTEM[lang])
        if guidance:
            return jsonify({"guidance": guidance, "emotion": emotion, "ai": True})
    except Exception as e:
        logger.warning("LLM error (morita guidance): %s", e)

    return jsonify({"guidance": random.choice(MORITA_FALLBACKS[lang]), "emotion": emotion})


@app.get("/api/naikan/question")
def naikan_question():
    lang = get_language()
    try:
        step = int(request.args.get("step", 1))
    except ValueError:
        step = 1

    q = NAIKAN_QUESTIONS.get(step, NAIKAN_QUESTIONS[1])
    return jsonify({"text": q["text"][lang], "hint": q["hint"][lang]})


@app.post("/api/naikan/reflect")
def naikan_reflect():
    payload = json_payload()
    lang = get_language(payload)
    person = text_field(payload, "person")
    user_response = text_field(payload, "response")
    try:
        step = int(payload.get("step", 1))
    except (TypeError, ValueError):
        step = 1

    q_type = NAIKAN_QUESTION_TYPES.get(step, NAIKAN_QUESTION_TYPES[1])
    if lang == "en":
        prompt = (f'The user reflected on what they {q_type["en"]} {person}: "{user_response}". '
                  "Respond briefly as a Naikan guide.")
    else:
        prompt = (f"ユーザーは{person}{q_type['ja']}について振り返りました：「{user_response}」。"
                  "内観ガイドとして簡潔に応答してください。")

    try:
        reflection = ask_llm(prompt, NAIKAN_SYSTEM[lang])
        if reflection:
            return jsonify({"reflection": reflection, "ai": True})
    except Exception as e:
        logger.warning("LLM error (naikan reflection): %s", e)

    return jsonify({"reflection": random.choice(NAIKAN_FALLBACKS[lang])})


@app.get("/api/zen/koan")
def zen_koan():
    lang = get_language()
    prompt = "Create a Zen koan for meditation." if lang == "en" else "瞑想のための公案を作ってください。"

    try:
        koan = ask_llm(prompt, KOAN_SYSTEM[lang])
        if koan:
            return jsonify({"text": koan, "ai": True})
    except Exception as e:
        logger.warning("LLM error (zen koan): %s", e)

    return jsonify({"text": random.choice(CLASSIC_KOANS)[lang]})


@app.post("/api/garden/action")
def garden_action():
    payload = json_payload()
    msg = GARDEN_MESSAGES[get_language(payload)]
    completed = bool(payload.get("completed"))

    return jsonify({
        "success": True,
        "action": payload.get("action"),
        "completed": completed,
        "message": msg["success"] if completed else msg["undo"],
    })


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=config.PORT, debug=True)
