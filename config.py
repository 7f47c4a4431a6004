import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent


def _flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("KINTSUGI_SECRET_KEY", "dev-change-this")
DB_PATH = Path(os.getenv("KINTSUGI_DB_PATH", str(BASE_DIR / "app.db")))
OLLAMA_MODEL = os.getenv("KINTSUGI_OLLAMA_MODEL", "mistral")
AI_ENABLED = _flag("KINTSUGI_AI_ENABLED", True)
LOG_LEVEL = os.getenv("KINTSUGI_LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("KINTSUGI_PORT", "5001"))
