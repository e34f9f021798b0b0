import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@dataclass
class Settings:
    db_path: str
    default_user: str
    debounce_seconds: float
    ai_provider: str
    openai_api_key: Optional[str]
    gemini_api_key: Optional[str]
    groq_api_key: Optional[str]
    telegram_bot_token: Optional[str]
    telegram_chat_id: Optional[str]


def load_settings() -> Settings:
    """Read settings from the environment (and a .env file, if present)."""
    return Settings(
        db_path=os.getenv("SMARTSPEND_DB_PATH") or os.path.join(ROOT_DIR, 'smartspend.db'),
        default_user=os.getenv("SMARTSPEND_DEFAULT_USER", "local"),
        debounce_seconds=float(os.getenv("SMARTSPEND_DEBOUNCE_SECONDS", "0.8")),
        ai_provider=os.getenv("AI_PROVIDER", "openai").lower(),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        groq_api_key=os.getenv("GROQ_API_KEY"),
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
        telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID"),
    )
