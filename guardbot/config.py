# Copyright (c) 2025 sprowii
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _resolve_redis_url(raw_url: str) -> str:
    if ".upstash.io" in raw_url and raw_url.startswith("redis://"):
        return "rediss" + raw_url[len("redis") :]
    return raw_url


REDIS_URL = os.getenv("REDIS_URL")
if not REDIS_URL:
    raise RuntimeError("Переменная окружения REDIS_URL должна быть установлена")
REDIS_URL = _resolve_redis_url(REDIS_URL)

TG_TOKEN = os.getenv("TG_TOKEN")
# Владелец бота проходит мимо всех фильтров и может управлять любой группой
BOT_OWNER_ID = os.getenv("BOT_OWNER_ID")
DASHBOARD_KEY = os.getenv("DASHBOARD_KEY")


def _load_api_keys() -> List[str]:
    keys: List[str] = []
    for idx in (1, 2):
        key = os.getenv(f"GEMINI_API_KEY_{idx}")
        if key:
            keys.append(key)
    return keys


# Без ключей AI-модератор просто не срабатывает
API_KEYS = _load_api_keys()

CLASSIFIER_MODELS: List[str] = [
    os.getenv("CLASSIFIER_MODEL", "gemini-2.5-flash-lite"),
    "gemini-2.5-flash",
]
CLASSIFIER_MAX_OUTPUT_TOKENS = 100

GROUP_KEY_PREFIX = "group:"
SETTINGS_KEY_PREFIX = "group_settings:"
STATS_KEY_PREFIX = "stats:"
WARNINGS_KEY_PREFIX = "warnings:"
LOGS_KEY_PREFIX = "activity:"
RECENT_LOGS_KEY = "activity:recent"
GROUPS_INDEX_KEY = "groups"
USERNAME_KEY_PREFIX = "username:"

MAX_LOG_ENTRIES = 1000

FLASK_HOST = "0.0.0.0"
FLASK_PORT = int(os.getenv("PORT", 10000))

# Интервалы фоновых задач, секунды
TRACKER_SWEEP_INTERVAL = int(os.getenv("TRACKER_SWEEP_INTERVAL", 300))
ADMIN_CACHE_CLEANUP_INTERVAL = int(os.getenv("ADMIN_CACHE_CLEANUP_INTERVAL", 600))
