# Copyright (c) 2025 sprowii
import os
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import fakeredis
import pytest
import pytest_asyncio

# Minimal env variables so importing config does not fail
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("DATA_HASH_SALT", "test-salt")
os.environ.setdefault("BOT_OWNER_ID", "999")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from guardbot.moderation import permissions  # noqa: E402
from guardbot.moderation.storage import ModerationStorage  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_bot(status: str = "member"):
    """Bot с AsyncMock-методами; get_chat_member по умолчанию возвращает status."""
    bot = AsyncMock()
    bot.send_message.return_value = SimpleNamespace(message_id=500)
    bot.get_chat_member.return_value = SimpleNamespace(status=status)
    return bot


@pytest.fixture(autouse=True)
def clear_admin_cache():
    permissions.clear_admin_cache()
    yield
    permissions.clear_admin_cache()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def storage(redis_client):
    return ModerationStorage(redis_client)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bot():
    return make_bot()


@pytest.fixture
def bot_factory():
    return make_bot


@pytest.fixture
def classifier():
    from guardbot.llm.classifier import ClassifierVerdict

    mock = AsyncMock()
    mock.classify.return_value = ClassifierVerdict(violation=False)
    return mock


@pytest_asyncio.fixture
async def controller(bot, storage, classifier, clock):
    from guardbot.moderation.controller import ModerationController

    ctrl = ModerationController(bot, storage, classifier=classifier, clock=clock)
    yield ctrl
    await ctrl.shutdown()
