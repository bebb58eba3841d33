# Copyright (c) 2025 sprowii
import json

import pytest

from guardbot.config import MAX_LOG_ENTRIES
from guardbot.moderation.models import ActivityLogEntry, GroupConfig, LogAction, Stat, Warning


def test_ensure_group_creates_settings_once(storage):
    settings = storage.ensure_group(-100, "Chat")
    assert settings == GroupConfig(chat_id=-100)

    storage.update_settings(-100, {"warn_limit": 7})
    again = storage.ensure_group(-100, "Renamed")
    assert again.warn_limit == 7
    assert storage.get_group(-100).title == "Renamed"
    assert [g.chat_id for g in storage.list_groups()] == [-100]


def test_get_settings_absent(storage):
    assert storage.get_settings(-1) is None


def test_update_settings_round_trip(storage):
    storage.upsert_settings(GroupConfig(chat_id=-100, banned_words=["a"], anti_flood_messages=3))
    storage.update_settings(-100, {"anti_link_enabled": True})

    loaded = storage.get_settings(-100)
    assert loaded.anti_link_enabled is True
    assert loaded.banned_words == ["a"]
    assert loaded.anti_flood_messages == 3


def test_update_settings_invalid_does_not_write(storage):
    storage.upsert_settings(GroupConfig(chat_id=-100))
    with pytest.raises(ValueError):
        storage.update_settings(-100, {"warn_limit": 100})
    assert storage.get_settings(-100).warn_limit == 3


def test_stats_increment_and_zero_default(storage):
    assert storage.get_stats(-5).messages_processed == 0

    storage.increment_stat(-5, Stat.MESSAGES_PROCESSED)
    storage.increment_stat(-5, Stat.MESSAGES_PROCESSED)
    storage.increment_stat(-5, Stat.USERS_MUTED, 3)

    stats = storage.get_stats(-5)
    assert stats.messages_processed == 2
    assert stats.users_muted == 3
    assert stats.users_banned == 0


def test_warnings_newest_first_and_clear(storage):
    for reason in ("first", "second", "third"):
        storage.add_warning(Warning.create(-1, 42, "@user", reason, "@admin"))

    assert storage.count_warnings(-1, 42) == 3
    assert [w.reason for w in storage.list_warnings(-1, 42)] == ["third", "second", "first"]
    assert storage.count_warnings(-1, 43) == 0

    assert storage.clear_warnings(-1, 42) == 3
    assert storage.count_warnings(-1, 42) == 0
    assert storage.list_warnings(-1, 42) == []


def test_logs_per_group_and_recent(storage):
    storage.add_log(ActivityLogEntry.create(-1, LogAction.WARN, "@a", "@admin", "1/3"))
    storage.add_log(ActivityLogEntry.create(-2, LogAction.BAN, "@b", "@admin"))
    storage.add_log(ActivityLogEntry.create(-1, LogAction.SPAM, "@c", "bot"))

    assert [e.action for e in storage.list_logs(-1)] == ["spam", "warn"]
    assert [e.action for e in storage.list_recent_logs()] == ["spam", "ban", "warn"]
    assert len(storage.list_logs(-1, limit=1)) == 1


def test_logs_are_trimmed(storage, redis_client):
    for i in range(MAX_LOG_ENTRIES + 5):
        storage.add_log(ActivityLogEntry.create(-1, LogAction.FLOOD, f"u{i}", "bot"))
    assert redis_client.llen("activity:-1") == MAX_LOG_ENTRIES
    assert storage.list_logs(-1, limit=1)[0].target_user == f"u{MAX_LOG_ENTRIES + 4}"


def test_malformed_entries_are_skipped(storage, redis_client):
    storage.add_warning(Warning.create(-1, 42, "@user", "ok", "@admin"))
    redis_client.lpush("warnings:-1:42", "not json")
    redis_client.lpush("warnings:-1:42", json.dumps({"unexpected": 1}))

    assert [w.reason for w in storage.list_warnings(-1, 42)] == ["ok"]


def test_username_lookup_is_case_insensitive(storage):
    storage.remember_user(42, "SomeUser", "@SomeUser")
    assert storage.lookup_username("@someuser") == {"user_id": 42, "display_name": "@SomeUser"}
    assert storage.lookup_username("@nobody") is None
    storage.remember_user(43, None, "No Handle")


@pytest.mark.asyncio
async def test_async_twins(storage):
    await storage.ensure_group_async(-9, "Async")
    await storage.increment_stat_async(-9, Stat.USERS_WARNED)
    assert (await storage.get_stats_async(-9)).users_warned == 1
    assert (await storage.get_settings_async(-9)).chat_id == -9
