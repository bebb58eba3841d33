# Copyright (c) 2025 sprowii
import pytest

from guardbot import config
from guardbot.moderation.models import ActivityLogEntry, LogAction, Stat
from guardbot.web import server

CHAT_ID = -1003


@pytest.fixture
def client(storage):
    server.init_web_storage(storage)
    server.flask_app.config["TESTING"] = True
    with server.flask_app.test_client() as test_client:
        yield test_client
    server.init_web_storage(None)


def test_home(client):
    assert client.get("/").get_json() == {"status": "ok"}


def test_unknown_group_settings_get_is_404(client):
    assert client.get(f"/api/groups/{CHAT_ID}/settings").status_code == 404


def test_patch_creates_settings_for_unknown_group(client, storage):
    response = client.patch(f"/api/groups/{CHAT_ID}/settings", json={"warn_limit": 5})

    assert response.status_code == 200
    body = response.get_json()
    assert body["warn_limit"] == 5
    assert body["warn_action"] == "mute"
    saved = storage.get_settings(CHAT_ID)
    assert saved.warn_limit == 5
    assert saved.anti_spam_max_messages == 5


def test_patch_updates_only_given_fields(client, storage):
    storage.ensure_group(CHAT_ID, "Group")

    response = client.patch(f"/api/groups/{CHAT_ID}/settings", json={"warn_limit": 5, "warn_action": "ban"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["warn_limit"] == 5
    assert body["warn_action"] == "ban"
    assert body["anti_spam_max_messages"] == 5
    assert body["welcome_enabled"] is True
    assert storage.get_settings(CHAT_ID).warn_limit == 5


@pytest.mark.parametrize("payload", [
    {"warn_limit": 0},
    {"warn_action": "explode"},
    {"anti_spam_enabled": "yes"},
    {"unknown_field": 1},
    [1, 2, 3],
])
def test_invalid_patch_is_400_and_not_saved(client, storage, payload):
    storage.ensure_group(CHAT_ID, "Group")

    response = client.patch(f"/api/groups/{CHAT_ID}/settings", json=payload)

    assert response.status_code == 400
    assert "error" in response.get_json()
    assert storage.get_settings(CHAT_ID).warn_limit == 3


def test_stats_for_unknown_group_are_zero(client):
    body = client.get(f"/api/groups/{CHAT_ID}/stats").get_json()
    assert body["chat_id"] == CHAT_ID
    assert all(body[stat.value] == 0 for stat in Stat)


def test_logs_and_warnings(client, storage):
    storage.add_log(ActivityLogEntry.create(CHAT_ID, LogAction.WARN, "@a", "@admin", "Предупреждение 1/3: спам"))
    storage.add_log(ActivityLogEntry.create(CHAT_ID, LogAction.SPAM, "@b", "bot"))
    storage.add_log(ActivityLogEntry.create(CHAT_ID, LogAction.BAN, "@c", "@admin"))

    logs = client.get(f"/api/groups/{CHAT_ID}/logs?limit=2").get_json()
    assert [entry["action"] for entry in logs] == ["ban", "spam"]

    warnings = client.get(f"/api/groups/{CHAT_ID}/warnings").get_json()
    assert [entry["target_user"] for entry in warnings] == ["@a"]

    recent = client.get("/api/logs/recent").get_json()
    assert len(recent) == 3


def test_groups_and_overview(client, storage):
    storage.ensure_group(CHAT_ID, "First")
    storage.ensure_group(CHAT_ID - 1, "Second")
    storage.increment_stat(CHAT_ID, Stat.MESSAGES_PROCESSED, 3)
    storage.increment_stat(CHAT_ID - 1, Stat.MESSAGES_PROCESSED, 2)
    storage.increment_stat(CHAT_ID - 1, Stat.USERS_BANNED)

    groups = client.get("/api/groups").get_json()
    assert {group["title"] for group in groups} == {"First", "Second"}

    overview = client.get("/api/stats/overview").get_json()
    assert overview["messages_processed"] == 5
    assert overview["users_banned"] == 1
    assert overview["total_groups"] == 2
    assert overview["active_groups"] == 2


def test_dashboard_key_is_enforced(client, storage, monkeypatch):
    monkeypatch.setattr(config, "DASHBOARD_KEY", "secret")
    storage.ensure_group(CHAT_ID, "Group")

    assert client.get("/").status_code == 200
    assert client.get("/api/groups").status_code == 403
    assert client.get("/api/groups?key=wrong").status_code == 403
    assert client.get("/api/groups?key=secret").status_code == 200
    assert client.get("/api/groups", headers={"X-Dashboard-Key": "secret"}).status_code == 200
