# Copyright (c) 2025 sprowii
import pytest

from guardbot.moderation.models import GroupConfig, SettingToggle, WarnAction


def test_defaults():
    settings = GroupConfig(chat_id=-100)
    assert settings.welcome_enabled is True
    assert settings.anti_spam_enabled is True
    assert settings.anti_spam_max_messages == 5
    assert settings.anti_link_enabled is False
    assert settings.anti_flood_messages == 10
    assert settings.anti_flood_seconds == 60
    assert settings.warn_limit == 3
    assert settings.warn_action is WarnAction.MUTE
    assert settings.mute_new_members_duration == 300
    assert settings.ai_moderator_enabled is False
    assert settings.validate() == []


def test_partial_patch_keeps_other_fields():
    settings = GroupConfig(chat_id=-100, banned_words=["spam"], warn_limit=5, anti_flood_seconds=30)
    updated = settings.apply_patch({"anti_link_enabled": True})

    assert updated.anti_link_enabled is True
    expected = settings.to_dict()
    expected["anti_link_enabled"] = True
    assert updated.to_dict() == expected


@pytest.mark.parametrize(
    "patch",
    [
        {"unknown_field": 1},
        {"warn_limit": 0},
        {"warn_limit": "3"},
        {"warn_limit": True},
        {"warn_action": "shoot"},
        {"banned_words": "spam"},
        {"anti_link_enabled": "yes"},
        {"anti_flood_seconds": 4000},
    ],
)
def test_invalid_patch_is_rejected(patch):
    settings = GroupConfig(chat_id=-100)
    with pytest.raises(ValueError):
        settings.apply_patch(patch)
    assert settings == GroupConfig(chat_id=-100)


def test_warn_action_patch_accepts_string():
    updated = GroupConfig(chat_id=1).apply_patch({"warn_action": "ban"})
    assert updated.warn_action is WarnAction.BAN
    assert updated.to_dict()["warn_action"] == "ban"


def test_from_dict_ignores_unknown_keys():
    data = GroupConfig(chat_id=1, warn_action=WarnAction.KICK).to_dict()
    data["legacy_field"] = 1
    restored = GroupConfig.from_dict(1, data)
    assert restored.warn_action is WarnAction.KICK


@pytest.mark.parametrize(
    "toggle, field",
    [
        (SettingToggle.WELCOME, "welcome_enabled"),
        (SettingToggle.FORCE_JOIN, "force_join_enabled"),
        (SettingToggle.ANTI_SPAM, "anti_spam_enabled"),
        (SettingToggle.ANTI_LINK, "anti_link_enabled"),
        (SettingToggle.WORD_FILTER, "word_filter_enabled"),
        (SettingToggle.ANTI_FLOOD, "anti_flood_enabled"),
        (SettingToggle.MUTE_NEW_MEMBERS, "mute_new_members"),
        (SettingToggle.AI_MODERATOR, "ai_moderator_enabled"),
    ],
)
def test_toggle_flips_only_its_field(toggle, field):
    settings = GroupConfig(chat_id=1)
    before = settings.to_dict()

    value = settings.toggle(toggle)

    after = settings.to_dict()
    assert value is (not before[field])
    assert after[field] is value
    del before[field], after[field]
    assert before == after
