# Copyright (c) 2025 sprowii
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from telegram.error import BadRequest, TelegramError

from guardbot.llm.classifier import ClassifierError, ClassifierVerdict
from guardbot.moderation.actions import PlatformActions
from guardbot.moderation.cleanup import AutoDeleteScheduler
from guardbot.moderation.filters import (
    ClassifierFilter,
    FilterChain,
    FloodFilter,
    ForceJoinFilter,
    LinkFilter,
    MessageContext,
    MessageFilter,
    SpamFilter,
    WordFilter,
    find_banned_word,
)
from guardbot.moderation.logger import ActivityLogger
from guardbot.moderation.models import GroupConfig
from guardbot.moderation.rate_tracker import RateTracker

CHAT_ID = -1001
USER_ID = 42


def make_ctx(text="hello", message_id=1, exempt=False, chat_type="supergroup"):
    return MessageContext(
        chat_id=CHAT_ID,
        chat_title="Test chat",
        chat_type=chat_type,
        user_id=USER_ID,
        user_name="@user",
        user_mention='<a href="tg://user?id=42">User</a>',
        message_id=message_id,
        text=text,
        username="user",
        exempt=exempt,
    )


@pytest_asyncio.fixture
async def deps(bot, storage):
    scheduler = AutoDeleteScheduler(bot)
    yield PlatformActions(bot, scheduler), ActivityLogger(storage)
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_spam_threshold_is_strictly_greater(deps, bot, storage, clock):
    actions, activity = deps
    spam = SpamFilter(actions, activity, RateTracker(10, clock))
    settings = GroupConfig(chat_id=CHAT_ID, anti_spam_max_messages=5)

    for i in range(5):
        assert await spam.evaluate(make_ctx(message_id=i), settings) is True
        clock.advance(1)
    bot.restrict_chat_member.assert_not_called()

    assert await spam.evaluate(make_ctx(message_id=6), settings) is False

    kwargs = bot.restrict_chat_member.call_args.kwargs
    assert kwargs["user_id"] == USER_ID
    assert kwargs["permissions"].can_send_messages is False
    assert abs(kwargs["until_date"] - (int(time.time()) + 300)) <= 2

    stats = storage.get_stats(CHAT_ID)
    assert stats.spam_blocked == 1
    assert stats.users_muted == 1
    assert stats.messages_deleted == 0
    assert [e.action for e in storage.list_logs(CHAT_ID)] == ["spam"]
    assert spam.tracker.count((CHAT_ID, USER_ID)) == 0


@pytest.mark.asyncio
async def test_spam_window_cools_down(deps, clock):
    actions, activity = deps
    spam = SpamFilter(actions, activity, RateTracker(10, clock))
    settings = GroupConfig(chat_id=CHAT_ID, anti_spam_max_messages=2)

    for _ in range(10):
        assert await spam.evaluate(make_ctx(), settings) is True
        clock.advance(6)


@pytest.mark.asyncio
async def test_flood_uses_group_window(deps, bot, storage, clock):
    actions, activity = deps
    flood = FloodFilter(actions, activity, RateTracker(3600, clock))
    settings = GroupConfig(chat_id=CHAT_ID, anti_flood_messages=3, anti_flood_seconds=60)

    results = []
    for _ in range(4):
        results.append(await flood.evaluate(make_ctx(), settings))
        clock.advance(2)

    assert results == [True, True, True, False]
    assert abs(bot.restrict_chat_member.call_args.kwargs["until_date"] - (int(time.time()) + 600)) <= 2
    stats = storage.get_stats(CHAT_ID)
    assert stats.users_muted == 1
    assert stats.spam_blocked == 0
    logs = storage.list_logs(CHAT_ID)
    assert [e.action for e in logs] == ["flood"]
    assert "3" in logs[0].details and "60" in logs[0].details


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "text",
    [
        "see https://example.com",
        "HTTP://EXAMPLE.COM",
        "go to www.example.org now",
        "join t.me/somechannel",
        "Join T.ME/Channel",
    ],
)
async def test_link_filter_matches(deps, bot, storage, text):
    actions, activity = deps
    link = LinkFilter(actions, activity)
    settings = GroupConfig(chat_id=CHAT_ID, anti_link_enabled=True)

    assert await link.evaluate(make_ctx(text=text, message_id=77), settings) is False
    bot.delete_message.assert_awaited_once_with(chat_id=CHAT_ID, message_id=77)
    assert actions.scheduler.pending == 1
    assert storage.get_stats(CHAT_ID).messages_deleted == 1
    assert storage.list_logs(CHAT_ID)[0].action == "anti_link"


@pytest.mark.asyncio
async def test_link_filter_ignores_plain_text_and_disabled(deps, bot):
    actions, activity = deps
    link = LinkFilter(actions, activity)

    assert await link.evaluate(make_ctx(text="example dot com"), GroupConfig(chat_id=CHAT_ID, anti_link_enabled=True))
    assert await link.evaluate(make_ctx(text="https://x.y"), GroupConfig(chat_id=CHAT_ID))
    assert await link.evaluate(make_ctx(text=None), GroupConfig(chat_id=CHAT_ID, anti_link_enabled=True))
    bot.delete_message.assert_not_called()


def test_banned_word_match_is_case_insensitive():
    assert find_banned_word("This is SPAM here", ["spam"]) == "spam"
    assert find_banned_word("clean text", ["spam"]) is None
    assert find_banned_word("anything", ["", "x"]) is None


@pytest.mark.asyncio
async def test_word_filter(deps, bot, storage):
    actions, activity = deps
    word = WordFilter(actions, activity)
    settings = GroupConfig(chat_id=CHAT_ID, word_filter_enabled=True, banned_words=["spam"])

    assert await word.evaluate(make_ctx(text="This is SPAM here"), settings) is False
    assert storage.get_stats(CHAT_ID).messages_deleted == 1
    assert storage.list_logs(CHAT_ID)[0].action == "word_filter"

    empty = GroupConfig(chat_id=CHAT_ID, word_filter_enabled=True)
    assert await word.evaluate(make_ctx(text="spam"), empty) is True


@pytest.mark.asyncio
async def test_force_join_blocks_non_member(deps, bot, storage):
    actions, activity = deps
    statuses = {"@news": "member", "@promo": "left"}
    bot.get_chat_member.side_effect = lambda chat, user_id: SimpleNamespace(status=statuses[chat])
    force_join = ForceJoinFilter(actions, activity, bot)
    settings = GroupConfig(chat_id=CHAT_ID, force_join_enabled=True, force_join_channels=["@news", "promo", "@other"])

    assert await force_join.evaluate(make_ctx(message_id=9), settings) is False

    # после первого неподписанного канала остальные не проверяются
    assert bot.get_chat_member.call_count == 2
    bot.delete_message.assert_awaited_once_with(chat_id=CHAT_ID, message_id=9)
    markup = bot.send_message.call_args.kwargs["reply_markup"]
    buttons = [row[0] for row in markup.inline_keyboard]
    assert [b.url for b in buttons[:3]] == ["https://t.me/news", "https://t.me/promo", "https://t.me/other"]
    assert buttons[-1].callback_data == f"forcejoin_check:{CHAT_ID}"

    stats = storage.get_stats(CHAT_ID)
    assert stats.force_join_blocked == 1
    assert stats.messages_deleted == 1
    log_entry = storage.list_logs(CHAT_ID)[0]
    assert log_entry.action == "force_join"
    assert log_entry.performed_by == "bot"


@pytest.mark.asyncio
async def test_force_join_skips_channel_on_lookup_error(deps, bot):
    actions, activity = deps
    bot.get_chat_member.side_effect = BadRequest("Chat not found")
    force_join = ForceJoinFilter(actions, activity, bot)
    settings = GroupConfig(chat_id=CHAT_ID, force_join_enabled=True, force_join_channels=["@gone"])

    assert await force_join.evaluate(make_ctx(), settings) is True
    bot.delete_message.assert_not_called()


@pytest.mark.asyncio
async def test_force_join_passes_for_members(deps, bot):
    actions, activity = deps
    bot.get_chat_member.return_value = SimpleNamespace(status="administrator")
    force_join = ForceJoinFilter(actions, activity, bot)
    settings = GroupConfig(chat_id=CHAT_ID, force_join_enabled=True, force_join_channels=["@a", "@b"])

    assert await force_join.evaluate(make_ctx(), settings) is True


@pytest.mark.asyncio
async def test_failed_delete_does_not_block_stats(deps, bot, storage):
    actions, activity = deps
    bot.delete_message.side_effect = TelegramError("message can't be deleted")
    bot.send_message.side_effect = TelegramError("not enough rights")
    link = LinkFilter(actions, activity)

    assert await link.evaluate(make_ctx(text="https://x.y"), GroupConfig(chat_id=CHAT_ID, anti_link_enabled=True)) is False
    assert storage.get_stats(CHAT_ID).messages_deleted == 1
    assert storage.list_logs(CHAT_ID)[0].action == "anti_link"


@pytest.mark.asyncio
async def test_classifier_violation(deps, bot, storage, classifier):
    actions, activity = deps
    classifier.classify.return_value = ClassifierVerdict(violation=True, reason="оскорбление")
    ai = ClassifierFilter(actions, activity, classifier)
    settings = GroupConfig(chat_id=CHAT_ID, ai_moderator_enabled=True)

    assert await ai.evaluate(make_ctx(text="something rude"), settings) is False
    assert "оскорбление" in bot.send_message.call_args.kwargs["text"]
    log_entry = storage.list_logs(CHAT_ID)[0]
    assert log_entry.action == "ai_moderator"
    assert log_entry.performed_by == "AI Moderator"
    assert log_entry.details == "оскорбление"


@pytest.mark.asyncio
async def test_classifier_fails_open(deps, bot, storage, classifier):
    actions, activity = deps
    classifier.classify.side_effect = ClassifierError("All API keys/models failed")
    ai = ClassifierFilter(actions, activity, classifier)
    settings = GroupConfig(chat_id=CHAT_ID, ai_moderator_enabled=True)

    assert await ai.evaluate(make_ctx(text="long enough text"), settings) is True
    bot.delete_message.assert_not_called()
    assert storage.list_logs(CHAT_ID) == []


@pytest.mark.asyncio
async def test_classifier_skips_short_text(deps, classifier):
    actions, activity = deps
    ai = ClassifierFilter(actions, activity, classifier)
    settings = GroupConfig(chat_id=CHAT_ID, ai_moderator_enabled=True)

    assert await ai.evaluate(make_ctx(text="hey"), settings) is True
    classifier.classify.assert_not_called()


@pytest.mark.asyncio
async def test_exempt_sender_triggers_nothing(deps, bot, storage, classifier, clock):
    actions, activity = deps
    classifier.classify.return_value = ClassifierVerdict(violation=True, reason="x")
    bot.get_chat_member.return_value = SimpleNamespace(status="left")
    chain = FilterChain([
        ForceJoinFilter(actions, activity, bot),
        SpamFilter(actions, activity, RateTracker(10, clock)),
        LinkFilter(actions, activity),
        WordFilter(actions, activity),
        FloodFilter(actions, activity, RateTracker(3600, clock)),
        ClassifierFilter(actions, activity, classifier),
    ])
    settings = GroupConfig(
        chat_id=CHAT_ID,
        force_join_enabled=True,
        force_join_channels=["@news"],
        anti_spam_max_messages=1,
        anti_link_enabled=True,
        word_filter_enabled=True,
        banned_words=["spam"],
        anti_flood_messages=1,
        ai_moderator_enabled=True,
    )

    for i in range(20):
        outcome = await chain.run(make_ctx(text="spam https://x.y", message_id=i, exempt=True), settings)
        assert outcome.passed

    bot.get_chat_member.assert_not_called()
    bot.delete_message.assert_not_called()
    bot.send_message.assert_not_called()
    bot.restrict_chat_member.assert_not_called()
    classifier.classify.assert_not_called()
    assert storage.list_logs(CHAT_ID) == []


class CountingFilter(MessageFilter):
    def __init__(self, name, result):
        self.name = name
        self.result = result
        self.calls = 0

    async def evaluate(self, ctx, settings):
        self.calls += 1
        return self.result


@pytest.mark.asyncio
async def test_chain_stops_at_first_failure():
    filters = [CountingFilter("first", False)] + [CountingFilter(f"f{i}", True) for i in range(5)]
    outcome = await FilterChain(filters).run(make_ctx(), GroupConfig(chat_id=CHAT_ID))

    assert outcome.passed is False
    assert outcome.failed_filter == "first"
    assert filters[0].calls == 1
    assert all(f.calls == 0 for f in filters[1:])


@pytest.mark.asyncio
async def test_chain_runs_all_when_passing():
    filters = [CountingFilter(f"f{i}", True) for i in range(6)]
    outcome = await FilterChain(filters).run(make_ctx(), GroupConfig(chat_id=CHAT_ID))

    assert outcome.passed is True
    assert outcome.failed_filter is None
    assert all(f.calls == 1 for f in filters)


@pytest.mark.asyncio
async def test_auto_delete_runs_after_delay(bot):
    scheduler = AutoDeleteScheduler(bot)
    task = scheduler.schedule(CHAT_ID, 5, 0)
    await task
    bot.delete_message.assert_awaited_once_with(chat_id=CHAT_ID, message_id=5)


@pytest.mark.asyncio
async def test_auto_delete_shutdown_cancels_pending():
    bot = AsyncMock()
    scheduler = AutoDeleteScheduler(bot)
    scheduler.schedule(CHAT_ID, 5, 60)
    assert scheduler.pending == 1

    await scheduler.shutdown()

    assert scheduler.pending == 0
    bot.delete_message.assert_not_called()


@pytest.mark.asyncio
async def test_auto_delete_swallows_unexpected_errors():
    bot = AsyncMock()
    bot.delete_message.side_effect = RuntimeError("connection pool closed")
    scheduler = AutoDeleteScheduler(bot)

    task = scheduler.schedule(CHAT_ID, 5, 0)
    await task

    assert task.exception() is None
    assert scheduler.pending == 0
