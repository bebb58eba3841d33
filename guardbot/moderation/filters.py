# Copyright (c) 2025 sprowii
"""Цепочка фильтров входящих сообщений группы.

Порядок фиксирован: подписка на каналы, антиспам, ссылки, запрещённые
слова, антифлуд, AI-модератор. Фильтр, вернувший False, уже выполнил
свои побочные эффекты (удаление, уведомление, статистика, журнал),
и следующие фильтры для этого сообщения не запускаются.
"""
import re
from dataclasses import dataclass
from typing import List, Optional

from telegram import Bot, ChatMember, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ChatType
from telegram.error import TelegramError

from guardbot.llm.classifier import ContentClassifier
from guardbot.logging_config import log
from guardbot.moderation.actions import PlatformActions
from guardbot.moderation.logger import ActivityLogger
from guardbot.moderation.models import GroupConfig, LogAction, Stat
from guardbot.moderation.rate_tracker import RateTracker
from guardbot.security import pseudonymize_chat_id, pseudonymize_id
from guardbot.utils.text import escape_html, user_display_name, user_mention


SPAM_WINDOW_SEC = 10
SPAM_MUTE_SEC = 300
FLOOD_MUTE_SEC = 600
# Верхняя граница anti_flood_seconds, по ней чистится трекер флуда
FLOOD_MAX_WINDOW_SEC = 3600

FORCE_JOIN_NOTICE_SEC = 30
LINK_NOTICE_SEC = 10
WORD_NOTICE_SEC = 10
CLASSIFIER_NOTICE_SEC = 15
CLASSIFIER_MIN_LENGTH = 5

URL_PATTERN = re.compile(r"https?://\S+|www\.\S+|t\.me/\S+", re.IGNORECASE)

FORCE_JOIN_CALLBACK_PREFIX = "forcejoin_check:"
NOT_JOINED_STATUSES = (ChatMember.LEFT, ChatMember.BANNED)


@dataclass
class MessageContext:
    """Сообщение группы в виде, нужном фильтрам."""
    chat_id: int
    chat_title: str
    chat_type: str
    user_id: int
    user_name: str
    user_mention: str
    message_id: int
    text: Optional[str] = None
    username: Optional[str] = None
    is_bot: bool = False
    # Админ группы или владелец бота; вычисляется один раз на сообщение
    exempt: bool = False

    @classmethod
    def from_message(cls, message) -> "MessageContext":
        user = message.from_user
        chat = message.chat
        return cls(
            chat_id=chat.id,
            chat_title=chat.title or "",
            chat_type=chat.type,
            user_id=user.id,
            user_name=user_display_name(user),
            user_mention=user_mention(user),
            message_id=message.message_id,
            text=message.text,
            username=user.username,
            is_bot=bool(user.is_bot),
        )


@dataclass
class FilterOutcome:
    passed: bool
    failed_filter: Optional[str] = None


def normalize_channel(channel: str) -> str:
    """'@news', 'https://t.me/news' и 'news' приводятся к 'news'."""
    value = channel.strip()
    for prefix in ("https://t.me/", "http://t.me/", "t.me/"):
        if value.lower().startswith(prefix):
            value = value[len(prefix):]
    return value.lstrip("@").rstrip("/")


def force_join_keyboard(channels: List[str], chat_id: Optional[int] = None) -> InlineKeyboardMarkup:
    """Кнопки "подписаться" по одной на канал и, если задан chat_id, кнопка проверки."""
    rows = [
        [InlineKeyboardButton(f"📢 @{normalize_channel(ch)}", url=f"https://t.me/{normalize_channel(ch)}")]
        for ch in channels
    ]
    if chat_id is not None:
        rows.append([InlineKeyboardButton("✅ Я подписался", callback_data=f"{FORCE_JOIN_CALLBACK_PREFIX}{chat_id}")])
    return InlineKeyboardMarkup(rows)


class MessageFilter:
    """Базовый фильтр. evaluate() возвращает True, если сообщение прошло."""

    name = "base"

    def __init__(self, actions: PlatformActions, activity: ActivityLogger):
        self.actions = actions
        self.activity = activity

    async def evaluate(self, ctx: MessageContext, settings: GroupConfig) -> bool:
        raise NotImplementedError


class ForceJoinFilter(MessageFilter):
    """Обязательная подписка на каналы."""

    name = "force_join"

    def __init__(self, actions: PlatformActions, activity: ActivityLogger, bot: Bot):
        super().__init__(actions, activity)
        self.bot = bot

    async def _first_missing_channel(self, ctx: MessageContext, channels: List[str]) -> Optional[str]:
        for channel in channels:
            try:
                member = await self.bot.get_chat_member(f"@{channel}", ctx.user_id)
            except TelegramError as exc:
                # Канал недоступен боту: проверку по нему пропускаем
                log.warning(f"Не удалось проверить подписку на @{channel}: {exc}")
                continue
            if member.status in NOT_JOINED_STATUSES:
                return channel
        return None

    async def evaluate(self, ctx: MessageContext, settings: GroupConfig) -> bool:
        if ctx.exempt or ctx.chat_type == ChatType.PRIVATE:
            return True
        if not settings.force_join_enabled or not settings.force_join_channels:
            return True

        channels = [normalize_channel(ch) for ch in settings.force_join_channels]
        missing = await self._first_missing_channel(ctx, channels)
        if missing is None:
            return True

        await self.actions.delete_message(ctx.chat_id, ctx.message_id)
        await self.actions.send_notice(
            ctx.chat_id,
            f"{ctx.user_mention}, чтобы писать в группе, подпишитесь на каналы ниже и нажмите «Я подписался».",
            auto_delete_sec=FORCE_JOIN_NOTICE_SEC,
            reply_markup=force_join_keyboard(channels, ctx.chat_id),
        )
        await self.activity.increment(ctx.chat_id, Stat.FORCE_JOIN_BLOCKED)
        await self.activity.increment(ctx.chat_id, Stat.MESSAGES_DELETED)
        await self.activity.log_action(
            ctx.chat_id, LogAction.FORCE_JOIN, ctx.user_name, "bot", f"Не подписан на @{missing}"
        )
        return False


class SpamFilter(MessageFilter):
    """Больше anti_spam_max_messages сообщений за 10 секунд."""

    name = "spam"

    def __init__(self, actions: PlatformActions, activity: ActivityLogger, tracker: RateTracker):
        super().__init__(actions, activity)
        self.tracker = tracker

    async def evaluate(self, ctx: MessageContext, settings: GroupConfig) -> bool:
        if ctx.exempt or not settings.anti_spam_enabled:
            return True

        key = (ctx.chat_id, ctx.user_id)
        count = self.tracker.record(key, window_sec=SPAM_WINDOW_SEC)
        if count <= settings.anti_spam_max_messages:
            return True

        # Сброс до любых await: следующее сообщение начинает окно заново
        self.tracker.reset(key)
        log.info(
            f"Спам от {pseudonymize_id(ctx.user_id)} в {pseudonymize_chat_id(ctx.chat_id)}: "
            f"{count} сообщений за {SPAM_WINDOW_SEC} сек"
        )

        await self.actions.mute(ctx.chat_id, ctx.user_id, SPAM_MUTE_SEC)
        await self.actions.send_notice(
            ctx.chat_id,
            f"🔇 {ctx.user_mention} замьючен на 5 минут за спам.",
        )
        await self.activity.increment(ctx.chat_id, Stat.SPAM_BLOCKED)
        await self.activity.increment(ctx.chat_id, Stat.USERS_MUTED)
        await self.activity.log_action(
            ctx.chat_id, LogAction.SPAM, ctx.user_name, "bot",
            f"Больше {settings.anti_spam_max_messages} сообщений за {SPAM_WINDOW_SEC} сек, мут 5 мин"
        )
        return False


class LinkFilter(MessageFilter):
    """Ссылки http(s)://, www. и t.me/ в любом месте текста."""

    name = "anti_link"

    async def evaluate(self, ctx: MessageContext, settings: GroupConfig) -> bool:
        if ctx.exempt or not settings.anti_link_enabled or not ctx.text:
            return True
        if not URL_PATTERN.search(ctx.text):
            return True

        await self.actions.delete_message(ctx.chat_id, ctx.message_id)
        await self.actions.send_notice(
            ctx.chat_id,
            f"🔗 {ctx.user_mention}, ссылки в этой группе запрещены.",
            auto_delete_sec=LINK_NOTICE_SEC,
        )
        await self.activity.increment(ctx.chat_id, Stat.MESSAGES_DELETED)
        await self.activity.log_action(ctx.chat_id, LogAction.ANTI_LINK, ctx.user_name, "bot", "Сообщение со ссылкой")
        return False


def find_banned_word(text: str, banned_words: List[str]) -> Optional[str]:
    """Первое запрещённое слово, входящее в текст (без учёта регистра)."""
    lowered = text.lower()
    for word in banned_words:
        if word and word.lower() in lowered:
            return word
    return None


class WordFilter(MessageFilter):
    name = "word_filter"

    async def evaluate(self, ctx: MessageContext, settings: GroupConfig) -> bool:
        if ctx.exempt or not settings.word_filter_enabled or not ctx.text or not settings.banned_words:
            return True

        word = find_banned_word(ctx.text, settings.banned_words)
        if word is None:
            return True

        await self.actions.delete_message(ctx.chat_id, ctx.message_id)
        await self.actions.send_notice(
            ctx.chat_id,
            f"🚫 {ctx.user_mention}, сообщение удалено: запрещённое слово.",
            auto_delete_sec=WORD_NOTICE_SEC,
        )
        await self.activity.increment(ctx.chat_id, Stat.MESSAGES_DELETED)
        await self.activity.log_action(
            ctx.chat_id, LogAction.WORD_FILTER, ctx.user_name, "bot", f"Запрещённое слово: {word}"
        )
        return False


class FloodFilter(MessageFilter):
    """Как антиспам, но окно и лимит берутся из настроек группы."""

    name = "flood"

    def __init__(self, actions: PlatformActions, activity: ActivityLogger, tracker: RateTracker):
        super().__init__(actions, activity)
        self.tracker = tracker

    async def evaluate(self, ctx: MessageContext, settings: GroupConfig) -> bool:
        if ctx.exempt or not settings.anti_flood_enabled:
            return True

        key = (ctx.chat_id, ctx.user_id)
        count = self.tracker.record(key, window_sec=settings.anti_flood_seconds)
        if count <= settings.anti_flood_messages:
            return True

        self.tracker.reset(key)

        await self.actions.mute(ctx.chat_id, ctx.user_id, FLOOD_MUTE_SEC)
        await self.actions.send_notice(
            ctx.chat_id,
            f"🌊 {ctx.user_mention} замьючен на 10 минут за флуд.",
        )
        await self.activity.increment(ctx.chat_id, Stat.USERS_MUTED)
        await self.activity.log_action(
            ctx.chat_id, LogAction.FLOOD, ctx.user_name, "bot",
            f"Больше {settings.anti_flood_messages} сообщений за {settings.anti_flood_seconds} сек, мут 10 мин"
        )
        return False


class ClassifierFilter(MessageFilter):
    """AI-модератор. Любая ошибка классификатора означает "пропустить"."""

    name = "ai_moderator"

    def __init__(self, actions: PlatformActions, activity: ActivityLogger, classifier: ContentClassifier):
        super().__init__(actions, activity)
        self.classifier = classifier

    async def evaluate(self, ctx: MessageContext, settings: GroupConfig) -> bool:
        if ctx.exempt or not settings.ai_moderator_enabled or not ctx.text:
            return True
        if len(ctx.text) < CLASSIFIER_MIN_LENGTH:
            return True

        try:
            verdict = await self.classifier.classify(ctx.text)
        except Exception as exc:
            log.error(f"AI-модератор недоступен для {pseudonymize_chat_id(ctx.chat_id)}: {exc}")
            return True

        if not verdict.violation:
            return True

        reason = verdict.reason or "нарушение правил"
        await self.actions.delete_message(ctx.chat_id, ctx.message_id)
        await self.actions.send_notice(
            ctx.chat_id,
            f"🤖 {ctx.user_mention}, сообщение удалено AI-модератором.\nПричина: {escape_html(reason)}",
            auto_delete_sec=CLASSIFIER_NOTICE_SEC,
        )
        await self.activity.increment(ctx.chat_id, Stat.MESSAGES_DELETED)
        await self.activity.log_action(ctx.chat_id, LogAction.AI_MODERATOR, ctx.user_name, "AI Moderator", reason)
        return False


class FilterChain:
    """Запускает фильтры по порядку до первого сработавшего."""

    def __init__(self, filters: List[MessageFilter]):
        self.filters = filters

    async def run(self, ctx: MessageContext, settings: GroupConfig) -> FilterOutcome:
        for message_filter in self.filters:
            if not await message_filter.evaluate(ctx, settings):
                return FilterOutcome(passed=False, failed_filter=message_filter.name)
        return FilterOutcome(passed=True)
