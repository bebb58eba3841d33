# Copyright (c) 2025 sprowii
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from telegram import Bot, ChatMember, User
from telegram.constants import ChatType
from telegram.error import TelegramError

from guardbot.llm.classifier import ContentClassifier
from guardbot.logging_config import log
from guardbot.moderation.actions import LOCKED_PERMISSIONS, UNLOCKED_PERMISSIONS, KickOutcome, PlatformActions
from guardbot.moderation.cleanup import AutoDeleteScheduler
from guardbot.moderation.escalation import EscalationPolicy, EscalationResult
from guardbot.moderation.filters import (
    FLOOD_MAX_WINDOW_SEC,
    SPAM_WINDOW_SEC,
    ClassifierFilter,
    FilterChain,
    FilterOutcome,
    FloodFilter,
    ForceJoinFilter,
    LinkFilter,
    MessageContext,
    SpamFilter,
    WordFilter,
    force_join_keyboard,
    normalize_channel,
)
from guardbot.moderation.logger import ActivityLogger
from guardbot.moderation.models import (
    ActivityLogEntry,
    GroupConfig,
    LogAction,
    ModerationStats,
    SettingToggle,
    Stat,
)
from guardbot.moderation.permissions import (
    invalidate_admin_cache,
    is_bot_owner,
    is_chat_creator,
    resolve_exemption,
)
from guardbot.moderation.rate_tracker import RateTracker
from guardbot.moderation.storage import ModerationStorage, get_storage
from guardbot.moderation.warns import WarningLedger, format_warnings
from guardbot.security import pseudonymize_chat_id, pseudonymize_id
from guardbot.utils.text import escape_html, user_display_name, user_mention


DEFAULT_MUTE_MIN = 60
DEFAULT_WARN_REASON = "Без причины"

MAX_PURGE_MESSAGES = 200
PURGE_NOTICE_SEC = 5
MAX_TITLE_LENGTH = 128


class CommandStatus(str, Enum):
    """Итог команды модерации."""
    OK = "ok"
    FAILED = "failed"
    PROTECTED = "protected"
    FORBIDDEN = "forbidden"


@dataclass
class TargetUser:
    """Цель команды модерации."""
    user_id: int
    name: str
    is_bot: bool = False


@dataclass
class CommandResult:
    """Результат команды: статус и готовый текст ответа (HTML)."""
    status: CommandStatus
    message: str
    warn_count: int = 0
    escalation: Optional[EscalationResult] = None

    @property
    def ok(self) -> bool:
        return self.status is CommandStatus.OK


class ForceJoinCheck(str, Enum):
    """Итог проверки по кнопке «Я подписался»."""
    JOINED = "joined"
    NOT_JOINED = "not_joined"
    NOT_ACTIVE = "not_active"


def render_welcome(template: str, user: User, group_title: str, escape_template: bool = False) -> str:
    """Подставить {user} (упоминание) и {group} (название группы) в шаблон.

    Шаблон админа отправляется как HTML, поэтому в нём можно использовать
    <b>, <i> и ссылки. escape_template=True экранирует сам шаблон.
    """
    text = escape_html(template) if escape_template else template
    return text.replace("{user}", user_mention(user)).replace("{group}", escape_html(group_title))


class ModerationController:
    """Центральный контроллер модерации.

    Объединяет фильтры, предупреждения и команды и является
    единственной точкой входа для событий группы.
    """

    def __init__(
        self,
        bot: Bot,
        storage: ModerationStorage,
        classifier: Optional[ContentClassifier] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """Инициализация контроллера.

        Args:
            bot: Telegram Bot instance
            storage: Хранилище модерации
            classifier: AI-модератор; по умолчанию Gemini с ключами из окружения
            clock: Источник времени для трекеров антиспама и антифлуда
        """
        self.bot = bot
        self.storage = storage
        self.classifier = classifier or ContentClassifier()

        self.scheduler = AutoDeleteScheduler(bot)
        self.actions = PlatformActions(bot, self.scheduler)
        self.activity = ActivityLogger(storage)
        self.spam_tracker = RateTracker(SPAM_WINDOW_SEC, clock)
        self.flood_tracker = RateTracker(FLOOD_MAX_WINDOW_SEC, clock)
        self.ledger = WarningLedger(storage)
        self.escalation = EscalationPolicy(self.actions, self.activity, self.ledger)

        self.chain = FilterChain([
            ForceJoinFilter(self.actions, self.activity, bot),
            SpamFilter(self.actions, self.activity, self.spam_tracker),
            LinkFilter(self.actions, self.activity),
            WordFilter(self.actions, self.activity),
            FloodFilter(self.actions, self.activity, self.flood_tracker),
            ClassifierFilter(self.actions, self.activity, self.classifier),
        ])

    # ========================================================================
    # GROUP EVENTS
    # ========================================================================

    async def on_message(self, ctx: MessageContext) -> FilterOutcome:
        """Обработка обычного (не командного) сообщения группы.

        Args:
            ctx: Данные сообщения

        Returns:
            FilterOutcome: прошло ли сообщение и какой фильтр сработал
        """
        if ctx.chat_type == ChatType.PRIVATE:
            return FilterOutcome(passed=True)

        try:
            settings = await self.storage.ensure_group_async(ctx.chat_id, ctx.chat_title)
        except Exception as exc:
            log.error(f"Не удалось загрузить настройки {pseudonymize_chat_id(ctx.chat_id)}: {exc}")
            return FilterOutcome(passed=True)

        await self.activity.increment(ctx.chat_id, Stat.MESSAGES_PROCESSED)
        try:
            await self.storage.remember_user_async(ctx.user_id, ctx.username, ctx.user_name)
        except Exception as exc:
            log.error(f"Не удалось запомнить username {pseudonymize_id(ctx.user_id)}: {exc}")

        if is_bot_owner(ctx.user_id):
            return FilterOutcome(passed=True)

        ctx.exempt = await resolve_exemption(self.bot, ctx.chat_id, ctx.user_id)
        return await self.chain.run(ctx, settings)

    async def on_user_join(self, chat_id: int, chat_title: str, members: List[User]) -> None:
        """Новые участники: мут на время (если включён) и приветствие."""
        try:
            settings = await self.storage.ensure_group_async(chat_id, chat_title)
        except Exception as exc:
            log.error(f"Не удалось загрузить настройки {pseudonymize_chat_id(chat_id)}: {exc}")
            return

        for user in members:
            if user.is_bot:
                continue

            try:
                await self.storage.remember_user_async(user.id, user.username, user_display_name(user))
            except Exception as exc:
                log.error(f"Не удалось запомнить username {pseudonymize_id(user.id)}: {exc}")

            if settings.mute_new_members:
                await self.actions.mute(chat_id, user.id, settings.mute_new_members_duration)

            if settings.welcome_enabled:
                reply_markup = None
                if settings.force_join_enabled and settings.force_join_channels:
                    reply_markup = force_join_keyboard(settings.force_join_channels)
                sent = await self.actions.send_notice(
                    chat_id,
                    render_welcome(settings.welcome_message, user, chat_title),
                    reply_markup=reply_markup,
                )
                if sent is None:
                    # Битая HTML-разметка в шаблоне: отправляем его как текст
                    await self.actions.send_notice(
                        chat_id,
                        render_welcome(settings.welcome_message, user, chat_title, escape_template=True),
                        reply_markup=reply_markup,
                    )

    async def verify_force_join(self, chat_id: int, user_id: int) -> ForceJoinCheck:
        """Кнопка «Я подписался»: подписан ли пользователь на все каналы.

        Ошибка проверки канала здесь считается отсутствием подписки.
        """
        settings = await self.storage.get_settings_async(chat_id)
        if settings is None or not settings.force_join_enabled or not settings.force_join_channels:
            return ForceJoinCheck.NOT_ACTIVE

        for channel in settings.force_join_channels:
            try:
                member = await self.bot.get_chat_member(f"@{normalize_channel(channel)}", user_id)
            except TelegramError as exc:
                log.warning(f"Не удалось проверить подписку на @{normalize_channel(channel)}: {exc}")
                return ForceJoinCheck.NOT_JOINED
            if member.status in (ChatMember.LEFT, ChatMember.BANNED):
                return ForceJoinCheck.NOT_JOINED
        return ForceJoinCheck.JOINED

    # ========================================================================
    # MODERATION COMMANDS
    # ========================================================================

    async def _is_protected(self, chat_id: int, target: TargetUser) -> bool:
        return target.is_bot or await resolve_exemption(self.bot, chat_id, target.user_id)

    async def warn_user(
        self,
        chat_id: int,
        chat_title: str,
        target: TargetUser,
        admin_name: str,
        reason: Optional[str] = None
    ) -> CommandResult:
        """Выдать предупреждение и проверить эскалацию.

        Args:
            chat_id: ID группы
            chat_title: Название группы (для ленивого создания настроек)
            target: Кому выдаётся предупреждение
            admin_name: Отображаемое имя админа
            reason: Причина; по умолчанию "Без причины"

        Returns:
            CommandResult с количеством предупреждений и итогом эскалации
        """
        if await self._is_protected(chat_id, target):
            return CommandResult(CommandStatus.PROTECTED, "⚠️ Нельзя выдать предупреждение администратору или боту.")

        reason = reason or DEFAULT_WARN_REASON
        try:
            settings = await self.storage.ensure_group_async(chat_id, chat_title)
            await self.ledger.add(chat_id, target.user_id, target.name, reason, admin_name)
            count = await self.ledger.count(chat_id, target.user_id)
        except Exception as exc:
            log.error(f"Не удалось сохранить предупреждение в {pseudonymize_chat_id(chat_id)}: {exc}")
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось сохранить предупреждение.")

        await self.activity.increment(chat_id, Stat.USERS_WARNED)
        await self.activity.log_action(
            chat_id, LogAction.WARN, target.name, admin_name,
            f"Предупреждение {count}/{settings.warn_limit}: {reason}"
        )

        message = (
            f"⚠️ {escape_html(target.name)} получил предупреждение ({count}/{settings.warn_limit}).\n"
            f"Причина: {escape_html(reason)}"
        )
        escalation = None
        if count >= settings.warn_limit:
            escalation = await self.escalation.apply(chat_id, target.user_id, target.name, settings, count)
            if escalation.triggered and not escalation.succeeded:
                message += "\n❌ Не удалось применить наказание: проверьте права бота."

        return CommandResult(CommandStatus.OK, message, warn_count=count, escalation=escalation)

    async def unwarn_user(self, chat_id: int, target: TargetUser, admin_name: str) -> CommandResult:
        try:
            removed = await self.ledger.clear(chat_id, target.user_id)
        except Exception as exc:
            log.error(f"Не удалось очистить предупреждения в {pseudonymize_chat_id(chat_id)}: {exc}")
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось снять предупреждения.")

        await self.activity.log_action(
            chat_id, LogAction.UNWARN, target.name, admin_name, f"Снято предупреждений: {removed}"
        )
        return CommandResult(CommandStatus.OK, f"✅ Предупреждения {escape_html(target.name)} сняты.")

    async def get_warnings(self, chat_id: int, chat_title: str, target: TargetUser) -> CommandResult:
        try:
            settings = await self.storage.ensure_group_async(chat_id, chat_title)
            warnings = await self.ledger.list(chat_id, target.user_id)
        except Exception as exc:
            log.error(f"Не удалось загрузить предупреждения в {pseudonymize_chat_id(chat_id)}: {exc}")
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось загрузить предупреждения.")
        return CommandResult(
            CommandStatus.OK,
            format_warnings(target.name, warnings, settings.warn_limit),
            warn_count=len(warnings),
        )

    async def ban_user(
        self,
        chat_id: int,
        target: TargetUser,
        admin_name: str,
        reason: Optional[str] = None
    ) -> CommandResult:
        if await self._is_protected(chat_id, target):
            return CommandResult(CommandStatus.PROTECTED, "⚠️ Нельзя забанить администратора или бота.")
        if not await self.actions.ban(chat_id, target.user_id):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось забанить: проверьте права бота.")

        await self.activity.increment(chat_id, Stat.USERS_BANNED)
        await self.activity.log_action(chat_id, LogAction.BAN, target.name, admin_name, reason)
        text = f"🚫 {escape_html(target.name)} забанен."
        if reason:
            text += f"\nПричина: {escape_html(reason)}"
        return CommandResult(CommandStatus.OK, text)

    async def unban_user(self, chat_id: int, target: TargetUser, admin_name: str) -> CommandResult:
        if not await self.actions.unban(chat_id, target.user_id):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось разбанить: проверьте права бота.")

        await self.activity.log_action(chat_id, LogAction.UNBAN, target.name, admin_name)
        return CommandResult(CommandStatus.OK, f"✅ {escape_html(target.name)} разбанен.")

    async def kick_user(self, chat_id: int, target: TargetUser, admin_name: str) -> CommandResult:
        if await self._is_protected(chat_id, target):
            return CommandResult(CommandStatus.PROTECTED, "⚠️ Нельзя исключить администратора или бота.")
        outcome = await self.actions.kick(chat_id, target.user_id)
        if outcome is KickOutcome.FAILED:
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось исключить: проверьте права бота.")
        if outcome is KickOutcome.BANNED:
            await self.activity.increment(chat_id, Stat.USERS_BANNED)
            await self.activity.log_action(
                chat_id, LogAction.BAN, target.name, admin_name, "Кик не завершён: разбан не удался"
            )
            return CommandResult(
                CommandStatus.OK,
                f"🚫 {escape_html(target.name)} исключён, но остался забаненным: снимите бан через /unban.",
            )

        await self.activity.increment(chat_id, Stat.USERS_KICKED)
        await self.activity.log_action(chat_id, LogAction.KICK, target.name, admin_name)
        return CommandResult(CommandStatus.OK, f"👢 {escape_html(target.name)} исключён из группы.")

    async def mute_user(
        self,
        chat_id: int,
        target: TargetUser,
        admin_name: str,
        duration_min: int = DEFAULT_MUTE_MIN
    ) -> CommandResult:
        if await self._is_protected(chat_id, target):
            return CommandResult(CommandStatus.PROTECTED, "⚠️ Нельзя замутить администратора или бота.")
        if not await self.actions.mute(chat_id, target.user_id, duration_min * 60):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось замутить: проверьте права бота.")

        await self.activity.increment(chat_id, Stat.USERS_MUTED)
        await self.activity.log_action(chat_id, LogAction.MUTE, target.name, admin_name, f"{duration_min} мин")
        return CommandResult(CommandStatus.OK, f"🔇 {escape_html(target.name)} замьючен на {duration_min} мин.")

    async def unmute_user(self, chat_id: int, target: TargetUser, admin_name: str) -> CommandResult:
        if not await self.actions.unmute(chat_id, target.user_id):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось размутить: проверьте права бота.")

        await self.activity.log_action(chat_id, LogAction.UNMUTE, target.name, admin_name)
        return CommandResult(CommandStatus.OK, f"🔊 {escape_html(target.name)} снова может писать.")

    async def _can_manage_admins(self, chat_id: int, admin_id: int) -> bool:
        return is_bot_owner(admin_id) or await is_chat_creator(self.bot, chat_id, admin_id)

    async def promote_user(self, chat_id: int, target: TargetUser, admin_id: int, admin_name: str) -> CommandResult:
        """Назначить администратора. Только создатель группы или владелец бота."""
        if not await self._can_manage_admins(chat_id, admin_id):
            return CommandResult(CommandStatus.FORBIDDEN, "⚠️ Назначать администраторов может только создатель группы.")
        if not await self.actions.promote(chat_id, target.user_id):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось назначить администратора.")

        invalidate_admin_cache(chat_id, target.user_id)
        await self.activity.log_action(chat_id, LogAction.PROMOTE, target.name, admin_name)
        return CommandResult(CommandStatus.OK, f"⭐ {escape_html(target.name)} теперь администратор.")

    async def demote_user(self, chat_id: int, target: TargetUser, admin_id: int, admin_name: str) -> CommandResult:
        if not await self._can_manage_admins(chat_id, admin_id):
            return CommandResult(CommandStatus.FORBIDDEN, "⚠️ Снимать администраторов может только создатель группы.")
        if not await self.actions.demote(chat_id, target.user_id):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось снять администратора.")

        invalidate_admin_cache(chat_id, target.user_id)
        await self.activity.log_action(chat_id, LogAction.DEMOTE, target.name, admin_name)
        return CommandResult(CommandStatus.OK, f"{escape_html(target.name)} больше не администратор.")

    # ========================================================================
    # CHAT MANAGEMENT
    # ========================================================================

    async def pin_message(self, chat_id: int, message_id: int) -> CommandResult:
        if not await self.actions.pin(chat_id, message_id):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось закрепить сообщение: проверьте права бота.")
        return CommandResult(CommandStatus.OK, "📌 Сообщение закреплено.")

    async def unpin_message(self, chat_id: int, message_id: Optional[int] = None) -> CommandResult:
        if not await self.actions.unpin(chat_id, message_id):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось открепить сообщение: проверьте права бота.")
        return CommandResult(CommandStatus.OK, "📌 Сообщение откреплено.")

    async def delete_message(self, chat_id: int, message_id: int, command_message_id: int) -> CommandResult:
        """/del: удалить сообщение, на которое ответили, и саму команду."""
        if not await self.actions.delete_message(chat_id, message_id):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось удалить сообщение: проверьте права бота.")
        await self.actions.delete_message(chat_id, command_message_id)
        await self.activity.increment(chat_id, Stat.MESSAGES_DELETED)
        return CommandResult(CommandStatus.OK, "")

    async def purge_messages(self, chat_id: int, first_id: int, last_id: int) -> CommandResult:
        """/purge: удалить сообщения от first_id до last_id (команды) включительно.

        За раз удаляется не больше MAX_PURGE_MESSAGES последних сообщений.
        Итог отправляется уведомлением, которое удаляется через 5 секунд.
        """
        first_id = max(first_id, last_id - MAX_PURGE_MESSAGES + 1)
        deleted = await self.actions.delete_range(chat_id, first_id, last_id)
        if deleted:
            await self.activity.increment(chat_id, Stat.MESSAGES_DELETED, deleted)
        text = f"🧹 Удалено сообщений: {deleted}."
        await self.actions.send_notice(chat_id, text, auto_delete_sec=PURGE_NOTICE_SEC)
        return CommandResult(CommandStatus.OK, text)

    async def lock_chat(self, chat_id: int) -> CommandResult:
        if not await self.actions.set_permissions(chat_id, LOCKED_PERMISSIONS):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось закрыть чат: проверьте права бота.")
        return CommandResult(CommandStatus.OK, "🔒 Чат <b>закрыт</b>. Писать могут только администраторы.")

    async def unlock_chat(self, chat_id: int) -> CommandResult:
        if not await self.actions.set_permissions(chat_id, UNLOCKED_PERMISSIONS):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось открыть чат: проверьте права бота.")
        return CommandResult(CommandStatus.OK, "🔓 Чат <b>открыт</b>. Все участники снова могут писать.")

    async def set_chat_title(self, chat_id: int, title: str) -> CommandResult:
        title = title.strip()
        if not title or len(title) > MAX_TITLE_LENGTH:
            return CommandResult(
                CommandStatus.FAILED, f"⚠️ Название должно быть от 1 до {MAX_TITLE_LENGTH} символов."
            )
        if not await self.actions.set_title(chat_id, title):
            return CommandResult(CommandStatus.FAILED, "❌ Не удалось изменить название: проверьте права бота.")
        try:
            await self.storage.upsert_group_async(chat_id, title)
        except Exception as exc:
            log.error(f"Не удалось сохранить новое название {pseudonymize_chat_id(chat_id)}: {exc}")
        return CommandResult(CommandStatus.OK, f"✏️ Название группы изменено на <b>{escape_html(title)}</b>.")

    # ========================================================================
    # SETTINGS
    # ========================================================================

    async def get_settings(self, chat_id: int, chat_title: str = "") -> GroupConfig:
        return await self.storage.ensure_group_async(chat_id, chat_title)

    async def toggle_setting(self, chat_id: int, chat_title: str, toggle: SettingToggle) -> bool:
        """Переключить функцию. Возвращает новое значение."""
        settings = await self.get_settings(chat_id, chat_title)
        value = settings.toggle(toggle)
        await self.storage.upsert_settings_async(settings)
        return value

    async def add_banned_word(self, chat_id: int, chat_title: str, word: str) -> bool:
        """Добавить слово в фильтр. False, если оно уже есть."""
        settings = await self.get_settings(chat_id, chat_title)
        word = word.strip().lower()
        if not word or word in (w.lower() for w in settings.banned_words):
            return False
        await self.storage.update_settings_async(chat_id, {"banned_words": settings.banned_words + [word]})
        return True

    async def remove_banned_word(self, chat_id: int, chat_title: str, word: str) -> bool:
        settings = await self.get_settings(chat_id, chat_title)
        word = word.strip().lower()
        remaining = [w for w in settings.banned_words if w.lower() != word]
        if len(remaining) == len(settings.banned_words):
            return False
        await self.storage.update_settings_async(chat_id, {"banned_words": remaining})
        return True

    async def add_force_join_channel(self, chat_id: int, chat_title: str, channel: str) -> bool:
        settings = await self.get_settings(chat_id, chat_title)
        channel = normalize_channel(channel)
        existing = [normalize_channel(ch).lower() for ch in settings.force_join_channels]
        if not channel or channel.lower() in existing:
            return False
        await self.storage.update_settings_async(
            chat_id, {"force_join_channels": settings.force_join_channels + [channel]}
        )
        return True

    async def remove_force_join_channel(self, chat_id: int, chat_title: str, channel: str) -> bool:
        settings = await self.get_settings(chat_id, chat_title)
        channel = normalize_channel(channel).lower()
        remaining = [ch for ch in settings.force_join_channels if normalize_channel(ch).lower() != channel]
        if len(remaining) == len(settings.force_join_channels):
            return False
        await self.storage.update_settings_async(chat_id, {"force_join_channels": remaining})
        return True

    async def set_welcome_message(self, chat_id: int, chat_title: str, text: str) -> GroupConfig:
        await self.get_settings(chat_id, chat_title)
        return await self.storage.update_settings_async(chat_id, {"welcome_message": text})

    async def set_warn_limit(self, chat_id: int, chat_title: str, limit: int) -> GroupConfig:
        """Raises ValueError, если лимит вне диапазона 1-20."""
        await self.get_settings(chat_id, chat_title)
        return await self.storage.update_settings_async(chat_id, {"warn_limit": limit})

    async def set_warn_action(self, chat_id: int, chat_title: str, action: str) -> GroupConfig:
        """Raises ValueError для неизвестного действия."""
        await self.get_settings(chat_id, chat_title)
        return await self.storage.update_settings_async(chat_id, {"warn_action": action.strip().lower()})

    async def get_stats(self, chat_id: int) -> ModerationStats:
        return await self.storage.get_stats_async(chat_id)

    async def get_logs(self, chat_id: int, limit: int = 10) -> List[ActivityLogEntry]:
        return await self.storage.list_logs_async(chat_id, limit)

    # ========================================================================
    # MAINTENANCE
    # ========================================================================

    def sweep_trackers(self) -> int:
        """Удалить из трекеров пользователей без событий в окне."""
        return self.spam_tracker.sweep() + self.flood_tracker.sweep()

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()


# Глобальный экземпляр контроллера (создаётся при инициализации бота)
_controller: Optional[ModerationController] = None


def get_moderation_controller(bot: Bot) -> ModerationController:
    """Получить или создать глобальный экземпляр контроллера модерации."""
    global _controller
    if _controller is None:
        _controller = ModerationController(bot, get_storage())
    return _controller


def init_moderation_controller(
    bot: Bot,
    storage: Optional[ModerationStorage] = None,
    classifier: Optional[ContentClassifier] = None
) -> ModerationController:
    """Инициализировать глобальный контроллер модерации.

    Вызывается при старте бота.
    """
    global _controller
    _controller = ModerationController(bot, storage or get_storage(), classifier)
    log.info("ModerationController initialized")
    return _controller
