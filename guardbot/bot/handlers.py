# Copyright (c) 2025 sprowii
from typing import List, Optional, Tuple

from telegram import Update
from telegram.constants import ChatType, ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from guardbot.logging_config import log
from guardbot.moderation.controller import (
    DEFAULT_MUTE_MIN,
    CommandResult,
    ForceJoinCheck,
    ModerationController,
    TargetUser,
    get_moderation_controller,
)
from guardbot.moderation.filters import FORCE_JOIN_CALLBACK_PREFIX, MessageContext
from guardbot.moderation.models import GroupConfig, ModerationStats, SettingToggle
from guardbot.moderation.permissions import check_admin_permission
from guardbot.utils.text import display_name, escape_html, split_long_message, user_display_name


HELP_TEXT = (
    "🛡 <b>Бот-модератор групп</b>\n\n"
    "Добавьте бота в группу администратором, и он будет следить за порядком.\n\n"
    "<b>Модерация</b> (ответом на сообщение, @username или ID):\n"
    "/warn [причина] - предупреждение\n"
    "/unwarn - снять предупреждения\n"
    "/warnings - список предупреждений\n"
    "/ban, /unban, /kick\n"
    "/mute [минуты] - мут (по умолчанию 60 мин)\n"
    "/unmute\n"
    "/promote, /demote - только создатель группы\n\n"
    "<b>Управление чатом</b>:\n"
    "/pin, /unpin - закрепить или открепить сообщение (ответом)\n"
    "/del - удалить сообщение, /purge - удалить всё от сообщения до команды\n"
    "/lock, /unlock - закрыть или открыть чат, /settitle - название группы\n\n"
    "<b>Настройки</b>:\n"
    "/settings - текущие настройки\n"
    "/toggle &lt;функция&gt; - вкл/выкл: " + ", ".join(t.value for t in SettingToggle) + "\n"
    "/setwelcome &lt;текст&gt; - приветствие, {user} и {group}\n"
    "/addword, /delword - запрещённые слова\n"
    "/setforcejoin, /delforcejoin - обязательные каналы\n"
    "/setwarnlimit &lt;1-20&gt;, /setwarnaction &lt;mute|kick|ban&gt;\n\n"
    "/stats - статистика, /modlog - журнал, /rules - правила группы"
)

_ON_OFF = {True: "✅", False: "❌"}


def _controller(context: ContextTypes.DEFAULT_TYPE) -> ModerationController:
    return get_moderation_controller(context.bot)


async def _reply(update: Update, text: str) -> None:
    message = update.effective_message
    for chunk in split_long_message(text):
        try:
            await message.reply_text(chunk, parse_mode=ParseMode.HTML)
        except TelegramError as exc:
            log.error(f"Не удалось ответить на команду: {exc}")


async def _reply_result(update: Update, result: CommandResult) -> None:
    await _reply(update, result.message)


def _admin_name(update: Update) -> str:
    return user_display_name(update.effective_user)


def _command_payload(update: Update) -> str:
    """Текст после команды с сохранением переносов строк."""
    text = update.effective_message.text or ""
    parts = text.split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


# ============================================================================
# TARGET RESOLUTION
# ============================================================================

async def resolve_target(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE
) -> Tuple[Optional[TargetUser], List[str]]:
    """Найти цель команды: ответ на сообщение, затем @username, затем числовой ID.

    Returns:
        (цель или None, оставшиеся аргументы команды)
    """
    message = update.effective_message
    args = list(context.args or [])

    reply = message.reply_to_message
    if reply and reply.from_user:
        user = reply.from_user
        return TargetUser(user.id, user_display_name(user), bool(user.is_bot)), args

    if not args:
        return None, args

    first = args[0]
    if first.startswith("@"):
        found = await _controller(context).storage.lookup_username_async(first)
        if found is None:
            return None, args
        return TargetUser(found["user_id"], found["display_name"]), args[1:]

    if first.lstrip("-").isdigit():
        user_id = int(first)
        try:
            member = await context.bot.get_chat_member(update.effective_chat.id, user_id)
        except TelegramError:
            return TargetUser(user_id, str(user_id)), args[1:]
        user = member.user
        return TargetUser(user.id, display_name(user.username, user.first_name, user.last_name), bool(user.is_bot)), args[1:]

    return None, args


async def _admin_with_target(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    usage: str
) -> Optional[Tuple[TargetUser, List[str]]]:
    if not await check_admin_permission(update, context):
        return None
    target, rest = await resolve_target(update, context)
    if target is None:
        await _reply(update, f"⚠️ Не удалось определить пользователя.\nИспользование: {usage}")
        return None
    return target, rest


# ============================================================================
# MODERATION COMMANDS
# ============================================================================

async def warn_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/warn [причина] ответом, @username или ID")
    if not prepared:
        return
    target, rest = prepared
    chat = update.effective_chat
    reason = " ".join(rest).strip() or None
    result = await _controller(context).warn_user(chat.id, chat.title or "", target, _admin_name(update), reason)
    await _reply_result(update, result)


async def unwarn_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/unwarn ответом, @username или ID")
    if not prepared:
        return
    target, _ = prepared
    result = await _controller(context).unwarn_user(update.effective_chat.id, target, _admin_name(update))
    await _reply_result(update, result)


async def warnings_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/warnings ответом, @username или ID")
    if not prepared:
        return
    target, _ = prepared
    chat = update.effective_chat
    result = await _controller(context).get_warnings(chat.id, chat.title or "", target)
    await _reply_result(update, result)


async def ban_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/ban [причина] ответом, @username или ID")
    if not prepared:
        return
    target, rest = prepared
    reason = " ".join(rest).strip() or None
    result = await _controller(context).ban_user(update.effective_chat.id, target, _admin_name(update), reason)
    await _reply_result(update, result)


async def unban_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/unban @username или ID")
    if not prepared:
        return
    target, _ = prepared
    result = await _controller(context).unban_user(update.effective_chat.id, target, _admin_name(update))
    await _reply_result(update, result)


async def kick_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/kick ответом, @username или ID")
    if not prepared:
        return
    target, _ = prepared
    result = await _controller(context).kick_user(update.effective_chat.id, target, _admin_name(update))
    await _reply_result(update, result)


async def mute_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/mute [минуты] ответом, @username или ID")
    if not prepared:
        return
    target, rest = prepared

    duration_min = DEFAULT_MUTE_MIN
    if rest:
        if not rest[0].isdigit() or int(rest[0]) <= 0:
            await _reply(update, "⚠️ Длительность мута указывается в минутах, целым числом больше нуля.")
            return
        duration_min = int(rest[0])

    result = await _controller(context).mute_user(update.effective_chat.id, target, _admin_name(update), duration_min)
    await _reply_result(update, result)


async def unmute_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/unmute ответом, @username или ID")
    if not prepared:
        return
    target, _ = prepared
    result = await _controller(context).unmute_user(update.effective_chat.id, target, _admin_name(update))
    await _reply_result(update, result)


async def promote_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/promote ответом, @username или ID")
    if not prepared:
        return
    target, _ = prepared
    user = update.effective_user
    result = await _controller(context).promote_user(update.effective_chat.id, target, user.id, _admin_name(update))
    await _reply_result(update, result)


async def demote_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prepared = await _admin_with_target(update, context, "/demote ответом, @username или ID")
    if not prepared:
        return
    target, _ = prepared
    user = update.effective_user
    result = await _controller(context).demote_user(update.effective_chat.id, target, user.id, _admin_name(update))
    await _reply_result(update, result)


# ============================================================================
# CHAT MANAGEMENT COMMANDS
# ============================================================================

def _replied_message_id(update: Update) -> Optional[int]:
    reply = update.effective_message.reply_to_message
    return reply.message_id if reply else None


async def pin_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    message_id = _replied_message_id(update)
    if message_id is None:
        await _reply(update, "⚠️ Ответьте командой /pin на сообщение, которое нужно закрепить.")
        return
    await _reply_result(update, await _controller(context).pin_message(update.effective_chat.id, message_id))


async def unpin_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Без ответа открепляет последнее закреплённое сообщение."""
    if not await check_admin_permission(update, context):
        return
    result = await _controller(context).unpin_message(update.effective_chat.id, _replied_message_id(update))
    await _reply_result(update, result)


async def del_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    message_id = _replied_message_id(update)
    if message_id is None:
        await _reply(update, "⚠️ Ответьте командой /del на сообщение, которое нужно удалить.")
        return
    result = await _controller(context).delete_message(
        update.effective_chat.id, message_id, update.effective_message.message_id
    )
    if not result.ok:
        await _reply_result(update, result)


async def purge_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    first_id = _replied_message_id(update)
    if first_id is None:
        await _reply(
            update,
            "⚠️ Ответьте командой /purge на первое сообщение: будут удалены все сообщения от него до команды.",
        )
        return
    # Итог отправляется уведомлением с автоудалением
    await _controller(context).purge_messages(update.effective_chat.id, first_id, update.effective_message.message_id)


async def lock_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    await _reply_result(update, await _controller(context).lock_chat(update.effective_chat.id))


async def unlock_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    await _reply_result(update, await _controller(context).unlock_chat(update.effective_chat.id))


async def slow_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    # В Bot API нет метода для медленного режима, он включается только в настройках группы
    if not await check_admin_permission(update, context):
        return
    await _reply(
        update,
        "⚠️ Медленный режим нельзя включить через бота: Telegram позволяет менять его "
        "только в настройках группы (Разрешения → Медленный режим).",
    )


async def settitle_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    title = _command_payload(update)
    if not title:
        await _reply(update, "⚠️ Использование: /settitle новое название")
        return
    await _reply_result(update, await _controller(context).set_chat_title(update.effective_chat.id, title))


# ============================================================================
# SETTINGS COMMANDS
# ============================================================================

def format_settings(settings: GroupConfig) -> str:
    channels = ", ".join(f"@{escape_html(ch)}" for ch in settings.force_join_channels) or "нет"
    words = ", ".join(escape_html(w) for w in settings.banned_words) or "нет"
    return "\n".join([
        "⚙️ <b>Настройки группы</b>",
        f"{_ON_OFF[settings.welcome_enabled]} Приветствие (welcome)",
        f"{_ON_OFF[settings.force_join_enabled]} Обязательная подписка (force_join): {channels}",
        f"{_ON_OFF[settings.anti_spam_enabled]} Антиспам (anti_spam): {settings.anti_spam_max_messages} сообщ. / 10 сек",
        f"{_ON_OFF[settings.anti_link_enabled]} Запрет ссылок (anti_link)",
        f"{_ON_OFF[settings.word_filter_enabled]} Фильтр слов (word_filter): {words}",
        f"{_ON_OFF[settings.anti_flood_enabled]} Антифлуд (anti_flood): "
        f"{settings.anti_flood_messages} сообщ. / {settings.anti_flood_seconds} сек",
        f"{_ON_OFF[settings.mute_new_members]} Мут новичков (mute_new_members): "
        f"{settings.mute_new_members_duration} сек",
        f"{_ON_OFF[settings.ai_moderator_enabled]} AI-модератор (ai_moderator)",
        f"⚠️ Лимит предупреждений: {settings.warn_limit}, затем {settings.warn_action.value}",
    ])


def format_stats(stats: ModerationStats) -> str:
    return "\n".join([
        "📊 <b>Статистика модерации</b>",
        f"Обработано сообщений: {stats.messages_processed}",
        f"Удалено сообщений: {stats.messages_deleted}",
        f"Предупреждений: {stats.users_warned}",
        f"Банов: {stats.users_banned}",
        f"Киков: {stats.users_kicked}",
        f"Мутов: {stats.users_muted}",
        f"Заблокировано спама: {stats.spam_blocked}",
        f"Без подписки на каналы: {stats.force_join_blocked}",
    ])


def format_rules(settings: GroupConfig) -> str:
    rules = []
    if settings.anti_spam_enabled:
        rules.append(f"Не больше {settings.anti_spam_max_messages} сообщений за 10 секунд")
    if settings.anti_flood_enabled:
        rules.append(f"Не больше {settings.anti_flood_messages} сообщений за {settings.anti_flood_seconds} секунд")
    if settings.anti_link_enabled:
        rules.append("Ссылки запрещены")
    if settings.word_filter_enabled and settings.banned_words:
        rules.append("Запрещённые слова удаляются")
    if settings.force_join_enabled and settings.force_join_channels:
        channels = ", ".join(f"@{escape_html(ch)}" for ch in settings.force_join_channels)
        rules.append(f"Писать можно только подписчикам: {channels}")
    if settings.ai_moderator_enabled:
        rules.append("Сообщения проверяет AI-модератор")
    rules.append(f"После {settings.warn_limit} предупреждений: {settings.warn_action.value}")
    return "📜 <b>Правила группы</b>\n" + "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, 1))


async def settings_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    chat = update.effective_chat
    settings = await _controller(context).get_settings(chat.id, chat.title or "")
    await _reply(update, format_settings(settings))


async def stats_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    stats = await _controller(context).get_stats(update.effective_chat.id)
    await _reply(update, format_stats(stats))


async def rules_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat = update.effective_chat
    if chat.type == ChatType.PRIVATE:
        await _reply(update, "⚠️ Команда работает только в группах.")
        return
    settings = await _controller(context).get_settings(chat.id, chat.title or "")
    await _reply(update, format_rules(settings))


async def modlog_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    entries = await _controller(context).get_logs(update.effective_chat.id, 10)
    if not entries:
        await _reply(update, "📋 Журнал пуст.")
        return
    lines = ["📋 <b>Последние действия</b>"]
    for entry in entries:
        line = f"• <b>{entry.action}</b> {escape_html(entry.target_user)} ({escape_html(entry.performed_by)})"
        if entry.details:
            line += f": {escape_html(entry.details)}"
        lines.append(line)
    await _reply(update, "\n".join(lines))


async def setwelcome_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    text = _command_payload(update)
    if not text:
        await _reply(update, "⚠️ Использование: /setwelcome текст. Доступны {user} и {group}.")
        return
    chat = update.effective_chat
    await _controller(context).set_welcome_message(chat.id, chat.title or "", text)
    await _reply(update, "✅ Приветствие обновлено.")


async def addword_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    word = _command_payload(update)
    if not word:
        await _reply(update, "⚠️ Использование: /addword слово")
        return
    chat = update.effective_chat
    added = await _controller(context).add_banned_word(chat.id, chat.title or "", word)
    text = f"✅ Слово «{escape_html(word)}» добавлено в фильтр." if added else "ℹ️ Это слово уже в фильтре."
    await _reply(update, text)


async def delword_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    word = _command_payload(update)
    if not word:
        await _reply(update, "⚠️ Использование: /delword слово")
        return
    chat = update.effective_chat
    removed = await _controller(context).remove_banned_word(chat.id, chat.title or "", word)
    text = f"✅ Слово «{escape_html(word)}» удалено из фильтра." if removed else "ℹ️ Такого слова нет в фильтре."
    await _reply(update, text)


async def setforcejoin_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    if not context.args:
        await _reply(update, "⚠️ Использование: /setforcejoin @канал")
        return
    chat = update.effective_chat
    added = await _controller(context).add_force_join_channel(chat.id, chat.title or "", context.args[0])
    text = "✅ Канал добавлен. Включите проверку: /toggle force_join" if added else "ℹ️ Канал уже в списке."
    await _reply(update, text)


async def delforcejoin_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    if not context.args:
        await _reply(update, "⚠️ Использование: /delforcejoin @канал")
        return
    chat = update.effective_chat
    removed = await _controller(context).remove_force_join_channel(chat.id, chat.title or "", context.args[0])
    await _reply(update, "✅ Канал удалён." if removed else "ℹ️ Такого канала нет в списке.")


async def toggle_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    names = ", ".join(t.value for t in SettingToggle)
    if not context.args:
        await _reply(update, f"⚠️ Использование: /toggle функция\nДоступно: {names}")
        return
    try:
        toggle = SettingToggle(context.args[0].lower())
    except ValueError:
        await _reply(update, f"⚠️ Неизвестная функция. Доступно: {names}")
        return
    chat = update.effective_chat
    enabled = await _controller(context).toggle_setting(chat.id, chat.title or "", toggle)
    await _reply(update, f"{_ON_OFF[enabled]} {toggle.value}: {'включено' if enabled else 'выключено'}")


async def setwarnlimit_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    if not context.args or not context.args[0].isdigit():
        await _reply(update, "⚠️ Использование: /setwarnlimit число от 1 до 20")
        return
    chat = update.effective_chat
    try:
        settings = await _controller(context).set_warn_limit(chat.id, chat.title or "", int(context.args[0]))
    except ValueError as exc:
        await _reply(update, f"⚠️ {escape_html(str(exc))}")
        return
    await _reply(update, f"✅ Лимит предупреждений: {settings.warn_limit}")


async def setwarnaction_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await check_admin_permission(update, context):
        return
    if not context.args:
        await _reply(update, "⚠️ Использование: /setwarnaction mute|kick|ban")
        return
    chat = update.effective_chat
    try:
        settings = await _controller(context).set_warn_action(chat.id, chat.title or "", context.args[0])
    except ValueError as exc:
        await _reply(update, f"⚠️ {escape_html(str(exc))}")
        return
    await _reply(update, f"✅ Действие при лимите: {settings.warn_action.value}")


# ============================================================================
# EVENTS
# ============================================================================

async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, HELP_TEXT)


async def group_message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    message = update.effective_message
    if not message or not message.from_user:
        return
    await _controller(context).on_message(MessageContext.from_message(message))


async def new_members_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    message = update.effective_message
    if not message or not message.new_chat_members:
        return
    chat = update.effective_chat
    await _controller(context).on_user_join(chat.id, chat.title or "", list(message.new_chat_members))


async def force_join_callback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    try:
        chat_id = int(query.data[len(FORCE_JOIN_CALLBACK_PREFIX):])
    except ValueError:
        await query.answer()
        return

    check = await _controller(context).verify_force_join(chat_id, query.from_user.id)
    if check is ForceJoinCheck.NOT_ACTIVE:
        await query.answer("ℹ️ Обязательная подписка в этой группе не включена.", show_alert=True)
        return
    if check is ForceJoinCheck.NOT_JOINED:
        await query.answer("❌ Вы ещё не подписались на все каналы.", show_alert=True)
        return

    await query.answer("✅ Спасибо! Теперь вы можете писать в группе.", show_alert=True)
    if query.message:
        try:
            await query.message.delete()
        except TelegramError as exc:
            log.debug(f"Не удалось удалить уведомление о подписке: {exc}")


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    log.error(f"Ошибка при обработке обновления: {context.error}", exc_info=context.error)


def register_handlers(application: Application) -> None:
    commands = {
        "warn": warn_cmd,
        "unwarn": unwarn_cmd,
        "warnings": warnings_cmd,
        "ban": ban_cmd,
        "unban": unban_cmd,
        "kick": kick_cmd,
        "mute": mute_cmd,
        "unmute": unmute_cmd,
        "promote": promote_cmd,
        "demote": demote_cmd,
        "pin": pin_cmd,
        "unpin": unpin_cmd,
        "del": del_cmd,
        "purge": purge_cmd,
        "lock": lock_cmd,
        "unlock": unlock_cmd,
        "slow": slow_cmd,
        "settitle": settitle_cmd,
        "settings": settings_cmd,
        "stats": stats_cmd,
        "rules": rules_cmd,
        "modlog": modlog_cmd,
        "setwelcome": setwelcome_cmd,
        "addword": addword_cmd,
        "delword": delword_cmd,
        "setforcejoin": setforcejoin_cmd,
        "delforcejoin": delforcejoin_cmd,
        "toggle": toggle_cmd,
        "setwarnlimit": setwarnlimit_cmd,
        "setwarnaction": setwarnaction_cmd,
        "start": start_cmd,
        "help": start_cmd,
    }
    for name, callback in commands.items():
        application.add_handler(CommandHandler(name, callback))

    application.add_handler(MessageHandler(filters.StatusUpdate.NEW_CHAT_MEMBERS, new_members_handler))
    application.add_handler(
        MessageHandler(filters.ChatType.GROUPS & ~filters.COMMAND & ~filters.StatusUpdate.ALL, group_message_handler)
    )
    application.add_handler(CallbackQueryHandler(force_join_callback, pattern=f"^{FORCE_JOIN_CALLBACK_PREFIX}"))
    application.add_error_handler(error_handler)
