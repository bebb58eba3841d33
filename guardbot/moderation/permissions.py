# Copyright (c) 2025 sprowii
"""Проверка прав: владелец бота и администраторы групп.

Статус администратора кэшируется на 5 минут, чтобы не дёргать
get_chat_member на каждое сообщение.
"""
import secrets
import time
from typing import Dict, Optional, Tuple

from telegram import Bot, ChatMember, Update
from telegram.constants import ChatType
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from guardbot import config
from guardbot.logging_config import log
from guardbot.security import pseudonymize_chat_id, pseudonymize_id


# Кэш статуса админа: {(chat_id, user_id): (is_admin, timestamp)}
_admin_cache: Dict[Tuple[int, int], Tuple[bool, float]] = {}

ADMIN_CACHE_TTL = 300

ADMIN_STATUSES = (ChatMember.ADMINISTRATOR, ChatMember.OWNER)


def is_bot_owner(user_id: Optional[int]) -> bool:
    if user_id is None or not config.BOT_OWNER_ID:
        return False
    return secrets.compare_digest(str(user_id), str(config.BOT_OWNER_ID))


def get_cached_admin_status(chat_id: int, user_id: int) -> Optional[bool]:
    """True/False если есть валидный кэш, None если его нет или он истёк."""
    key = (chat_id, user_id)
    cached = _admin_cache.get(key)
    if cached is None:
        return None

    is_admin, timestamp = cached
    if time.time() - timestamp >= ADMIN_CACHE_TTL:
        del _admin_cache[key]
        return None
    return is_admin


def set_cached_admin_status(chat_id: int, user_id: int, is_admin: bool) -> None:
    _admin_cache[(chat_id, user_id)] = (is_admin, time.time())


def invalidate_admin_cache(chat_id: int, user_id: int) -> None:
    _admin_cache.pop((chat_id, user_id), None)


def clear_admin_cache() -> int:
    count = len(_admin_cache)
    _admin_cache.clear()
    return count


def cleanup_expired_cache() -> int:
    """Удалить истёкшие записи. Вызывается периодической задачей."""
    now = time.time()
    expired = [key for key, (_, ts) in _admin_cache.items() if now - ts >= ADMIN_CACHE_TTL]
    for key in expired:
        del _admin_cache[key]
    if expired:
        log.debug(f"Очищено {len(expired)} истёкших записей кэша админов")
    return len(expired)


async def is_chat_admin(bot: Bot, chat_id: int, user_id: int) -> bool:
    """Является ли пользователь создателем или администратором группы.

    Ошибка API трактуется как "не админ".
    """
    cached = get_cached_admin_status(chat_id, user_id)
    if cached is not None:
        return cached

    try:
        member = await bot.get_chat_member(chat_id, user_id)
    except TelegramError as exc:
        log.error(
            f"Ошибка проверки статуса админа для {pseudonymize_id(user_id)} "
            f"в чате {pseudonymize_chat_id(chat_id)}: {exc}"
        )
        return False

    is_admin = member.status in ADMIN_STATUSES
    set_cached_admin_status(chat_id, user_id, is_admin)
    return is_admin


async def resolve_exemption(bot: Bot, chat_id: int, user_id: int) -> bool:
    """Освобождён ли отправитель от всех фильтров: владелец бота или админ группы."""
    if is_bot_owner(user_id):
        return True
    return await is_chat_admin(bot, chat_id, user_id)


async def is_chat_creator(bot: Bot, chat_id: int, user_id: int) -> bool:
    """Создатель группы. Без кэша: нужен только для promote/demote."""
    try:
        member = await bot.get_chat_member(chat_id, user_id)
    except TelegramError as exc:
        log.error(f"Ошибка проверки создателя чата {pseudonymize_chat_id(chat_id)}: {exc}")
        return False
    return member.status == ChatMember.OWNER


async def check_admin_permission(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    """Проверить права на команду модерации и ответить, если их нет.

    Отказ не пишется в журнал действий.
    """
    message = update.effective_message
    chat = update.effective_chat
    user = update.effective_user
    if not message or not chat or not user:
        return False

    if chat.type == ChatType.PRIVATE:
        await message.reply_text("⚠️ Команды модерации работают только в группах.")
        return False

    if await resolve_exemption(context.bot, chat.id, user.id):
        return True

    await message.reply_text("⚠️ Эта команда доступна только администраторам группы.")
    return False
