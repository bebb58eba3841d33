# Copyright (c) 2025 sprowii
"""Вызовы Telegram API для модерации.

Каждый вызов может упасть (нет прав, сообщение уже удалено, сеть).
Методы ловят TelegramError, пишут в лог и возвращают False, чтобы
одна неудача не отменяла остальные побочные эффекты.
"""
import time
from enum import Enum
from typing import Optional

from telegram import Bot, ChatPermissions, InlineKeyboardMarkup, Message
from telegram.constants import ParseMode
from telegram.error import TelegramError

from guardbot.logging_config import log
from guardbot.moderation.cleanup import AutoDeleteScheduler
from guardbot.security import pseudonymize_chat_id, pseudonymize_id


MUTED_PERMISSIONS = ChatPermissions(can_send_messages=False)

LOCKED_PERMISSIONS = ChatPermissions.no_permissions()
UNLOCKED_PERMISSIONS = ChatPermissions(
    can_send_messages=True,
    can_send_audios=True,
    can_send_documents=True,
    can_send_photos=True,
    can_send_videos=True,
    can_send_video_notes=True,
    can_send_voice_notes=True,
    can_send_polls=True,
    can_send_other_messages=True,
    can_add_web_page_previews=True,
)

KICK_UNBAN_ATTEMPTS = 2


class KickOutcome(str, Enum):
    KICKED = "kicked"
    # бан прошёл, разбан нет
    BANNED = "banned"
    FAILED = "failed"


class PlatformActions:
    """Обёртка над Bot с безопасными вызовами."""

    def __init__(self, bot: Bot, scheduler: AutoDeleteScheduler):
        self.bot = bot
        self.scheduler = scheduler

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        try:
            await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
            return True
        except TelegramError as exc:
            log.warning(f"Не удалось удалить сообщение {message_id} в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def send_notice(
        self,
        chat_id: int,
        text: str,
        auto_delete_sec: Optional[float] = None,
        reply_markup: Optional[InlineKeyboardMarkup] = None
    ) -> Optional[Message]:
        """Отправить уведомление (HTML) и при необходимости удалить его позже."""
        try:
            sent = await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                reply_markup=reply_markup,
            )
        except TelegramError as exc:
            log.warning(f"Не удалось отправить уведомление в {pseudonymize_chat_id(chat_id)}: {exc}")
            return None

        if auto_delete_sec:
            self.scheduler.schedule(chat_id, sent.message_id, auto_delete_sec)
        return sent

    async def mute(self, chat_id: int, user_id: int, duration_sec: int) -> bool:
        until_date = int(time.time()) + duration_sec
        try:
            await self.bot.restrict_chat_member(
                chat_id=chat_id,
                user_id=user_id,
                permissions=MUTED_PERMISSIONS,
                until_date=until_date,
            )
            return True
        except TelegramError as exc:
            log.error(f"Не удалось замутить {pseudonymize_id(user_id)} в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def unmute(self, chat_id: int, user_id: int) -> bool:
        try:
            await self.bot.restrict_chat_member(
                chat_id=chat_id,
                user_id=user_id,
                permissions=ChatPermissions.all_permissions(),
            )
            return True
        except TelegramError as exc:
            log.error(f"Не удалось размутить {pseudonymize_id(user_id)} в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def ban(self, chat_id: int, user_id: int) -> bool:
        try:
            await self.bot.ban_chat_member(chat_id=chat_id, user_id=user_id)
            return True
        except TelegramError as exc:
            log.error(f"Не удалось забанить {pseudonymize_id(user_id)} в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def unban(self, chat_id: int, user_id: int) -> bool:
        try:
            await self.bot.unban_chat_member(chat_id=chat_id, user_id=user_id, only_if_banned=True)
            return True
        except TelegramError as exc:
            log.error(f"Не удалось разбанить {pseudonymize_id(user_id)} в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def kick(self, chat_id: int, user_id: int) -> KickOutcome:
        """Кик: бан и сразу разбан, чтобы пользователь мог вернуться.

        Если бан прошёл, а разбан нет даже со второй попытки,
        пользователь остаётся забаненным и возвращается KickOutcome.BANNED.
        """
        try:
            await self.bot.ban_chat_member(chat_id=chat_id, user_id=user_id)
        except TelegramError as exc:
            log.error(f"Не удалось кикнуть {pseudonymize_id(user_id)} из {pseudonymize_chat_id(chat_id)}: {exc}")
            return KickOutcome.FAILED

        for attempt in range(1, KICK_UNBAN_ATTEMPTS + 1):
            try:
                await self.bot.unban_chat_member(chat_id=chat_id, user_id=user_id)
                return KickOutcome.KICKED
            except TelegramError as exc:
                log.warning(
                    f"Разбан после кика {pseudonymize_id(user_id)} в {pseudonymize_chat_id(chat_id)} "
                    f"не удался (попытка {attempt}): {exc}"
                )
        log.error(f"{pseudonymize_id(user_id)} остался забаненным в {pseudonymize_chat_id(chat_id)} после кика")
        return KickOutcome.BANNED

    async def promote(self, chat_id: int, user_id: int) -> bool:
        try:
            await self.bot.promote_chat_member(
                chat_id=chat_id,
                user_id=user_id,
                can_change_info=True,
                can_delete_messages=True,
                can_invite_users=True,
                can_restrict_members=True,
                can_pin_messages=True,
            )
            return True
        except TelegramError as exc:
            log.error(f"Не удалось повысить {pseudonymize_id(user_id)} в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def demote(self, chat_id: int, user_id: int) -> bool:
        try:
            await self.bot.promote_chat_member(
                chat_id=chat_id,
                user_id=user_id,
                can_change_info=False,
                can_delete_messages=False,
                can_invite_users=False,
                can_restrict_members=False,
                can_pin_messages=False,
            )
            return True
        except TelegramError as exc:
            log.error(f"Не удалось понизить {pseudonymize_id(user_id)} в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def pin(self, chat_id: int, message_id: int) -> bool:
        try:
            await self.bot.pin_chat_message(chat_id=chat_id, message_id=message_id)
            return True
        except TelegramError as exc:
            log.error(f"Не удалось закрепить сообщение {message_id} в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def unpin(self, chat_id: int, message_id: Optional[int] = None) -> bool:
        """Открепить сообщение; без message_id открепляется последнее закреплённое."""
        try:
            await self.bot.unpin_chat_message(chat_id=chat_id, message_id=message_id)
            return True
        except TelegramError as exc:
            log.error(f"Не удалось открепить сообщение в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def delete_range(self, chat_id: int, first_id: int, last_id: int) -> int:
        """Удалить сообщения с first_id по last_id включительно. Возвращает число удалённых."""
        deleted = 0
        for message_id in range(first_id, last_id + 1):
            try:
                await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
                deleted += 1
            except TelegramError as exc:
                log.debug(f"Сообщение {message_id} не удалено: {exc}")
        return deleted

    async def set_permissions(self, chat_id: int, permissions: ChatPermissions) -> bool:
        try:
            await self.bot.set_chat_permissions(chat_id=chat_id, permissions=permissions)
            return True
        except TelegramError as exc:
            log.error(f"Не удалось изменить права участников в {pseudonymize_chat_id(chat_id)}: {exc}")
            return False

    async def set_title(self, chat_id: int, title: str) -> bool:
        try:
            await self.bot.set_chat_title(chat_id=chat_id, title=title)
            return True
        except TelegramError as exc:
            log.error(f"Не удалось изменить название {pseudonymize_chat_id(chat_id)}: {exc}")
            return False
