# Copyright (c) 2025 sprowii
"""Журнал действий модерации и счётчики статистики.

Запись в журнал и инкремент счётчика выполняются best-effort: ошибка
хранилища пишется в application log и не прерывает обработку сообщения.
"""
from typing import Optional

from guardbot.logging_config import log
from guardbot.moderation.models import ActivityLogEntry, LogAction, Stat
from guardbot.moderation.storage import ModerationStorage
from guardbot.security.data_protection import pseudonymize_chat_id, safe_log_action


class ActivityLogger:
    """Пишет действия модерации в Redis и в application log."""

    def __init__(self, storage: ModerationStorage):
        self.storage = storage

    async def log_action(
        self,
        chat_id: int,
        action: LogAction,
        target_user: str,
        performed_by: str = "bot",
        details: Optional[str] = None
    ) -> Optional[ActivityLogEntry]:
        """Записать действие.

        Args:
            chat_id: ID группы
            action: Тип действия
            target_user: Отображаемое имя цели
            performed_by: Кто выполнил: имя админа, "bot" или "AI Moderator"
            details: Свободный текст (причина, параметры наказания)

        Returns:
            Сохранённая запись или None, если хранилище недоступно
        """
        entry = ActivityLogEntry.create(chat_id, action, target_user, performed_by, details)
        try:
            await self.storage.add_log_async(entry)
        except Exception as exc:
            log.error(f"Не удалось сохранить запись журнала {entry.action}: {exc}")
            return None

        log.info(safe_log_action(entry.action, chat_id, target_user, performed_by, details))
        return entry

    async def increment(self, chat_id: int, stat: Stat, amount: int = 1) -> None:
        try:
            await self.storage.increment_stat_async(chat_id, stat, amount)
        except Exception as exc:
            log.error(f"Не удалось обновить счётчик {Stat(stat).value} для {pseudonymize_chat_id(chat_id)}: {exc}")
