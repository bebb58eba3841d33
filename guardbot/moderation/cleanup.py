# Copyright (c) 2025 sprowii
"""Отложенное удаление служебных уведомлений бота."""
import asyncio
from typing import Set

from telegram import Bot
from telegram.error import TelegramError

from guardbot.logging_config import log


class AutoDeleteScheduler:
    """Удаляет сообщения бота через заданную задержку.

    Удаление best-effort: если сообщение уже удалено или у бота нет прав,
    ошибка только пишется в лог. Незавершённые задачи можно отменить
    при остановке через shutdown().
    """

    def __init__(self, bot: Bot):
        self.bot = bot
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, chat_id: int, message_id: int, delay_sec: float) -> asyncio.Task:
        task = asyncio.create_task(self._delete_later(chat_id, message_id, delay_sec))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _delete_later(self, chat_id: int, message_id: int, delay_sec: float) -> None:
        try:
            await asyncio.sleep(delay_sec)
            await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
        except asyncio.CancelledError:
            pass
        except TelegramError as exc:
            log.debug(f"Автоудаление сообщения {message_id} не удалось: {exc}")
        except Exception as exc:
            # Задачу никто не ждёт, поэтому ошибка не должна остаться в ней
            log.debug(f"Автоудаление сообщения {message_id} упало: {exc!r}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Отменить все ожидающие удаления."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
