# Copyright (c) 2025 sprowii
"""Предупреждения пользователей.

Каждый /warn создаёт новую запись. Количество считается по хранилищу
при каждом запросе, поэтому clear() сразу обнуляет счётчик.
"""
from typing import List

from guardbot.moderation.models import Warning
from guardbot.moderation.storage import ModerationStorage
from guardbot.utils.text import escape_html


class WarningLedger:
    def __init__(self, storage: ModerationStorage):
        self.storage = storage

    async def add(self, chat_id: int, user_id: int, user_name: str, reason: str, warned_by: str) -> Warning:
        warning = Warning.create(chat_id, user_id, user_name, reason, warned_by)
        await self.storage.add_warning_async(warning)
        return warning

    async def count(self, chat_id: int, user_id: int) -> int:
        return await self.storage.count_warnings_async(chat_id, user_id)

    async def list(self, chat_id: int, user_id: int) -> List[Warning]:
        """Предупреждения пользователя, новые первыми."""
        return await self.storage.list_warnings_async(chat_id, user_id)

    async def clear(self, chat_id: int, user_id: int) -> int:
        return await self.storage.clear_warnings_async(chat_id, user_id)


def format_warnings(user_name: str, warnings: List[Warning], warn_limit: int) -> str:
    """Текст ответа на /warnings (HTML)."""
    if not warnings:
        return f"✅ У {escape_html(user_name)} нет предупреждений."

    lines = [f"⚠️ Предупреждения {escape_html(user_name)} ({len(warnings)}/{warn_limit}):"]
    for i, warning in enumerate(warnings, 1):
        lines.append(f"{i}. {escape_html(warning.reason)} - {escape_html(warning.warned_by)}")
    return "\n".join(lines)
