# Copyright (c) 2025 sprowii
"""Хранилище модерации в Redis.

Ключи:
- groups - множество ID известных групп
- group:{chat_id} - сведения о группе
- group_settings:{chat_id} - настройки модерации группы
- stats:{chat_id} - hash со счётчиками статистики
- warnings:{chat_id}:{user_id} - список предупреждений (новые в начале)
- activity:{chat_id} - журнал действий группы (новые в начале)
- activity:recent - общий журнал по всем группам
- username:{username} - последний известный user_id для @username
"""
import asyncio
import json
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import redis

from guardbot.config import (
    GROUP_KEY_PREFIX,
    GROUPS_INDEX_KEY,
    LOGS_KEY_PREFIX,
    MAX_LOG_ENTRIES,
    RECENT_LOGS_KEY,
    REDIS_URL,
    SETTINGS_KEY_PREFIX,
    STATS_KEY_PREFIX,
    USERNAME_KEY_PREFIX,
    WARNINGS_KEY_PREFIX,
)
from guardbot.logging_config import log
from guardbot.moderation.models import (
    ActivityLogEntry,
    Group,
    GroupConfig,
    ModerationStats,
    Stat,
    Warning,
)


def create_redis_client() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


class ModerationStorage:
    """Доступ к данным модерации.

    Все методы синхронные; у каждого есть *_async версия, которая
    выполняет его в executor, чтобы не блокировать event loop.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # ========================================================================
    # GROUPS
    # ========================================================================

    def upsert_group(self, chat_id: int, title: str, member_count: Optional[int] = None) -> Group:
        """Создать группу или обновить её название.

        created_at сохраняется от первой записи.
        """
        group = self.get_group(chat_id)
        if group is None:
            group = Group(chat_id=chat_id, title=title, member_count=member_count or 0)
        else:
            group.title = title
            group.is_active = True
            if member_count is not None:
                group.member_count = member_count

        with self.client.pipeline() as pipe:
            pipe.set(f"{GROUP_KEY_PREFIX}{chat_id}", json.dumps(asdict(group), ensure_ascii=False))
            pipe.sadd(GROUPS_INDEX_KEY, chat_id)
            pipe.execute()
        return group

    async def upsert_group_async(self, chat_id: int, title: str, member_count: Optional[int] = None) -> Group:
        return await self._run(self.upsert_group, chat_id, title, member_count)

    def get_group(self, chat_id: int) -> Optional[Group]:
        raw_value = self.client.get(f"{GROUP_KEY_PREFIX}{chat_id}")
        if not raw_value:
            return None
        try:
            return Group(**json.loads(raw_value))
        except (json.JSONDecodeError, TypeError) as exc:
            log.warning(f"Некорректные данные группы {chat_id}: {exc}")
            return None

    def list_groups(self) -> List[Group]:
        """Все известные группы, новые первыми."""
        groups = []
        for raw_id in self.client.smembers(GROUPS_INDEX_KEY):
            group = self.get_group(int(raw_id))
            if group is not None:
                groups.append(group)
        groups.sort(key=lambda g: g.created_at, reverse=True)
        return groups

    def ensure_group(self, chat_id: int, title: str) -> GroupConfig:
        """Зарегистрировать группу и вернуть её настройки (создав по умолчанию)."""
        self.upsert_group(chat_id, title)
        settings = self.get_settings(chat_id)
        if settings is None:
            settings = GroupConfig(chat_id=chat_id)
            self.upsert_settings(settings)
        return settings

    async def ensure_group_async(self, chat_id: int, title: str) -> GroupConfig:
        return await self._run(self.ensure_group, chat_id, title)

    # ========================================================================
    # SETTINGS
    # ========================================================================

    def get_settings(self, chat_id: int) -> Optional[GroupConfig]:
        """Загрузить настройки. None, если группа ещё не настроена."""
        raw_value = self.client.get(f"{SETTINGS_KEY_PREFIX}{chat_id}")
        if not raw_value:
            return None
        try:
            return GroupConfig.from_dict(chat_id, json.loads(raw_value))
        except (json.JSONDecodeError, TypeError, ValueError) as exc:
            log.warning(f"Некорректные настройки группы {chat_id}, используются значения по умолчанию: {exc}")
            return GroupConfig(chat_id=chat_id)

    async def get_settings_async(self, chat_id: int) -> Optional[GroupConfig]:
        return await self._run(self.get_settings, chat_id)

    def upsert_settings(self, settings: GroupConfig) -> GroupConfig:
        key = f"{SETTINGS_KEY_PREFIX}{settings.chat_id}"
        self.client.set(key, json.dumps(settings.to_dict(), ensure_ascii=False))
        return settings

    async def upsert_settings_async(self, settings: GroupConfig) -> GroupConfig:
        return await self._run(self.upsert_settings, settings)

    def update_settings(self, chat_id: int, patch: Dict[str, Any]) -> GroupConfig:
        """Частичное обновление настроек.

        Raises ValueError, если патч содержит неизвестные поля или
        неверные значения. Сохранённые настройки при этом не меняются.
        """
        current = self.get_settings(chat_id) or GroupConfig(chat_id=chat_id)
        updated = current.apply_patch(patch)
        return self.upsert_settings(updated)

    async def update_settings_async(self, chat_id: int, patch: Dict[str, Any]) -> GroupConfig:
        return await self._run(self.update_settings, chat_id, patch)

    # ========================================================================
    # STATS
    # ========================================================================

    def increment_stat(self, chat_id: int, stat: Stat, amount: int = 1) -> int:
        # HINCRBY атомарен, параллельные обработчики не теряют инкременты
        return self.client.hincrby(f"{STATS_KEY_PREFIX}{chat_id}", Stat(stat).value, amount)

    async def increment_stat_async(self, chat_id: int, stat: Stat, amount: int = 1) -> int:
        return await self._run(self.increment_stat, chat_id, stat, amount)

    def get_stats(self, chat_id: int) -> ModerationStats:
        """Счётчики группы. Для неизвестной группы все нули."""
        raw = self.client.hgetall(f"{STATS_KEY_PREFIX}{chat_id}")
        return ModerationStats.from_mapping(chat_id, raw or {})

    async def get_stats_async(self, chat_id: int) -> ModerationStats:
        return await self._run(self.get_stats, chat_id)

    def list_all_stats(self) -> List[ModerationStats]:
        return [self.get_stats(int(raw_id)) for raw_id in self.client.smembers(GROUPS_INDEX_KEY)]

    # ========================================================================
    # WARNINGS
    # ========================================================================

    def _warnings_key(self, chat_id: int, user_id: int) -> str:
        return f"{WARNINGS_KEY_PREFIX}{chat_id}:{user_id}"

    def add_warning(self, warning: Warning) -> None:
        key = self._warnings_key(warning.chat_id, warning.user_id)
        self.client.lpush(key, json.dumps(asdict(warning), ensure_ascii=False))

    async def add_warning_async(self, warning: Warning) -> None:
        await self._run(self.add_warning, warning)

    def count_warnings(self, chat_id: int, user_id: int) -> int:
        return self.client.llen(self._warnings_key(chat_id, user_id))

    async def count_warnings_async(self, chat_id: int, user_id: int) -> int:
        return await self._run(self.count_warnings, chat_id, user_id)

    def list_warnings(self, chat_id: int, user_id: int) -> List[Warning]:
        """Предупреждения пользователя, новые первыми."""
        warnings = []
        for raw in self.client.lrange(self._warnings_key(chat_id, user_id), 0, -1):
            try:
                warnings.append(Warning(**json.loads(raw)))
            except (json.JSONDecodeError, TypeError) as exc:
                log.warning(f"Некорректные данные предупреждения: {exc}")
        return warnings

    async def list_warnings_async(self, chat_id: int, user_id: int) -> List[Warning]:
        return await self._run(self.list_warnings, chat_id, user_id)

    def clear_warnings(self, chat_id: int, user_id: int) -> int:
        """Очистить предупреждения. Возвращает количество удалённых."""
        key = self._warnings_key(chat_id, user_id)
        with self.client.pipeline() as pipe:
            pipe.llen(key)
            pipe.delete(key)
            count, _ = pipe.execute()
        return count

    async def clear_warnings_async(self, chat_id: int, user_id: int) -> int:
        return await self._run(self.clear_warnings, chat_id, user_id)

    # ========================================================================
    # ACTIVITY LOG
    # ========================================================================

    def add_log(self, entry: ActivityLogEntry) -> None:
        key = f"{LOGS_KEY_PREFIX}{entry.chat_id}"
        payload = json.dumps(asdict(entry), ensure_ascii=False)
        with self.client.pipeline() as pipe:
            pipe.lpush(key, payload)
            pipe.ltrim(key, 0, MAX_LOG_ENTRIES - 1)
            pipe.lpush(RECENT_LOGS_KEY, payload)
            pipe.ltrim(RECENT_LOGS_KEY, 0, MAX_LOG_ENTRIES - 1)
            pipe.execute()

    async def add_log_async(self, entry: ActivityLogEntry) -> None:
        await self._run(self.add_log, entry)

    def _load_logs(self, key: str, limit: int) -> List[ActivityLogEntry]:
        if limit <= 0:
            return []
        entries = []
        for raw in self.client.lrange(key, 0, limit - 1):
            try:
                entries.append(ActivityLogEntry(**json.loads(raw)))
            except (json.JSONDecodeError, TypeError) as exc:
                log.warning(f"Некорректная запись журнала: {exc}")
        return entries

    def list_logs(self, chat_id: int, limit: int = 50) -> List[ActivityLogEntry]:
        """Журнал группы, новые записи первыми."""
        return self._load_logs(f"{LOGS_KEY_PREFIX}{chat_id}", limit)

    async def list_logs_async(self, chat_id: int, limit: int = 50) -> List[ActivityLogEntry]:
        return await self._run(self.list_logs, chat_id, limit)

    def list_recent_logs(self, limit: int = 20) -> List[ActivityLogEntry]:
        return self._load_logs(RECENT_LOGS_KEY, limit)

    # ========================================================================
    # USERNAMES
    # ========================================================================

    def remember_user(self, user_id: int, username: Optional[str], display_name: str) -> None:
        """Запомнить @username, чтобы команды могли принимать его как цель."""
        if not username:
            return
        data = {"user_id": user_id, "display_name": display_name}
        self.client.set(f"{USERNAME_KEY_PREFIX}{username.lower()}", json.dumps(data, ensure_ascii=False))

    async def remember_user_async(self, user_id: int, username: Optional[str], display_name: str) -> None:
        await self._run(self.remember_user, user_id, username, display_name)

    def lookup_username(self, username: str) -> Optional[Dict[str, Any]]:
        """Найти пользователя по @username. Возвращает {user_id, display_name} или None."""
        raw_value = self.client.get(f"{USERNAME_KEY_PREFIX}{username.lstrip('@').lower()}")
        if not raw_value:
            return None
        try:
            data = json.loads(raw_value)
            return {"user_id": int(data["user_id"]), "display_name": data.get("display_name", username)}
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            log.warning(f"Некорректная запись username: {exc}")
            return None

    async def lookup_username_async(self, username: str) -> Optional[Dict[str, Any]]:
        return await self._run(self.lookup_username, username)


_storage: Optional[ModerationStorage] = None


def get_storage() -> ModerationStorage:
    """Общее хранилище процесса. Клиент Redis создаётся при первом обращении."""
    global _storage
    if _storage is None:
        _storage = ModerationStorage(create_redis_client())
    return _storage
