# Copyright (c) 2025 sprowii
"""Модуль модерации групп.

Компоненты:
- ModerationController: Центральная точка входа для событий и команд
- FilterChain: Фильтры сообщений (подписка, спам, ссылки, слова, флуд, AI)
- RateTracker: Скользящее окно для антиспама и антифлуда
- WarningLedger: Предупреждения пользователей
- EscalationPolicy: Наказание при достижении лимита предупреждений
- ModerationStorage: Хранилище в Redis
"""

from guardbot.moderation.controller import (
    CommandResult,
    CommandStatus,
    ModerationController,
    TargetUser,
    get_moderation_controller,
    init_moderation_controller,
)
from guardbot.moderation.escalation import EscalationPolicy, EscalationResult
from guardbot.moderation.filters import FilterChain, FilterOutcome, MessageContext
from guardbot.moderation.models import (
    ActivityLogEntry,
    Group,
    GroupConfig,
    LogAction,
    ModerationStats,
    SettingToggle,
    Stat,
    WarnAction,
    Warning,
)
from guardbot.moderation.rate_tracker import RateTracker
from guardbot.moderation.storage import ModerationStorage, get_storage
from guardbot.moderation.warns import WarningLedger

__all__ = [
    # Controller
    "ModerationController",
    "CommandResult",
    "CommandStatus",
    "TargetUser",
    "get_moderation_controller",
    "init_moderation_controller",
    # Filters
    "FilterChain",
    "FilterOutcome",
    "MessageContext",
    "RateTracker",
    # Warns
    "WarningLedger",
    "EscalationPolicy",
    "EscalationResult",
    # Models
    "ActivityLogEntry",
    "Group",
    "GroupConfig",
    "LogAction",
    "ModerationStats",
    "SettingToggle",
    "Stat",
    "WarnAction",
    "Warning",
    # Storage
    "ModerationStorage",
    "get_storage",
]
