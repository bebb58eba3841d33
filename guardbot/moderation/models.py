# Copyright (c) 2025 sprowii
"""Модели данных для системы модерации."""
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional
import time
import uuid


DEFAULT_WELCOME_MESSAGE = "Добро пожаловать, {user}, в {group}! Пожалуйста, соблюдайте правила."


class WarnAction(str, Enum):
    """Наказание при достижении лимита предупреждений."""
    MUTE = "mute"
    KICK = "kick"
    BAN = "ban"


class SettingToggle(str, Enum):
    """Переключаемые функции группы."""
    WELCOME = "welcome"
    FORCE_JOIN = "force_join"
    ANTI_SPAM = "anti_spam"
    ANTI_LINK = "anti_link"
    WORD_FILTER = "word_filter"
    ANTI_FLOOD = "anti_flood"
    MUTE_NEW_MEMBERS = "mute_new_members"
    AI_MODERATOR = "ai_moderator"


class Stat(str, Enum):
    """Счётчики статистики группы."""
    MESSAGES_PROCESSED = "messages_processed"
    MESSAGES_DELETED = "messages_deleted"
    USERS_WARNED = "users_warned"
    USERS_BANNED = "users_banned"
    USERS_KICKED = "users_kicked"
    USERS_MUTED = "users_muted"
    SPAM_BLOCKED = "spam_blocked"
    FORCE_JOIN_BLOCKED = "force_join_blocked"


class LogAction(str, Enum):
    """Типы записей журнала действий."""
    WARN = "warn"
    BAN = "ban"
    KICK = "kick"
    MUTE = "mute"
    UNWARN = "unwarn"
    UNBAN = "unban"
    UNMUTE = "unmute"
    FORCE_JOIN = "force_join"
    SPAM = "spam"
    ANTI_LINK = "anti_link"
    WORD_FILTER = "word_filter"
    FLOOD = "flood"
    AI_MODERATOR = "ai_moderator"
    PROMOTE = "promote"
    DEMOTE = "demote"


@dataclass
class Group:
    """Группа, в которой работает бот."""
    chat_id: int
    title: str
    member_count: int = 0
    is_active: bool = True
    created_at: float = field(default_factory=time.time)


@dataclass
class GroupConfig:
    """Настройки модерации для конкретной группы.

    Создаются лениво при первом сообщении или команде в группе.
    """
    chat_id: int

    # Welcome
    welcome_enabled: bool = True
    welcome_message: str = DEFAULT_WELCOME_MESSAGE

    # Обязательная подписка на каналы
    force_join_enabled: bool = False
    force_join_channels: List[str] = field(default_factory=list)

    # Антиспам: окно фиксировано, 10 секунд
    anti_spam_enabled: bool = True
    anti_spam_max_messages: int = 5

    anti_link_enabled: bool = False

    word_filter_enabled: bool = False
    banned_words: List[str] = field(default_factory=list)

    # Антифлуд: окно настраивается
    anti_flood_enabled: bool = True
    anti_flood_messages: int = 10
    anti_flood_seconds: int = 60

    # Предупреждения
    warn_limit: int = 3
    warn_action: WarnAction = WarnAction.MUTE

    # Новые участники
    mute_new_members: bool = False
    mute_new_members_duration: int = 300

    ai_moderator_enabled: bool = False

    def validate(self) -> List[str]:
        """Валидация настроек. Возвращает список ошибок."""
        errors = []

        if not (1 <= self.warn_limit <= 20):
            errors.append(f"warn_limit должен быть от 1 до 20, получено: {self.warn_limit}")
        if self.warn_action not in tuple(WarnAction):
            errors.append(f"warn_action должен быть mute/kick/ban, получено: {self.warn_action}")
        if not (1 <= self.anti_spam_max_messages <= 50):
            errors.append(f"anti_spam_max_messages должен быть от 1 до 50, получено: {self.anti_spam_max_messages}")
        if not (1 <= self.anti_flood_messages <= 100):
            errors.append(f"anti_flood_messages должен быть от 1 до 100, получено: {self.anti_flood_messages}")
        if not (1 <= self.anti_flood_seconds <= 3600):
            errors.append(f"anti_flood_seconds должен быть от 1 до 3600, получено: {self.anti_flood_seconds}")
        if not (30 <= self.mute_new_members_duration <= 86400):
            errors.append(
                f"mute_new_members_duration должен быть от 30 до 86400, получено: {self.mute_new_members_duration}"
            )

        return errors

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["warn_action"] = WarnAction(self.warn_action).value
        return data

    @classmethod
    def from_dict(cls, chat_id: int, data: Dict[str, Any]) -> "GroupConfig":
        """Собрать настройки из сохранённого словаря.

        Неизвестные ключи (от старых версий) отбрасываются.
        """
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        values["chat_id"] = chat_id
        if "warn_action" in values:
            values["warn_action"] = WarnAction(values["warn_action"])
        return cls(**values)

    def apply_patch(self, patch: Dict[str, Any]) -> "GroupConfig":
        """Применить частичное обновление. Остальные поля не меняются.

        Raises ValueError при неизвестных полях, неверных типах или
        если результат не проходит validate().
        """
        changes: Dict[str, Any] = {}
        for key, value in patch.items():
            expected = _PATCHABLE_FIELDS.get(key)
            if expected is None:
                raise ValueError(f"Неизвестное поле настроек: {key}")
            if expected is WarnAction:
                try:
                    value = WarnAction(value)
                except ValueError:
                    raise ValueError(f"warn_action должен быть mute/kick/ban, получено: {value}")
            elif expected is list:
                if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                    raise ValueError(f"{key} должен быть списком строк")
                value = list(value)
            elif expected is int:
                # bool является подклассом int, но здесь он не подходит
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValueError(f"{key} должен быть целым числом")
            elif not isinstance(value, expected):
                raise ValueError(f"{key} должен иметь тип {expected.__name__}")
            changes[key] = value

        updated = replace(self, **changes)
        errors = updated.validate()
        if errors:
            raise ValueError(f"Ошибки валидации: {'; '.join(errors)}")
        return updated

    def toggle(self, toggle: SettingToggle) -> bool:
        """Переключить функцию. Возвращает новое значение."""
        if toggle is SettingToggle.WELCOME:
            self.welcome_enabled = not self.welcome_enabled
            return self.welcome_enabled
        if toggle is SettingToggle.FORCE_JOIN:
            self.force_join_enabled = not self.force_join_enabled
            return self.force_join_enabled
        if toggle is SettingToggle.ANTI_SPAM:
            self.anti_spam_enabled = not self.anti_spam_enabled
            return self.anti_spam_enabled
        if toggle is SettingToggle.ANTI_LINK:
            self.anti_link_enabled = not self.anti_link_enabled
            return self.anti_link_enabled
        if toggle is SettingToggle.WORD_FILTER:
            self.word_filter_enabled = not self.word_filter_enabled
            return self.word_filter_enabled
        if toggle is SettingToggle.ANTI_FLOOD:
            self.anti_flood_enabled = not self.anti_flood_enabled
            return self.anti_flood_enabled
        if toggle is SettingToggle.MUTE_NEW_MEMBERS:
            self.mute_new_members = not self.mute_new_members
            return self.mute_new_members
        if toggle is SettingToggle.AI_MODERATOR:
            self.ai_moderator_enabled = not self.ai_moderator_enabled
            return self.ai_moderator_enabled
        raise ValueError(f"Неизвестный переключатель: {toggle}")


_PATCHABLE_FIELDS: Dict[str, type] = {
    "welcome_enabled": bool,
    "welcome_message": str,
    "force_join_enabled": bool,
    "force_join_channels": list,
    "anti_spam_enabled": bool,
    "anti_spam_max_messages": int,
    "anti_link_enabled": bool,
    "word_filter_enabled": bool,
    "banned_words": list,
    "anti_flood_enabled": bool,
    "anti_flood_messages": int,
    "anti_flood_seconds": int,
    "warn_limit": int,
    "warn_action": WarnAction,
    "mute_new_members": bool,
    "mute_new_members_duration": int,
    "ai_moderator_enabled": bool,
}


@dataclass
class Warning:
    """Предупреждение пользователю."""
    id: str
    chat_id: int
    user_id: int
    user_name: str
    reason: str
    warned_by: str
    created_at: float

    @classmethod
    def create(cls, chat_id: int, user_id: int, user_name: str, reason: str, warned_by: str) -> "Warning":
        """Создать новое предупреждение с автоматическим ID и timestamp."""
        return cls(
            id=str(uuid.uuid4()),
            chat_id=chat_id,
            user_id=user_id,
            user_name=user_name,
            reason=reason,
            warned_by=warned_by,
            created_at=time.time()
        )


@dataclass
class ModerationStats:
    """Счётчики модерации группы. Только растут."""
    chat_id: int
    messages_processed: int = 0
    messages_deleted: int = 0
    users_warned: int = 0
    users_banned: int = 0
    users_kicked: int = 0
    users_muted: int = 0
    spam_blocked: int = 0
    force_join_blocked: int = 0

    @classmethod
    def from_mapping(cls, chat_id: int, raw: Dict[str, Any]) -> "ModerationStats":
        values = {}
        for stat in Stat:
            try:
                values[stat.value] = int(raw.get(stat.value, 0))
            except (TypeError, ValueError):
                values[stat.value] = 0
        return cls(chat_id=chat_id, **values)

    def get(self, stat: Stat) -> int:
        return getattr(self, stat.value)


@dataclass
class ActivityLogEntry:
    """Запись журнала действий модерации."""
    id: str
    chat_id: int
    action: str
    target_user: str
    performed_by: str
    details: Optional[str]
    created_at: float

    @classmethod
    def create(
        cls,
        chat_id: int,
        action: LogAction,
        target_user: str,
        performed_by: str,
        details: Optional[str] = None
    ) -> "ActivityLogEntry":
        """Создать запись с автоматическим ID и timestamp."""
        return cls(
            id=str(uuid.uuid4()),
            chat_id=chat_id,
            action=LogAction(action).value,
            target_user=target_user,
            performed_by=performed_by,
            details=details,
            created_at=time.time()
        )
