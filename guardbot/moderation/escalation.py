# Copyright (c) 2025 sprowii
"""Автоматическое наказание при достижении лимита предупреждений.

Если count >= warn_limit, выполняется настроенное действие (мут на час,
кик или бан), после чего предупреждения очищаются. Если действие не
удалось (например, у бота нет прав), предупреждения остаются, и
следующий /warn повторит попытку.
"""
from dataclasses import dataclass
from typing import Optional

from guardbot.logging_config import log
from guardbot.moderation.actions import KickOutcome, PlatformActions
from guardbot.moderation.logger import ActivityLogger
from guardbot.moderation.models import GroupConfig, LogAction, Stat, WarnAction
from guardbot.moderation.warns import WarningLedger
from guardbot.security import pseudonymize_chat_id, pseudonymize_id
from guardbot.utils.text import escape_html


ESCALATION_MUTE_SEC = 3600


@dataclass
class EscalationResult:
    """Результат проверки эскалации.

    Attributes:
        triggered: Лимит достигнут и была попытка наказания
        succeeded: Наказание выполнено, предупреждения очищены
        action: Выполненное действие (если triggered)
    """
    triggered: bool
    succeeded: bool = False
    action: Optional[WarnAction] = None


_ACTION_STATS = {
    WarnAction.MUTE: (Stat.USERS_MUTED, LogAction.MUTE),
    WarnAction.KICK: (Stat.USERS_KICKED, LogAction.KICK),
    WarnAction.BAN: (Stat.USERS_BANNED, LogAction.BAN),
}

_ACTION_NOTICES = {
    WarnAction.MUTE: "🔇 {user} получил {limit} предупреждений и замьючен на 1 час.",
    WarnAction.KICK: "👢 {user} получил {limit} предупреждений и исключён из группы.",
    WarnAction.BAN: "🚫 {user} получил {limit} предупреждений и забанен.",
}


class EscalationPolicy:
    def __init__(self, actions: PlatformActions, activity: ActivityLogger, ledger: WarningLedger):
        self.actions = actions
        self.activity = activity
        self.ledger = ledger

    async def _execute(self, action: WarnAction, chat_id: int, user_id: int) -> Optional[WarnAction]:
        """Выполнить наказание. Возвращает фактически применённое действие или None."""
        if action is WarnAction.BAN:
            return action if await self.actions.ban(chat_id, user_id) else None
        if action is WarnAction.KICK:
            outcome = await self.actions.kick(chat_id, user_id)
            if outcome is KickOutcome.KICKED:
                return WarnAction.KICK
            # Разбан не прошёл: пользователь фактически забанен
            return WarnAction.BAN if outcome is KickOutcome.BANNED else None
        return action if await self.actions.mute(chat_id, user_id, ESCALATION_MUTE_SEC) else None

    async def apply(
        self,
        chat_id: int,
        user_id: int,
        user_name: str,
        settings: GroupConfig,
        count: Optional[int] = None
    ) -> EscalationResult:
        """Проверить лимит и при необходимости наказать.

        Args:
            chat_id: ID группы
            user_id: ID нарушителя
            user_name: Отображаемое имя для уведомления и журнала
            settings: Настройки группы (warn_limit, warn_action)
            count: Уже известное количество предупреждений

        Returns:
            EscalationResult
        """
        if count is None:
            count = await self.ledger.count(chat_id, user_id)
        if count < settings.warn_limit:
            return EscalationResult(triggered=False)

        action = WarnAction(settings.warn_action)
        applied = await self._execute(action, chat_id, user_id)
        if applied is None:
            log.warning(
                f"Эскалация {action.value} для {pseudonymize_id(user_id)} в {pseudonymize_chat_id(chat_id)} "
                f"не выполнена, предупреждения сохранены"
            )
            return EscalationResult(triggered=True, succeeded=False, action=action)

        stat, log_action = _ACTION_STATS[applied]
        await self.actions.send_notice(
            chat_id,
            _ACTION_NOTICES[applied].format(user=escape_html(user_name), limit=settings.warn_limit),
        )
        await self.activity.increment(chat_id, stat)
        details = f"Достигнут лимит предупреждений ({settings.warn_limit})"
        if applied is not action:
            details += ": кик не завершён, пользователь остался забаненным"
        await self.activity.log_action(chat_id, log_action, user_name, "bot", details)
        try:
            await self.ledger.clear(chat_id, user_id)
        except Exception as exc:
            log.error(f"Не удалось очистить предупреждения после эскалации: {exc}")
        return EscalationResult(triggered=True, succeeded=True, action=applied)
