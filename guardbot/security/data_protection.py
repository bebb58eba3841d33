# Copyright (c) 2025 sprowii
"""Псевдонимизация идентификаторов в логах приложения.

В журнал действий (Redis) пишутся отображаемые имена, как их видят админы
в дашборде. В application logs реальные ID не попадают: вместо них
используются HMAC-псевдонимы.
"""
import hashlib
import hmac
import os
import re
import secrets
from typing import Optional

from guardbot.logging_config import log


# Соль для хэширования ID. Без неё псевдонимы меняются после рестарта.
_HASH_SALT = os.getenv("DATA_HASH_SALT")
if not _HASH_SALT:
    log.warning(
        "DATA_HASH_SALT не задан! Генерирую временную соль. "
        "Псевдонимы в логах будут меняться после каждого рестарта."
    )
    _HASH_SALT = secrets.token_hex(32)


def pseudonymize_id(user_id: int, context: str = "default") -> str:
    """Псевдонимизирует user_id через HMAC-SHA256.

    Args:
        user_id: Реальный Telegram user_id
        context: Контекст использования (для разных хэшей в разных местах)

    Returns:
        Псевдоним в формате "u_<hash[:16]>"
    """
    message = f"{context}:{user_id}".encode()
    h = hmac.new(_HASH_SALT.encode(), message, hashlib.sha256)
    return f"u_{h.hexdigest()[:16]}"


def pseudonymize_chat_id(chat_id: int) -> str:
    """Псевдонимизирует chat_id."""
    return pseudonymize_id(chat_id, context="chat")


def safe_log_action(
    action_type: str,
    chat_id: int,
    target: str,
    performed_by: Optional[str] = None,
    details: Optional[str] = None
) -> str:
    """Формирует безопасную строку для лога действия модерации."""
    chat = pseudonymize_chat_id(chat_id)
    # Отображаемые имена часто содержат @username
    safe_target = re.sub(r'@\w+', '@***', target)
    by = "bot" if performed_by in (None, "bot") else re.sub(r'@\w+', '@***', performed_by)

    safe_details = ""
    if details:
        safe_details = re.sub(r'@\w+', '@***', details)[:50]

    return f"[{action_type}] target={safe_target} chat={chat} by={by} details={safe_details}"
