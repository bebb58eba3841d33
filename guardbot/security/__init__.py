# Copyright (c) 2025 sprowii
"""Security-related helpers.

Модули:
- data_protection: Псевдонимизация ID для логов
"""
from guardbot.security.data_protection import (
    pseudonymize_id,
    pseudonymize_chat_id,
    safe_log_action,
)

__all__ = [
    "pseudonymize_id",
    "pseudonymize_chat_id",
    "safe_log_action",
]
