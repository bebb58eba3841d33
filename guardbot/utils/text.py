# Copyright (c) 2025 sprowii
import html
from typing import List, Optional


def escape_html(text: str) -> str:
    return html.escape(text, quote=True)


def display_name(username: Optional[str], first_name: Optional[str], last_name: Optional[str] = None) -> str:
    """@username, а если его нет, то имя и фамилия."""
    if username:
        return f"@{username}"
    return " ".join(part for part in (first_name, last_name) if part) or "Участник"


def user_display_name(user) -> str:
    return display_name(user.username, user.first_name, user.last_name)


def mention_html(user_id: int, name: str) -> str:
    return f'<a href="tg://user?id={user_id}">{escape_html(name)}</a>'


def user_mention(user) -> str:
    name = " ".join(part for part in (user.first_name, user.last_name) if part) or "Участник"
    return mention_html(user.id, name)


def split_long_message(text: str, max_length: int = 4096) -> List[str]:
    if len(text) <= max_length:
        return [text]
    parts, current = [], ""
    for line in text.split("\n"):
        if len(current) + len(line) + 1 <= max_length:
            current += line + "\n"
        else:
            if current:
                parts.append(current.strip())
            current = line + "\n"
    if current:
        parts.append(current.strip())
    return parts
