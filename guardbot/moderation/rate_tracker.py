# Copyright (c) 2025 sprowii
"""Счётчик событий в скользящем окне для антиспама и антифлуда.

Хранится только в памяти процесса: после рестарта история теряется,
а применённые наказания уже сохранены в статистике и журнале.
"""
import time
from collections import deque
from typing import Callable, Deque, Dict, Hashable, Optional

from guardbot.logging_config import log


class RateTracker:
    """Временные метки событий по ключу (chat_id, user_id).

    record() не содержит await: в кооперативном event loop
    последовательность "обрезать, добавить, посчитать" выполняется
    целиком, без переключения на другой обработчик.
    """

    def __init__(self, window_sec: float, clock: Callable[[], float] = time.monotonic):
        self.window_sec = window_sec
        self._clock = clock
        self._events: Dict[Hashable, Deque[float]] = {}

    def _prune(self, events: Deque[float], now: float, window_sec: float) -> None:
        cutoff = now - window_sec
        while events and events[0] <= cutoff:
            events.popleft()

    def record(self, key: Hashable, now: Optional[float] = None, window_sec: Optional[float] = None) -> int:
        """Записать событие и вернуть число событий в окне, включая это.

        Args:
            key: Ключ трекера, обычно (chat_id, user_id)
            now: Текущее время; по умолчанию берётся из clock
            window_sec: Окно для этого вызова (антифлуд берёт его из настроек группы)

        Returns:
            Количество событий с t > now - window
        """
        if now is None:
            now = self._clock()
        window = self.window_sec if window_sec is None else window_sec

        events = self._events.get(key)
        if events is None:
            events = deque()
            self._events[key] = events

        self._prune(events, now, window)
        events.append(now)
        return len(events)

    def count(self, key: Hashable, now: Optional[float] = None, window_sec: Optional[float] = None) -> int:
        """Число событий в окне без записи нового. window_sec как в record()."""
        events = self._events.get(key)
        if not events:
            return 0
        if now is None:
            now = self._clock()
        cutoff = now - (self.window_sec if window_sec is None else window_sec)
        return sum(1 for t in events if t > cutoff)

    def reset(self, key: Hashable) -> None:
        """Сбросить историю ключа (после мута окно начинается заново)."""
        self._events.pop(key, None)

    def sweep(self, now: Optional[float] = None, window_sec: Optional[float] = None) -> int:
        """Удалить ключи, у которых все события вышли за окно.

        Returns:
            Количество удалённых ключей
        """
        if now is None:
            now = self._clock()
        cutoff = now - (self.window_sec if window_sec is None else window_sec)
        stale = [key for key, events in self._events.items() if not events or events[-1] <= cutoff]
        for key in stale:
            del self._events[key]
        if stale:
            log.debug(f"Очищено {len(stale)} устаревших ключей трекера")
        return len(stale)

    def __len__(self) -> int:
        return len(self._events)
