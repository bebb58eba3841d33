# Copyright (c) 2025 sprowii
"""AI-модератор: классификация текста сообщения через Gemini."""
import asyncio
import json
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from google import genai
from google.genai import types

from guardbot.config import API_KEYS, CLASSIFIER_MAX_OUTPUT_TOKENS, CLASSIFIER_MODELS
from guardbot.logging_config import log


MODERATOR_PROMPT = (
    "Ты модератор группового чата. Проанализируй сообщение и определи, нарушает ли оно правила: "
    "оскорбления, угрозы, разжигание ненависти, откровенный контент, спам, мошенничество. "
    'Ответь строго JSON: {"violation": true|false, "reason": "краткая причина на русском"}. '
    "Если нарушения нет, reason пустая строка."
)


class ClassifierError(Exception):
    """Классификатор не смог вернуть вердикт."""


@dataclass
class ClassifierVerdict:
    violation: bool
    reason: str = ""


def parse_verdict(raw_text: Optional[str]) -> ClassifierVerdict:
    """Разобрать JSON-ответ модели.

    Raises:
        ClassifierError: если ответ пустой или не похож на вердикт
    """
    if not raw_text:
        raise ClassifierError("Пустой ответ классификатора")
    text = raw_text.strip()
    # Иногда модель всё равно оборачивает JSON в ```json
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ClassifierError(f"Некорректный JSON от классификатора: {exc}")
    if not isinstance(data, dict) or "violation" not in data:
        raise ClassifierError("В ответе классификатора нет поля violation")
    return ClassifierVerdict(violation=bool(data["violation"]), reason=str(data.get("reason") or ""))


class ContentClassifier:
    """Вызов Gemini с ротацией ключей и моделей.

    Синхронный SDK вызывается в executor. Без ключей classify() падает,
    а фильтр трактует это как "нарушения нет".
    """

    def __init__(
        self,
        api_keys: Optional[List[str]] = None,
        models: Optional[List[str]] = None,
        client_factory: Optional[Callable[[str], genai.Client]] = None
    ):
        self.api_keys = list(API_KEYS if api_keys is None else api_keys)
        self.models = list(CLASSIFIER_MODELS if models is None else models)
        self._client_factory = client_factory or (lambda key: genai.Client(api_key=key))
        self._clients: Dict[int, genai.Client] = {}
        self._current_key_idx = 0

    @property
    def enabled(self) -> bool:
        return bool(self.api_keys)

    def _get_client(self, idx: int) -> genai.Client:
        client = self._clients.get(idx)
        if client is None:
            client = self._client_factory(self.api_keys[idx])
            self._clients[idx] = client
        return client

    def _request_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=MODERATOR_PROMPT,
            response_mime_type="application/json",
            max_output_tokens=CLASSIFIER_MAX_OUTPUT_TOKENS,
            temperature=0.0,
        )

    def classify_sync(self, text: str) -> ClassifierVerdict:
        if not self.api_keys:
            raise ClassifierError("Не заданы API ключи для Gemini")

        for model_name in self.models:
            for key_attempt in range(len(self.api_keys)):
                key_idx = (self._current_key_idx + key_attempt) % len(self.api_keys)
                try:
                    response = self._get_client(key_idx).models.generate_content(
                        model=model_name,
                        contents=text,
                        config=self._request_config(),
                    )
                except Exception as exc:
                    error_text = str(exc).lower()
                    if "rate limit" in error_text or "quota" in error_text:
                        log.info(f"Rate limit on key {key_idx + 1}, model {model_name}. Trying next...")
                    else:
                        log.warning(f"Classifier request failed: key {key_idx + 1}, model {model_name}: {exc}")
                    continue
                self._current_key_idx = key_idx
                return parse_verdict(response.text)
        raise ClassifierError("All API keys/models failed")

    async def classify(self, text: str) -> ClassifierVerdict:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.classify_sync, text)
