# Copyright (c) 2025 sprowii
import secrets
from dataclasses import asdict
from typing import Optional

from flask import Flask, abort, jsonify, request

from guardbot import config
from guardbot.logging_config import log
from guardbot.moderation.models import LogAction, Stat
from guardbot.moderation.storage import ModerationStorage, get_storage

flask_app = Flask(__name__)

_storage: Optional[ModerationStorage] = None


def init_web_storage(storage: ModerationStorage) -> None:
    global _storage
    _storage = storage


def _get_storage() -> ModerationStorage:
    return _storage or get_storage()


def _limit_arg(default: int) -> int:
    limit = request.args.get("limit", default, type=int)
    return max(1, min(limit, config.MAX_LOG_ENTRIES))


@flask_app.before_request
def check_dashboard_key():
    if request.path == "/":
        return None
    if not config.DASHBOARD_KEY:
        return None
    provided_key = request.args.get("key") or request.headers.get("X-Dashboard-Key") or ""
    if not secrets.compare_digest(provided_key, config.DASHBOARD_KEY):
        abort(403)
    return None


@flask_app.route("/")
def home():
    return jsonify({"status": "ok"})


@flask_app.route("/api/groups")
def list_groups():
    return jsonify([asdict(group) for group in _get_storage().list_groups()])


@flask_app.route("/api/groups/<int(signed=True):chat_id>/settings", methods=["GET"])
def get_group_settings(chat_id: int):
    settings = _get_storage().get_settings(chat_id)
    if settings is None:
        abort(404)
    return jsonify(settings.to_dict())


@flask_app.route("/api/groups/<int(signed=True):chat_id>/settings", methods=["PATCH"])
def patch_group_settings(chat_id: int):
    """Частичное обновление. Для группы без настроек патч ложится на значения по умолчанию."""
    storage = _get_storage()
    patch = request.get_json(silent=True)
    if not isinstance(patch, dict):
        return jsonify({"error": "Ожидается JSON-объект с полями настроек"}), 400
    try:
        settings = storage.update_settings(chat_id, patch)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    log.info(f"Dashboard updated settings fields: {', '.join(sorted(patch))}")
    return jsonify(settings.to_dict())


@flask_app.route("/api/groups/<int(signed=True):chat_id>/stats")
def get_group_stats(chat_id: int):
    return jsonify(asdict(_get_storage().get_stats(chat_id)))


@flask_app.route("/api/groups/<int(signed=True):chat_id>/logs")
def get_group_logs(chat_id: int):
    entries = _get_storage().list_logs(chat_id, _limit_arg(50))
    return jsonify([asdict(entry) for entry in entries])


@flask_app.route("/api/groups/<int(signed=True):chat_id>/warnings")
def get_group_warnings(chat_id: int):
    """Выданные предупреждения берутся из журнала (последние 200 записей)."""
    entries = _get_storage().list_logs(chat_id, 200)
    return jsonify([asdict(entry) for entry in entries if entry.action == LogAction.WARN.value])


@flask_app.route("/api/logs/recent")
def get_recent_logs():
    entries = _get_storage().list_recent_logs(_limit_arg(20))
    return jsonify([asdict(entry) for entry in entries])


@flask_app.route("/api/stats/overview")
def get_stats_overview():
    storage = _get_storage()
    groups = storage.list_groups()
    totals = {stat.value: 0 for stat in Stat}
    for stats in storage.list_all_stats():
        for stat in Stat:
            totals[stat.value] += stats.get(stat)

    totals["total_groups"] = len(groups)
    totals["active_groups"] = sum(1 for group in groups if group.is_active)
    return jsonify(totals)
