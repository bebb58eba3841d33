# Copyright (c) 2025 sprowii
from telegram.ext import CallbackContext

from guardbot.logging_config import log
from guardbot.moderation.controller import get_moderation_controller
from guardbot.moderation.permissions import cleanup_expired_cache


async def sweep_trackers_job(context: CallbackContext):
    removed = get_moderation_controller(context.bot).sweep_trackers()
    if removed:
        log.info(f"Tracker sweep: removed {removed} idle keys")


async def admin_cache_cleanup_job(context: CallbackContext):
    cleanup_expired_cache()
