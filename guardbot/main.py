# Copyright (c) 2025 sprowii
import threading

from telegram.ext import Application

from guardbot import config
from guardbot.bot.handlers import register_handlers
from guardbot.bot.jobs import admin_cache_cleanup_job, sweep_trackers_job
from guardbot.logging_config import log
from guardbot.moderation.controller import get_moderation_controller, init_moderation_controller
from guardbot.web.server import flask_app


def _run_flask() -> None:
    flask_app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, use_reloader=False)


async def _post_init(application: Application) -> None:
    init_moderation_controller(application.bot)
    application.job_queue.run_repeating(
        sweep_trackers_job, interval=config.TRACKER_SWEEP_INTERVAL, first=config.TRACKER_SWEEP_INTERVAL
    )
    application.job_queue.run_repeating(
        admin_cache_cleanup_job, interval=config.ADMIN_CACHE_CLEANUP_INTERVAL, first=config.ADMIN_CACHE_CLEANUP_INTERVAL
    )


async def _post_shutdown(application: Application) -> None:
    # Отложенные удаления уведомлений после остановки уже не нужны
    await get_moderation_controller(application.bot).shutdown()


def main() -> None:
    if not config.TG_TOKEN:
        raise RuntimeError("Переменная окружения TG_TOKEN должна быть установлена")

    threading.Thread(target=_run_flask, daemon=True).start()
    log.info(f"Dashboard API listening on {config.FLASK_HOST}:{config.FLASK_PORT}")

    application = (
        Application.builder()
        .token(config.TG_TOKEN)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )
    register_handlers(application)

    log.info("Bot started")
    application.run_polling(allowed_updates=["message", "callback_query"])


if __name__ == "__main__":
    main()
