# Copyright (c) 2025 sprowii
import logging


def configure_logging() -> logging.Logger:
    logging.basicConfig(
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        level=logging.INFO,
    )
    # httpx пишет каждый запрос к Bot API на INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("guardbot")


log = configure_logging()
