"""Shared helpers to interact with the Telegram Bot API safely."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from aiogram.exceptions import (
    TelegramAPIError,
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramRetryAfter,
)
from aiogram.types import CallbackQuery, Message

P = ParamSpec("P")
T = TypeVar("T")

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY = 30.0


async def safe_api_call(
    label: str,
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    retries: int = 3,
    **kwargs: P.kwargs,
) -> T | None:
    """Run a Telegram API call; flood waits are retried, other API errors give ``None``."""
    for attempt in range(1, retries + 1):
        try:
            return await func(*args, **kwargs)
        except TelegramRetryAfter as exc:
            if attempt == retries:
                logger.warning(
                    "Telegram call '%s' still rate limited after %s attempts.", label, attempt
                )
                return None
            delay = min(float(getattr(exc, "retry_after", 0) or 1.0), MAX_RETRY_DELAY)
            logger.info(
                "Telegram call '%s' rate limited; retrying in %.1f s (%s/%s).",
                label,
                delay,
                attempt,
                retries,
            )
            await asyncio.sleep(delay)
        except TelegramForbiddenError:
            logger.warning("Telegram call '%s' rejected: bot blocked by the user.", label)
            return None
        except TelegramBadRequest as exc:
            if "message is not modified" in str(exc).lower():
                logger.debug("Telegram call '%s' skipped: message content unchanged.", label)
            else:
                logger.warning("Telegram call '%s' rejected: %s", label, exc)
            return None
        except TelegramAPIError as exc:
            logger.error("Telegram call '%s' failed: %s", label, exc, exc_info=True)
            return None
    return None


async def safe_message_answer(message: Message | None, text: str, **kwargs) -> bool:
    if not message:
        return False
    return (await safe_api_call("message.answer", message.answer, text, **kwargs)) is not None


async def safe_message_edit_text(message: Message | None, text: str, **kwargs) -> bool:
    if not message:
        return False
    return (
        await safe_api_call("message.edit_text", message.edit_text, text, **kwargs)
    ) is not None


async def safe_callback_answer(
    callback: CallbackQuery | None,
    text: str | None = None,
    **kwargs,
) -> bool:
    """Acknowledge a callback query so the client stops its spinner."""
    if not callback:
        return False
    params = dict(kwargs)
    if text is not None:
        params["text"] = text
    return (await safe_api_call("callback.answer", callback.answer, **params)) is not None
