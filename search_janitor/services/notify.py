"""
Search Janitor — Telegram alert channel.
"""

import re
import logging

import aiohttp

from search_janitor.config import settings

logger = logging.getLogger(__name__)


def _esc_md(s: str) -> str:
    """Escape MarkdownV2 special characters."""
    return re.sub(r"([_*\[\]()~`>#+\-=|{}.!\\])", r"\\\1", str(s))


async def send_alert(message: str, channel: str | None = None) -> bool:
    """Send a plain-text alert to the configured chat. Returns True on success."""
    token = settings.telegram_bot_token
    chat_id = settings.telegram_chat_id

    if not token or not chat_id:
        logger.warning("Telegram not configured — alert not sent: %s", message)
        return False

    channel = channel or settings.alert_channel
    text = "\n".join([
        f"🚨 *{_esc_md(channel)}*",
        "",
        _esc_md(message),
    ])

    payload = {
        "chat_id": chat_id,
        "text": text,
        "parse_mode": "MarkdownV2",
    }

    return await _send_tg_message(payload)


async def _send_tg_message(payload: dict) -> bool:
    """Low-level Telegram sendMessage wrapper."""
    token = settings.telegram_bot_token
    try:
        timeout = aiohttp.ClientTimeout(total=10)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            url = f"https://api.telegram.org/bot{token}/sendMessage"
            async with session.post(url, json=payload) as resp:
                if resp.status == 200:
                    logger.info("Telegram alert sent")
                    return True
                body = await resp.text()
                logger.error(f"Telegram API {resp.status}: {body[:200]}")
                return False
    except Exception as e:
        logger.error(f"Telegram failed: {e}")
        return False
