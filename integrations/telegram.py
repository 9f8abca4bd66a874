"""
Telegram bot integration for upload notifications.

Sends formatted upload messages to a Telegram channel/chat.
"""

from typing import Any, Optional

import requests
import structlog

from config.settings import settings
from exceptions import TelegramError
from integrations.telegram_messages import get_message

logger = structlog.get_logger(__name__)

API_URL = "https://api.telegram.org/bot{token}/sendMessage"

# Upload notification event → message template key
EVENT_TEMPLATES = {
    "price_list_uploaded": "price_list_uploaded",
    "upload_needs_review": "upload_needs_review",
    "upload_awaiting_approval": "upload_awaiting_approval",
    "upload_failed": "upload_failed",
}


def format_upload_message(payload: dict[str, Any]) -> Optional[str]:
    """
    Format an upload notification payload.

    Returns:
        Message text, or None for events without a template
    """
    template = EVENT_TEMPLATES.get(payload.get("event", ""))
    if template is None:
        return None

    return get_message(
        template,
        supplier=payload.get("supplier_name") or payload.get("supplier_id", ""),
        filename=payload.get("filename", ""),
        items=payload.get("items_committed", 0),
        price_list_id=payload.get("price_list_id") or "-",
        reason=payload.get("reason", ""),
        error=payload.get("error", "")
    )


class TelegramNotificationDispatcher:
    """
    NotificationDispatcher that posts to Telegram.

    Missing bot token or chat id is logged and the message skipped.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        timeout: float = 10
    ):
        self.bot_token = bot_token or settings.telegram_bot_token
        self.chat_id = chat_id or settings.telegram_chat_id
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def notify(self, payload: dict[str, Any]) -> None:
        message = format_upload_message(payload)
        if message is None:
            logger.debug("telegram_event_ignored", upload_event=payload.get("event"))
            return
        self.send_message(message)

    def send_message(self, message: str, parse_mode: str = "Markdown") -> bool:
        """
        Send message to Telegram.

        Args:
            message: Message text to send
            parse_mode: Telegram parse mode (Markdown or HTML)

        Returns:
            True if sent, False if Telegram is not configured

        Raises:
            TelegramError: If send fails
        """
        if not self.configured:
            logger.warning(
                "telegram_not_configured_skipping_send",
                has_token=bool(self.bot_token),
                has_chat_id=bool(self.chat_id)
            )
            return False

        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }

        try:
            logger.info("sending_telegram_message", chat_id=self.chat_id)

            response = requests.post(
                API_URL.format(token=self.bot_token),
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()

            result = response.json()

            if not result.get("ok"):
                error_msg = result.get("description", "Unknown error")
                logger.error("telegram_api_error", error=error_msg)
                raise TelegramError(f"Telegram API error: {error_msg}")

            logger.info("telegram_message_sent", message_id=result.get("result", {}).get("message_id"))
            return True

        except requests.exceptions.RequestException as e:
            logger.error("telegram_request_failed", error=str(e))
            raise TelegramError(f"Failed to send Telegram message: {str(e)}")
