"""Operational alerts to a Telegram chat."""

from dataclasses import dataclass
from typing import Optional

import httpx

from imperium.logging_config import get_logger

logger = get_logger("alert_service")


@dataclass(frozen=True)
class AlertConfig:
    bot_token: Optional[str] = None
    chat_id: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)


# Installed by the app container at startup; alerts are skipped until then.
_config = AlertConfig()


def configure_alerts(config: AlertConfig) -> None:
    global _config
    _config = config


def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Send alert to Telegram.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if sent successfully. Never raises.
    """
    config = _config
    if not config.is_configured:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    emoji = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}

    text = f"{emoji.get(level, '📢')} *Imperium {level}*\n\n{message}"

    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n\n```\n{context_str}\n```"

    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(
                f"https://api.telegram.org/bot{config.bot_token}/sendMessage",
                json={"chat_id": config.chat_id, "text": text, "parse_mode": "Markdown"},
            )
            return response.status_code == 200
    except Exception as e:
        logger.error(f"Failed to send alert: {e}")
        return False


def alert_error(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("ERROR", message, context)


def alert_critical(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("CRITICAL", message, context)


def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("WARNING", message, context)
