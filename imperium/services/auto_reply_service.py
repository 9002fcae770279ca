from typing import Optional

from sqlalchemy.orm import Session

from imperium.logging_config import get_logger
from imperium.models import ChannelAccount, Lead
from imperium.services.ai_service import build_chat_messages, complete
from imperium.services.inbox_service import StoredMessage, send_message

logger = get_logger("auto_reply_service")


def should_auto_reply(enabled: bool, stored: StoredMessage, account: Optional[ChannelAccount]) -> bool:
    if not enabled or not stored.created or account is None:
        return False
    if account.status != "connected":
        return False
    message = stored.message
    return message.direction == "incoming" and message.sender_id != account.external_account_id


async def auto_reply(
    db: Session,
    stored: StoredMessage,
    account: ChannelAccount,
    lead: Optional[Lead],
    container,
) -> bool:
    """Answer a fresh inbound message with the assistant. Never raises."""
    message = stored.message
    try:
        hints = {"lead_id": lead.id} if lead is not None else {}
        messages = build_chat_messages(
            db,
            message.body,
            locale=lead.language if lead is not None else None,
            mode="crm",
            context_hints=hints,
            history_turns=container.settings.ai_history_turns,
        )
        result = await complete(messages, container.providers)
        if not result.ok or not (result.value or "").strip():
            logger.warning("Auto-reply skipped", extra={"context": {"error": result.error}})
            return False

        sent = send_message(
            db,
            account.user_id,
            message.channel,
            message.sender_id,
            result.value.strip(),
            container.adapters,
            lead_id=lead.id if lead is not None else None,
        )
        if not sent.ok:
            logger.warning(
                "Auto-reply send failed",
                extra={"context": {"error_code": sent.error_code, "message_id": message.message_id}},
            )
            return False
        return True
    except Exception as e:
        logger.error(
            "Auto-reply failed",
            extra={"context": {"message_id": message.message_id, "error": str(e)}},
        )
        return False
