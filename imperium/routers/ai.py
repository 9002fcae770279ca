from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from imperium.database import get_db
from imperium.dependencies import get_container
from imperium.logging_config import get_logger
from imperium.schemas.chat import ChatRequest
from imperium.services.ai_service import build_chat_messages, resolve_locale, stream_completion
from imperium.services.auth_service import Caller, require_caller
from imperium.services.streaming import sse_frames

logger = get_logger("ai")

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


@router.post("/ai-assistant/chat")
def chat(
    body: ChatRequest,
    request: Request,
    caller: Caller = Depends(require_caller),
    db: Session = Depends(get_db),
):
    """Stream an assistant answer as server-sent events."""
    container = get_container(request)
    locale = resolve_locale(body.locale or request.headers.get("accept-language"))
    hints = {"caller_role": caller.role}
    if body.lead_id is not None:
        hints["lead_id"] = body.lead_id

    messages = build_chat_messages(
        db,
        body.message,
        [turn.model_dump() for turn in body.conversation_history],
        locale=locale,
        mode=body.mode,
        context_hints=hints,
        history_turns=container.settings.ai_history_turns,
    )
    logger.info(
        "AI chat started",
        extra={"context": {"caller_id": caller.id, "mode": body.mode, "locale": locale}},
    )
    frames = sse_frames(
        stream_completion(messages, container.providers),
        queue_size=container.settings.ai_stream_queue_size,
    )
    return StreamingResponse(
        frames,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
