"""SSE framing for assistant streams.

The orchestrator runs as a producer task filling a bounded queue; the response
generator drains it. Leaving the generator early (client disconnect) cancels
the producer, which closes the upstream HTTP stream.
"""

import asyncio
import json
from typing import AsyncIterator

from imperium.logging_config import get_logger
from imperium.services.ai_service import END_OF_STREAM, AllProvidersFailedError, StreamInterruptedError

logger = get_logger("streaming")

DONE_FRAME = "data: [DONE]\n\n"

_FAILED = object()


def content_frame(content: str) -> str:
    return f"data: {json.dumps({'content': content}, ensure_ascii=False)}\n\n"


def error_frame(message: str) -> str:
    return f"event: error\ndata: {json.dumps({'error': message}, ensure_ascii=False)}\n\n"


def _safe_error_message(error: BaseException) -> str:
    if isinstance(error, AllProvidersFailedError):
        return "AI assistant is temporarily unavailable"
    if isinstance(error, StreamInterruptedError):
        return "The response was interrupted"
    return "Failed to process chat request"


async def sse_frames(source: AsyncIterator, queue_size: int = 32) -> AsyncIterator[str]:
    queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_size))

    async def produce() -> None:
        try:
            async for item in source:
                await queue.put(item)
                if item is END_OF_STREAM:
                    return
            await queue.put(END_OF_STREAM)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put((_FAILED, e))
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()

    producer = asyncio.create_task(produce())
    try:
        while True:
            item = await queue.get()
            if item is END_OF_STREAM:
                yield DONE_FRAME
                return
            if isinstance(item, tuple) and item and item[0] is _FAILED:
                error = item[1]
                logger.error("AI stream failed", extra={"context": {"error": str(error)}})
                yield error_frame(_safe_error_message(error))
                return
            yield content_frame(item)
    finally:
        if not producer.done():
            producer.cancel()
        try:
            await producer
        except asyncio.CancelledError:
            pass
