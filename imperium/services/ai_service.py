from typing import AsyncIterator, Optional, Union

from sqlalchemy.orm import Session

from imperium.logging_config import get_logger
from imperium.services.ai_context_service import (
    build_general_context,
    build_lead_context,
    build_operational_context,
)
from imperium.services.alert_service import alert_critical
from imperium.services.llm import LLMProvider
from imperium.services.result import Result

logger = get_logger("ai_service")

DEFAULT_HISTORY_TURNS = 15
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1024

SYSTEM_PROMPTS = {
    "general": {
        "en": (
            "You are IMPERIUM AI Assistant, a helpful real estate and business assistant. Provide professional, "
            "concise, and accurate responses about real estate, market analysis, investment advice, and business "
            "strategies."
        ),
        "ar": (
            "أنت مساعد الإمبراطورية الذكي، مساعد عقاري وتجاري متخصص. قدم إجابات احترافية وموجزة ودقيقة حول "
            "العقارات وتحليل السوق والنصائح الاستثمارية والاستراتيجيات التجارية."
        ),
    },
    "crm": {
        "en": (
            "You are a CRM expert assistant. Help with lead management, customer relationship optimization, sales "
            "strategies, and client communication. Focus on practical advice for managing customer relationships "
            "effectively."
        ),
        "ar": (
            "أنت مساعد خبير في إدارة علاقات العملاء. ساعد في إدارة العملاء المحتملين وتحسين العلاقات مع العملاء "
            "واستراتيجيات المبيعات والتواصل مع العملاء. ركز على نصائح عملية لإدارة علاقات العملاء بفعالية."
        ),
    },
    "instagram": {
        "en": (
            "You are a social media expert specializing in Instagram marketing. Help with content creation, "
            "engagement strategies, hashtag optimization, and Instagram business management for real estate "
            "companies."
        ),
        "ar": (
            "أنت خبير في وسائل التواصل الاجتماعي متخصص في تسويق إنستغرام. ساعد في إنشاء المحتوى واستراتيجيات "
            "التفاعل وتحسين الهاشتاغات وإدارة أعمال إنستغرام للشركات العقارية."
        ),
    },
}

ARABIC_OVERRIDE = (
    "### LANGUAGE OVERRIDE (MANDATORY)\n"
    "Respond ONLY in Modern Standard Arabic. This rule overrides every other instruction, the language of the "
    "context data above and the language of earlier turns. Names, numbers and property codes may stay as written.\n"
    "يجب أن تكون الإجابة باللغة العربية فقط."
)
ARABIC_LATENCY_INSTRUCTION = "ابدأ الإجابة فورًا، وكن موجزًا ومباشرًا."
ENGLISH_LATENCY_INSTRUCTION = "Start answering immediately. Keep the reply short and direct."


class _EndOfStream:
    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = _EndOfStream()


class AllProvidersFailedError(Exception):
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("All AI providers failed: " + "; ".join(errors))


class StreamInterruptedError(Exception):
    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider} stream interrupted: {reason}")


def resolve_locale(value: Optional[str]) -> str:
    """'ar', 'ar-AE', 'AR;q=0.9' -> 'ar'; anything else -> 'en'."""
    if value and value.strip().lower().startswith("ar"):
        return "ar"
    return "en"


def resolve_mode(mode: Optional[str]) -> str:
    mode = (mode or "general").lower()
    return mode if mode in SYSTEM_PROMPTS else "general"


def build_system_prompt(mode: str, locale: str, context: str = "", caller_role: Optional[str] = None) -> str:
    mode = resolve_mode(mode)
    locale = resolve_locale(locale)
    sections = [SYSTEM_PROMPTS[mode][locale]]
    if context:
        sections.append(context)
    if caller_role:
        sections.append(f"Caller role: {caller_role}")
    if locale == "ar":
        sections.append(ARABIC_OVERRIDE)
        sections.append(ARABIC_LATENCY_INSTRUCTION)
    else:
        sections.append(ENGLISH_LATENCY_INSTRUCTION)
    return "\n\n".join(sections)


def prepare_history(history: Optional[list], max_turns: int = DEFAULT_HISTORY_TURNS) -> list[dict]:
    """Keep the latest user/assistant turns; client-supplied system turns are dropped."""
    turns = []
    for item in history or []:
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        content = item.get("content")
        if role not in ("user", "assistant") or not isinstance(content, str) or not content.strip():
            continue
        turns.append({"role": role, "content": content})
    if max_turns <= 0:
        return []
    return turns[-max_turns:]


def build_context(db: Session, mode: str, context_hints: Optional[dict] = None) -> str:
    hints = context_hints or {}
    if hints.get("lead_id"):
        return build_lead_context(db, hints["lead_id"])
    if resolve_mode(mode) == "crm":
        return build_operational_context(db)
    return build_general_context(db)


def build_chat_messages(
    db: Session,
    message: str,
    history: Optional[list] = None,
    *,
    locale: Optional[str] = None,
    mode: Optional[str] = None,
    context_hints: Optional[dict] = None,
    history_turns: int = DEFAULT_HISTORY_TURNS,
) -> list[dict]:
    hints = context_hints or {}
    system_prompt = build_system_prompt(
        mode,
        locale,
        context=build_context(db, mode, hints),
        caller_role=hints.get("caller_role"),
    )
    return [
        {"role": "system", "content": system_prompt},
        *prepare_history(history, history_turns),
        {"role": "user", "content": message},
    ]


async def stream_completion(
    messages: list[dict],
    providers: list[LLMProvider],
    temperature: float = DEFAULT_TEMPERATURE,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> AsyncIterator[Union[str, _EndOfStream]]:
    """Yield text chunks from the first provider that produces any, then END_OF_STREAM.

    A provider is committed once its first chunk is out; before that, errors and
    empty streams fall through to the next one.
    """
    errors: list[str] = []
    for provider in providers:
        if not provider.is_configured:
            continue

        committed = False
        stream = provider.stream_chat(messages, temperature=temperature, max_tokens=max_tokens)
        try:
            async for chunk in stream:
                if not chunk:
                    continue
                committed = True
                yield chunk
        except Exception as e:
            if committed:
                logger.error(
                    "AI stream interrupted",
                    extra={"context": {"provider": provider.name, "error": str(e)}},
                )
                raise StreamInterruptedError(provider.name, str(e)) from e
            logger.warning(
                "AI provider failed, trying next",
                extra={"context": {"provider": provider.name, "error": str(e)}},
            )
            errors.append(f"{provider.name}: {e}")
            continue
        finally:
            await stream.aclose()

        if committed:
            logger.info("AI stream completed", extra={"context": {"provider": provider.name}})
            yield END_OF_STREAM
            return

        logger.warning("AI provider returned empty stream", extra={"context": {"provider": provider.name}})
        errors.append(f"{provider.name}: empty response")

    if not errors:
        errors.append("no provider configured")
    alert_critical("All AI providers failed", {"errors": "; ".join(errors)[:500]})
    raise AllProvidersFailedError(errors)


async def complete(
    messages: list[dict],
    providers: list[LLMProvider],
    temperature: float = DEFAULT_TEMPERATURE,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> Result[str]:
    """Whole completion through the same fallback loop."""
    parts = []
    try:
        async for chunk in stream_completion(messages, providers, temperature=temperature, max_tokens=max_tokens):
            if chunk is END_OF_STREAM:
                break
            parts.append(chunk)
    except (AllProvidersFailedError, StreamInterruptedError) as e:
        logger.error("AI completion failed", extra={"context": {"error": str(e)}})
        return Result.failure("AI assistant is unavailable", "provider_error")
    return Result.success("".join(parts))
