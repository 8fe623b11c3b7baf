"""Oracle client: chat completions over OpenAI or Anthropic.

Usage:
    from tutorbot.services.ai_client import complete

    text = await complete(
        "You are a friendly Spanish tutor.",
        "Hola, ¿cómo estás?",
        max_tokens=300,
        use_case="chat",        # "grading", "chat", or None for default
    )

Provider is auto-detected per use case from the model name:
  - Models starting with "claude-" route to Anthropic
  - Everything else routes to OpenAI

Every call is bounded by ORACLE_TIMEOUT_SECONDS (retries included). Any
failure, including the timeout, surfaces as OracleError.
"""

import asyncio
import logging
from enum import Enum

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from tutorbot.config import settings
from tutorbot.errors import OracleError

logger = logging.getLogger(__name__)


class AIProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


# Known Anthropic model prefixes for auto-detection
_ANTHROPIC_PREFIXES = ("claude-",)


def _resolve_model(use_case: str | None) -> str:
    """Pick the model name based on the use case and config overrides."""
    if use_case == "grading" and settings.grading_model:
        return settings.grading_model
    if use_case == "chat" and settings.chat_model:
        return settings.chat_model
    return settings.model_name


def _detect_provider(model: str) -> AIProvider:
    """Models starting with 'claude-' go to Anthropic, the rest follow AI_PROVIDER."""
    model_lower = model.lower()
    for prefix in _ANTHROPIC_PREFIXES:
        if model_lower.startswith(prefix):
            return AIProvider.ANTHROPIC
    try:
        return AIProvider(settings.ai_provider.lower())
    except ValueError:
        return AIProvider.OPENAI


async def complete(
    system_instruction: str,
    user_content: str,
    max_tokens: int | None = None,
    *,
    use_case: str | None = None,
    temperature: float = 0.4,
    timeout: float | None = None,
) -> str:
    """Run one completion and return the assistant text.

    Raises OracleError on provider errors, timeouts and empty answers.
    """
    messages = [
        {"role": "system", "content": system_instruction},
        {"role": "user", "content": user_content},
    ]
    model = _resolve_model(use_case)
    provider = _detect_provider(model)
    max_tokens = max_tokens or settings.oracle_max_tokens
    timeout = timeout if timeout is not None else settings.oracle_timeout_seconds

    if provider == AIProvider.ANTHROPIC:
        call = _anthropic_chat(messages, model, temperature, max_tokens)
    else:
        call = _openai_chat(messages, model, temperature, max_tokens)

    try:
        text = await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise OracleError(f"{provider.value} call timed out after {timeout}s") from e
    except Exception as e:
        raise OracleError(f"{provider.value} call failed: {e}") from e

    if not text or not text.strip():
        raise OracleError(f"{provider.value} returned an empty completion")
    return text


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type(Exception),
    before_sleep=lambda retry_state: logger.warning(
        "OpenAI call failed (attempt %d), retrying: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    ),
    reraise=True,
)
async def _openai_chat(
    messages: list[dict],
    model: str,
    temperature: float,
    max_tokens: int,
) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=settings.api_key)
    response = await client.chat.completions.create(
        model=model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
    )
    return response.choices[0].message.content


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type(Exception),
    before_sleep=lambda retry_state: logger.warning(
        "Anthropic call failed (attempt %d), retrying: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    ),
    reraise=True,
)
async def _anthropic_chat(
    messages: list[dict],
    model: str,
    temperature: float,
    max_tokens: int,
) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)

    # Anthropic uses a separate system parameter, not a system message
    system_text = "\n".join(m["content"] for m in messages if m["role"] == "system")
    chat_messages = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m["role"] != "system"
    ]

    kwargs: dict = {
        "model": model,
        "messages": chat_messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if system_text.strip():
        kwargs["system"] = system_text.strip()

    response = await client.messages.create(**kwargs)
    return response.content[0].text
