"""
Dual-Credential LLM Client

Classification and free-form chat completions against the OpenAI API with
failover between a primary and a backup API key on rate limiting, retries
for transient errors and repair of slightly malformed responses.

classify() and reclassify_with_feedback() never raise: exhausted retries
come back as a Classification with `error` set. chat() raises on final
failure.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from datetime import date
from typing import Any

import openai

from src.common.telemetry import trace_span
from src.nlquery.correction import apply_correction_guards
from src.nlquery.exceptions import MalformedResponseError, RateLimitExhaustedError
from src.nlquery.gate import ConcurrencyGate
from src.nlquery.llm.credentials import Credential, CredentialPool
from src.nlquery.llm.prompts import (
    build_classification_system_prompt,
    build_classification_user_message,
    build_correction_system_prompt,
    build_correction_user_message,
)
from src.nlquery.llm.protocols import LLMMessage, LLMResponse
from src.nlquery.llm.response_parser import parse_classification_payload
from src.nlquery.models import (
    NO_FUNCTION,
    Classification,
    ClassificationErrorKind,
    ClassificationRequest,
    ErrorFeedback,
    FunctionSpec,
    RAGContext,
)

logger = logging.getLogger(__name__)

MAX_RATE_LIMIT_BACKOFF = 30.0
MIN_RATE_LIMIT_WAIT = 1.0
MAX_LINEAR_BACKOFF = 3.0
CORRECTION_RETRY_DELAY = 1.0

TRANSIENT_MARKERS = ("timeout", "econnreset", "etimedout", "network")


def _extract_retry_after(error: Exception) -> float | None:
    """
    Extract the retry-after value from a rate limit error's response headers.

    Returns:
        Seconds to wait, or None if not available
    """
    response = getattr(error, "response", None)
    if response is None:
        return None
    try:
        retry_after = response.headers.get("retry-after")
        if retry_after:
            return float(retry_after)
    except (ValueError, TypeError, AttributeError):
        pass
    return None


def rate_limit_backoff(attempt: int) -> float:
    """Fallback rate-limit wait without a header: 2, 4, 8, ... capped at 30s."""
    return min(2.0 ** attempt * 2, MAX_RATE_LIMIT_BACKOFF)


def linear_backoff(attempt: int) -> float:
    """Wait before retrying a transient or malformed-response failure."""
    return min(1.0 * (attempt + 1), MAX_LINEAR_BACKOFF)


def is_rate_limit_error(error: Exception) -> bool:
    if isinstance(error, openai.RateLimitError):
        return True
    return getattr(error, "status_code", None) == 429


def is_transient_error(error: Exception) -> bool:
    """Connection resets, timeouts and server errors are worth retrying."""
    if isinstance(
        error,
        (
            openai.APIConnectionError,
            openai.InternalServerError,
            asyncio.TimeoutError,
            TimeoutError,
            ConnectionError,
        ),
    ):
        return True
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


class DualCredentialLLMClient:
    """
    Completion client that fails over between two API credentials.

    Example:
        pool = CredentialPool(AsyncOpenAI(api_key=primary), AsyncOpenAI(api_key=backup))
        client = DualCredentialLLMClient(pool, model="gpt-4o", gate=ConcurrencyGate())
        classification = await client.classify("won projects in Texas", DEFAULT_FUNCTIONS)
    """

    def __init__(
        self,
        pool: CredentialPool,
        model: str = "gpt-4o",
        gate: ConcurrencyGate | None = None,
        classify_max_attempts: int = 5,
        classify_max_tokens: int = 2500,
        chat_max_tokens: int = 1000,
        reclassify_max_attempts: int = 2,
        reclassify_max_tokens: int = 1500,
        today: Callable[[], date] = date.today,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the client.

        Args:
            pool: Credential pool holding the primary/backup clients
            model: Chat completion model
            gate: Concurrency gate every completion request goes through
            classify_max_attempts: Attempt budget for classify() and chat()
            classify_max_tokens: Completion token budget for classify()
            chat_max_tokens: Default completion token budget for chat()
            reclassify_max_attempts: Attempt budget for self-correction
            reclassify_max_tokens: Completion token budget for self-correction
            today: Date source for prompts
            sleep: Awaitable sleep used for backoff
        """
        self._pool = pool
        self._model = model
        self._gate = gate
        self._classify_max_attempts = classify_max_attempts
        self._classify_max_tokens = classify_max_tokens
        self._chat_max_tokens = chat_max_tokens
        self._reclassify_max_attempts = reclassify_max_attempts
        self._reclassify_max_tokens = reclassify_max_tokens
        self._today = today
        self._sleep = sleep

        logger.info(
            f"LLM client initialized: model={model}, backup_credential={pool.has_backup}, "
            f"gate={'on' if gate else 'off'}"
        )

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def pool(self) -> CredentialPool:
        return self._pool

    async def classify(
        self,
        question: str,
        functions: Sequence[FunctionSpec],
        context: RAGContext | None = None,
    ) -> Classification:
        """
        Select a function and extract its arguments for a question.

        Args:
            question: The user's question
            functions: Functions the model may choose from
            context: Optional retrieved context to ground the choice

        Returns:
            Classification; on exhaustion `error` is set instead of raising
        """
        request = ClassificationRequest(question, tuple(functions), context)
        messages = [
            LLMMessage.system(
                build_classification_system_prompt(self._today(), request.retrieved_context)
            ),
            LLMMessage.user(build_classification_user_message(request)),
        ]

        with trace_span(
            "llm.classify",
            {"llm.model": self._model, "llm.function_count": len(functions)},
        ) as span:
            result = await self._classify_with_failover(messages)
            span.set_attribute("llm.function_name", result.function_name)
            if result.error_kind is not None:
                span.set_attribute("llm.error_kind", result.error_kind.value)
            return result

    async def chat(
        self,
        messages: Sequence[LLMMessage | dict[str, Any]],
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> str:
        """
        Free-form completion with the same failover and retry policy.

        Args:
            messages: Conversation as LLMMessage or {"role", "content"} mappings
            max_tokens: Completion token budget
            model: Model override for this call

        Returns:
            Raw response text

        Raises:
            RateLimitExhaustedError: Still rate limited after the last attempt
            Exception: The last error for any other failure
        """
        normalized = [m if isinstance(m, LLMMessage) else LLMMessage.from_dict(m) for m in messages]
        budget = max_tokens or self._chat_max_tokens
        tried: set[str] = set()

        with trace_span("llm.chat", {"llm.model": model or self._model}):
            for attempt in range(self._classify_max_attempts):
                last_attempt = attempt == self._classify_max_attempts - 1
                credential = self._pool.select()
                tried.add(credential.name)
                try:
                    response = await self._complete(credential, normalized, budget, model)
                    logger.info(
                        f"Chat completed on attempt {attempt + 1} via {credential.name}"
                    )
                    return response.content
                except Exception as e:
                    if is_rate_limit_error(e):
                        wait = self._on_rate_limit(credential, e, attempt, tried)
                        if last_attempt:
                            raise RateLimitExhaustedError(math.ceil(wait or MIN_RATE_LIMIT_WAIT)) from e
                        if wait is not None:
                            await self._sleep(wait)
                        continue

                    if last_attempt or not is_transient_error(e):
                        logger.error(f"Chat failed after {attempt + 1} attempts: {e}")
                        raise

                    delay = linear_backoff(attempt)
                    logger.warning(
                        f"Chat attempt {attempt + 1} failed ({e}), retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)

        raise RuntimeError("Unexpected error during chat retry")

    async def reclassify_with_feedback(
        self,
        question: str,
        functions: Sequence[FunctionSpec],
        feedback: ErrorFeedback,
    ) -> Classification:
        """
        Produce a corrected classification after a downstream failure.

        Args:
            question: The user's original question
            functions: Functions the model may choose from
            feedback: Why the previous classification failed

        Returns:
            A new Classification; function_name "none" with `error` set
            when every attempt failed
        """
        logger.info(
            f"Self-correcting {feedback.previous_function} "
            f"({feedback.error_type.value}: {feedback.error_message})"
        )
        messages = [
            LLMMessage.system(build_correction_system_prompt(question, feedback)),
            LLMMessage.user(build_correction_user_message(functions)),
        ]

        last_error: Exception | None = None
        with trace_span(
            "llm.reclassify",
            {"llm.model": self._model, "llm.error_type": feedback.error_type.value},
        ) as span:
            for attempt in range(self._reclassify_max_attempts):
                credential = self._pool.select()
                try:
                    response = await self._complete(
                        credential, messages, self._reclassify_max_tokens
                    )
                    function_name, arguments = parse_classification_payload(response.content)
                    corrected = apply_correction_guards(
                        feedback, Classification(function_name=function_name, arguments=arguments)
                    )
                    span.set_attribute("llm.function_name", corrected.function_name)
                    logger.info(
                        f"Self-correction selected {corrected.function_name} "
                        f"with {corrected.arguments}"
                    )
                    return corrected
                except Exception as e:
                    last_error = e
                    if is_rate_limit_error(e):
                        self._pool.mark_rate_limited(
                            credential, _extract_retry_after(e) or rate_limit_backoff(attempt)
                        )
                    logger.warning(
                        f"Self-correction attempt {attempt + 1}/{self._reclassify_max_attempts} "
                        f"failed: {e}"
                    )
                    if attempt < self._reclassify_max_attempts - 1:
                        await self._sleep(CORRECTION_RETRY_DELAY)

        return Classification(
            function_name=NO_FUNCTION,
            error=f"Self-correction failed: {last_error}",
            error_kind=(
                ClassificationErrorKind.RATE_LIMIT
                if last_error is not None and is_rate_limit_error(last_error)
                else ClassificationErrorKind.OTHER
            ),
        )

    async def _classify_with_failover(self, messages: list[LLMMessage]) -> Classification:
        tried: set[str] = set()

        for attempt in range(self._classify_max_attempts):
            last_attempt = attempt == self._classify_max_attempts - 1
            credential = self._pool.select()
            tried.add(credential.name)

            try:
                response = await self._complete(credential, messages, self._classify_max_tokens)
                function_name, arguments = parse_classification_payload(response.content)
            except MalformedResponseError as e:
                logger.warning(
                    f"Malformed classification response (attempt {attempt + 1}/"
                    f"{self._classify_max_attempts}): {e}"
                )
                if last_attempt:
                    return Classification(error=str(e), error_kind=ClassificationErrorKind.PARSE_ERROR)
                await self._sleep(linear_backoff(attempt))
                continue
            except Exception as e:
                if is_rate_limit_error(e):
                    wait = self._on_rate_limit(credential, e, attempt, tried)
                    if last_attempt:
                        retry_after = math.ceil(max(self._pool.shortest_block(), MIN_RATE_LIMIT_WAIT))
                        logger.error(f"Classification rate limited on every attempt, retry after {retry_after}s")
                        return Classification(
                            error=ClassificationErrorKind.RATE_LIMIT.value,
                            error_kind=ClassificationErrorKind.RATE_LIMIT,
                            retry_after=retry_after,
                        )
                    if wait is not None:
                        await self._sleep(wait)
                    continue

                if last_attempt or not is_transient_error(e):
                    logger.error(f"Classification failed after {attempt + 1} attempts: {e}")
                    return Classification(error=str(e), error_kind=ClassificationErrorKind.OTHER)

                delay = linear_backoff(attempt)
                logger.warning(
                    f"Classification attempt {attempt + 1}/{self._classify_max_attempts} "
                    f"failed ({e}), retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
                continue

            logger.info(
                f"Classified as {function_name} on attempt {attempt + 1} via {credential.name}"
            )
            return Classification(function_name=function_name, arguments=arguments)

        return Classification(error="Classification attempts exhausted", error_kind=ClassificationErrorKind.OTHER)

    def _on_rate_limit(
        self,
        credential: Credential,
        error: Exception,
        attempt: int,
        tried: set[str],
    ) -> float | None:
        """
        Record a 429 and decide how long to wait before the next attempt.

        Returns:
            None to retry immediately on the other credential, else seconds
            to sleep
        """
        retry_after = _extract_retry_after(error) or rate_limit_backoff(attempt)
        self._pool.mark_rate_limited(credential, retry_after)

        other = self._pool.other(credential)
        if other is not None and other.name not in tried and self._pool.is_available(other):
            logger.info(f"Credential '{credential.name}' rate limited, switching to '{other.name}'")
            return None

        wait = max(min(self._pool.shortest_block(), retry_after), MIN_RATE_LIMIT_WAIT)
        logger.warning(
            f"Rate limited on all credentials (attempt {attempt + 1}), waiting {wait:.1f}s"
        )
        return wait

    async def _complete(
        self,
        credential: Credential,
        messages: Sequence[LLMMessage],
        max_tokens: int,
        model: str | None = None,
    ) -> LLMResponse:
        """Issue one completion request on a credential, through the gate if attached."""
        kwargs: dict[str, Any] = {
            "model": model or self._model,
            "messages": [m.to_openai_format() for m in messages],
            "max_completion_tokens": max_tokens,
        }

        async def request() -> Any:
            return await credential.client.chat.completions.create(**kwargs)

        if self._gate is not None:
            response = await self._gate.enqueue(request)
        else:
            response = await request()

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            finish_reason=choice.finish_reason or "stop",
            usage={
                "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
                "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
                "total_tokens": getattr(usage, "total_tokens", 0) or 0,
            },
            credential=credential.name,
        )
