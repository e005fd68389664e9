"""
LLM fallback for low-confidence intent detection.

Flow for `IntentDetector.detect`:
    pattern match -> confidence >= threshold? return
                  -> response cache hit? return
                  -> completion call (bounded by a timeout) -> parse -> cache -> return

The classifier never raises. When the completion service is missing, slow,
failing or returns something unparseable it reports a
`ClassificationUnavailable` value and the detector falls back
to the unknown intent (confidence 0.1).
"""

import asyncio
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import structlog
from anthropic import AsyncAnthropic
from prometheus_client import Counter, Histogram

from routing_core.config import Settings, get_settings
from routing_core.intelligence.intent_detector import (
    UNKNOWN_INTENT,
    UNKNOWN_TARGET,
    Intent,
    IntentAction,
    detect_intent,
)

logger = structlog.get_logger(__name__)


INTENT_LLM_FALLBACK_TOTAL = Counter(
    "routing_intent_llm_fallback_total",
    "Low-confidence intents escalated to the LLM, by outcome",
    ["outcome"],
)

INTENT_LLM_DURATION = Histogram(
    "routing_intent_llm_duration_seconds",
    "Time spent waiting for the intent classification call",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0],
)


CLASSIFICATION_SYSTEM_PROMPT = """You classify requests sent to a workplace automation assistant.

Respond with ONLY a JSON object, no prose:
{
  "action": "create|read|update|delete|search|analyze|summarize|schedule|notify|unknown",
  "target": "<the thing acted upon, e.g. task, issue, document, event, pull request, project, workflow, report, message, user>",
  "confidence": <number between 0 and 1>,
  "reasoning": "<one short sentence>"
}

Requests may be written in English, Korean or a mix of both.
Use "unknown" when the request does not ask for any of the listed actions."""


METHOD_PATTERN = "pattern"
METHOD_LLM = "llm"


class UnavailableReason(str, Enum):
    """Why the LLM could not classify a request."""
    NOT_CONFIGURED = "not_configured"
    TIMEOUT = "timeout"
    SERVICE_ERROR = "service_error"
    MALFORMED_RESPONSE = "malformed_response"


@dataclass(frozen=True)
class ClassificationUnavailable:
    """Explicit 'no answer' result of the LLM classifier."""

    reason: UnavailableReason
    detail: str = ""


class CompletionClient(Protocol):
    """Hosted completion service used for intent classification."""

    async def complete(
        self,
        *,
        model: str,
        max_tokens: int,
        system_prompt: str,
        user_message: str,
    ) -> str: ...


class AnthropicCompletionClient:
    """CompletionClient backed by the Anthropic Messages API."""

    def __init__(self, api_key: str, client: Optional[AsyncAnthropic] = None):
        self._client = client or AsyncAnthropic(api_key=api_key)

    async def complete(
        self,
        *,
        model: str,
        max_tokens: int,
        system_prompt: str,
        user_message: str,
    ) -> str:
        response = await self._client.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_message}],
        )
        for block in response.content:
            if hasattr(block, "text"):
                return block.text
        return ""


class LLMResponseCache:
    """TTL-bound, size-bounded cache of LLM classifications.

    Keys are the trimmed, lower-cased request. When full, the oldest entry
    (by insertion order) is dropped.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[Intent, float]] = {}

    @staticmethod
    def make_key(request: str) -> str:
        return request.strip().lower()

    def get(self, request: str) -> Intent | None:
        key = self.make_key(request)
        entry = self._entries.get(key)
        if entry is None:
            return None
        intent, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return intent

    def set(self, request: str, intent: Intent) -> None:
        key = self.make_key(request)
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = (intent, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _strip_code_fences(content: str) -> str:
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        parts = content.split("```")
        if len(parts) >= 2:
            content = parts[1]
    return content.strip()


def parse_classification(content: str) -> Intent | None:
    """Parse the classifier reply into an Intent.

    The reply is stripped of code fences and the first JSON object in it is
    decoded. Confidence is clamped to [0, 1] and unrecognized actions map to
    `unknown`.

    Returns:
        Intent, or None when the reply holds no usable JSON object
    """
    text = _strip_code_fences(content or "")
    start = text.find("{")
    if start == -1:
        return None

    try:
        data, _ = json.JSONDecoder().raw_decode(text[start:])
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    try:
        confidence = float(data.get("confidence", 0.0))
    except (TypeError, ValueError):
        return None
    confidence = min(max(confidence, 0.0), 1.0)

    target = data.get("target")
    target = str(target).strip().lower() if target else UNKNOWN_TARGET

    return Intent(
        action=IntentAction.parse(data.get("action")),
        target=target or UNKNOWN_TARGET,
        confidence=confidence,
    )


class LLMIntentClassifier:
    """Classifies a request with the hosted completion service."""

    def __init__(
        self,
        client: Optional[CompletionClient] = None,
        model: str = "claude-haiku-4-5",
        max_tokens: int = 300,
        timeout_seconds: float = 5.0,
        cache: Optional[LLMResponseCache] = None,
    ):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.cache = cache if cache is not None else LLMResponseCache()
        self._log = logger.bind(component="llm_intent_classifier", model=model)

    async def classify(self, request: str) -> Intent | ClassificationUnavailable:
        """Classify a request, consulting the response cache first."""
        cached = self.cache.get(request)
        if cached is not None:
            INTENT_LLM_FALLBACK_TOTAL.labels(outcome="cache_hit").inc()
            self._log.debug("LLM classification cache hit")
            return cached

        if self.client is None:
            INTENT_LLM_FALLBACK_TOTAL.labels(outcome=UnavailableReason.NOT_CONFIGURED.value).inc()
            return ClassificationUnavailable(UnavailableReason.NOT_CONFIGURED)

        start = time.perf_counter()
        try:
            reply = await asyncio.wait_for(
                self.client.complete(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system_prompt=CLASSIFICATION_SYSTEM_PROMPT,
                    user_message=request,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            INTENT_LLM_FALLBACK_TOTAL.labels(outcome=UnavailableReason.TIMEOUT.value).inc()
            self._log.warning("LLM classification timed out", timeout_seconds=self.timeout_seconds)
            return ClassificationUnavailable(UnavailableReason.TIMEOUT)
        except Exception as e:
            INTENT_LLM_FALLBACK_TOTAL.labels(outcome=UnavailableReason.SERVICE_ERROR.value).inc()
            self._log.warning("LLM classification failed", error=str(e))
            return ClassificationUnavailable(UnavailableReason.SERVICE_ERROR, detail=str(e))
        finally:
            INTENT_LLM_DURATION.observe(time.perf_counter() - start)

        intent = parse_classification(reply)
        if intent is None:
            INTENT_LLM_FALLBACK_TOTAL.labels(outcome=UnavailableReason.MALFORMED_RESPONSE.value).inc()
            self._log.warning(
                "Malformed LLM classification",
                content_preview=reply[:200] if reply else None,
            )
            return ClassificationUnavailable(UnavailableReason.MALFORMED_RESPONSE)

        self.cache.set(request, intent)
        INTENT_LLM_FALLBACK_TOTAL.labels(outcome="classified").inc()
        self._log.info(
            "LLM classification completed",
            action=intent.action.value,
            target=intent.target,
            confidence=intent.confidence,
        )
        return intent


class IntentDetector:
    """Pattern intent detection with an LLM fallback for low confidence.

    Example:
        detector = IntentDetector(classifier=LLMIntentClassifier(client=...))
        intent = await detector.detect("작업 생성해줘")
    """

    def __init__(
        self,
        classifier: Optional[LLMIntentClassifier] = None,
        confidence_threshold: float = 0.7,
        llm_enabled: bool = True,
    ):
        self.classifier = classifier
        self.confidence_threshold = confidence_threshold
        self.llm_enabled = llm_enabled
        self._log = logger.bind(component="intent_detector")

    async def detect(
        self,
        request: str,
        *,
        llm_fallback: Optional[bool] = None,
        confidence_threshold: Optional[float] = None,
    ) -> Intent:
        """Detect intent, escalating to the LLM below the confidence threshold.

        Args:
            request: Raw request text
            llm_fallback: Per-call override of `llm_enabled`
            confidence_threshold: Per-call override of the threshold

        Returns:
            Intent. Never raises.
        """
        intent, _ = await self.detect_with_method(
            request, llm_fallback=llm_fallback, confidence_threshold=confidence_threshold
        )
        return intent

    async def detect_with_method(
        self,
        request: str,
        *,
        llm_fallback: Optional[bool] = None,
        confidence_threshold: Optional[float] = None,
    ) -> tuple[Intent, str]:
        """Like `detect`, also naming the stage that produced the intent.

        Returns:
            (intent, method) where method is "pattern" or "llm"
        """
        threshold = self.confidence_threshold if confidence_threshold is None else confidence_threshold
        use_llm = self.llm_enabled if llm_fallback is None else llm_fallback

        pattern_intent = detect_intent(request)
        if pattern_intent.confidence >= threshold or not use_llm:
            return pattern_intent, METHOD_PATTERN

        if self.classifier is None:
            self._log.debug("No LLM classifier, using unknown intent", confidence=pattern_intent.confidence)
            return UNKNOWN_INTENT, METHOD_PATTERN

        result = await self.classifier.classify(request)
        if isinstance(result, ClassificationUnavailable):
            self._log.debug(
                "LLM classification unavailable, using unknown intent",
                reason=result.reason.value,
                confidence=pattern_intent.confidence,
            )
            return UNKNOWN_INTENT, METHOD_PATTERN
        return result, METHOD_LLM


def create_intent_detector(settings: Optional[Settings] = None) -> IntentDetector:
    """Build an IntentDetector from settings.

    Without an API key the classifier has no client and reports
    `not_configured`, so low-confidence requests resolve to the unknown
    intent.
    """
    settings = settings or get_settings()

    client: Optional[CompletionClient] = None
    if settings.anthropic_api_key is not None:
        client = AnthropicCompletionClient(api_key=settings.anthropic_api_key.get_secret_value())
    else:
        logger.warning("Anthropic API key not configured for intent LLM fallback")

    classifier = LLMIntentClassifier(
        client=client,
        model=settings.intent_llm_model.value,
        max_tokens=settings.intent_llm_max_tokens,
        timeout_seconds=settings.intent_llm_timeout_seconds,
        cache=LLMResponseCache(
            ttl_seconds=settings.intent_llm_cache_ttl_seconds,
            max_entries=settings.intent_llm_cache_max_entries,
        ),
    )
    return IntentDetector(
        classifier=classifier,
        confidence_threshold=settings.intent_confidence_threshold,
        llm_enabled=settings.intent_llm_enabled,
    )
