"""
Result Merger - combine outputs of several execution backends.

Strategies:
- concat: every result, tagged with task id, source and success
- dedupe: outputs with a repeated de-duplication key dropped (first wins)
- priority: output of the first successful result in source-priority order
- custom: caller-supplied reducer

Presentation adapters turn a MergedResult into a chat message or an API
envelope. Neither mutates its input.
"""

import hashlib
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import structlog
from prometheus_client import Counter, Histogram

logger = structlog.get_logger(__name__)


RESULT_MERGES_TOTAL = Counter(
    "routing_result_merges_total",
    "Result merges by strategy mode",
    ["mode"],
)

RESULT_MERGE_DURATION = Histogram(
    "routing_result_merge_duration_seconds",
    "Time spent merging backend results",
    ["mode"],
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1],
)


CHAT_MAX_LENGTH = 3000
CHAT_TRUNCATE_AT = CHAT_MAX_LENGTH - 100
CHAT_TRUNCATION_MARKER = "\n\n... (truncated)"
CHAT_PREVIEW_LENGTH = 150

AGENT_SOURCE = "agent"
WORKFLOW_SOURCE = "workflow"


class MergeMode(str, Enum):
    CONCAT = "concat"
    DEDUPE = "dedupe"
    PRIORITY = "priority"
    CUSTOM = "custom"


@dataclass(frozen=True)
class TaskError:
    message: str
    code: Optional[str] = None


@dataclass(frozen=True)
class TaskResult:
    """Output of one backend invocation."""

    task_id: str
    source: str
    output: Any
    success: bool
    duration: float = 0.0
    error: Optional[TaskError] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MergeStrategy:
    """How to combine a batch of TaskResults."""

    mode: MergeMode = MergeMode.CONCAT
    priority_order: tuple[str, ...] = ()
    custom_merger: Optional[Callable[[list[TaskResult]], Any]] = None
    dedupe_key: Optional[Callable[[TaskResult], str]] = None
    filter_failed: bool = False


@dataclass
class MergedResult:
    output: Any
    sources: list[str]
    merge_mode: MergeMode
    result_count: int
    success_count: int
    failed_count: int
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "output": self.output,
            "sources": list(self.sources),
            "merge_mode": self.merge_mode.value,
            "result_count": self.result_count,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "metadata": dict(self.metadata),
        }


@dataclass
class ChatMessage:
    """Chat-shaped projection: preview text, blocks and optional attachments."""

    text: str
    blocks: list[dict[str, Any]] = field(default_factory=list)
    attachments: Optional[list[dict[str, Any]]] = None


@dataclass
class ApiResponse:
    success: bool
    data: Any
    meta: dict[str, Any]
    errors: Optional[list[dict[str, Any]]] = None

    def to_dict(self) -> dict[str, Any]:
        response = {"success": self.success, "data": self.data, "meta": dict(self.meta)}
        if self.errors:
            response["errors"] = list(self.errors)
        return response


def default_dedupe_key(result: TaskResult) -> str:
    """SHA-256 of the output's canonical JSON."""
    canonical = json.dumps(result.output, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(canonical.encode()).hexdigest()


class ResultMerger:
    """Merges backend results and projects them for presentation."""

    def merge(self, results: Sequence[TaskResult], strategy: MergeStrategy) -> MergedResult:
        """Merge results with a strategy.

        Counts, durations and sources always describe the full input, even
        when `filter_failed` drops failures from the output.

        Raises:
            ValueError: If the custom mode is selected without a reducer
        """
        start = time.perf_counter()
        results = list(results)
        mode = MergeMode(strategy.mode)

        logger.debug(
            "Merging results",
            mode=mode.value,
            result_count=len(results),
            priority_order=list(strategy.priority_order),
        )

        candidates = [r for r in results if r.success] if strategy.filter_failed else results

        if mode == MergeMode.DEDUPE:
            output = self._merge_dedupe(candidates, strategy.dedupe_key)
        elif mode == MergeMode.PRIORITY:
            output = self._merge_priority(candidates, strategy.priority_order)
        elif mode == MergeMode.CUSTOM:
            if strategy.custom_merger is None:
                raise ValueError("Custom merge mode requires a custom_merger function")
            output = strategy.custom_merger(candidates)
        else:
            output = self._merge_concat(candidates)

        total_duration = sum(r.duration for r in results)
        success_count = sum(1 for r in results if r.success)
        sources = list(dict.fromkeys(r.source for r in results))

        merged = MergedResult(
            output=output,
            sources=sources,
            merge_mode=mode,
            result_count=len(results),
            success_count=success_count,
            failed_count=len(results) - success_count,
            metadata={
                "total_duration": total_duration,
                "average_duration": total_duration / len(results) if results else 0,
                "merge_timestamp": int(time.time() * 1000),
            },
        )

        RESULT_MERGES_TOTAL.labels(mode=mode.value).inc()
        RESULT_MERGE_DURATION.labels(mode=mode.value).observe(time.perf_counter() - start)
        return merged

    @staticmethod
    def _merge_concat(results: list[TaskResult]) -> list[dict[str, Any]]:
        return [
            {
                "task_id": r.task_id,
                "source": r.source,
                "output": r.output,
                "success": r.success,
            }
            for r in results
        ]

    @staticmethod
    def _merge_dedupe(
        results: list[TaskResult],
        dedupe_key: Optional[Callable[[TaskResult], str]],
    ) -> list[Any]:
        key_fn = dedupe_key or default_dedupe_key
        seen: set[str] = set()
        deduped: list[TaskResult] = []
        for result in results:
            key = key_fn(result)
            if key not in seen:
                seen.add(key)
                deduped.append(result)

        logger.debug(
            "Deduplicated results",
            original=len(results),
            deduped=len(deduped),
            removed=len(results) - len(deduped),
        )
        return [r.output for r in deduped]

    @staticmethod
    def _merge_priority(results: list[TaskResult], priority_order: Sequence[str]) -> Any:
        order = list(priority_order) or [AGENT_SOURCE, WORKFLOW_SOURCE]

        def rank(result: TaskResult) -> float:
            return order.index(result.source) if result.source in order else float("inf")

        ranked = sorted(results, key=rank)
        for result in ranked:
            if result.success:
                return result.output
        return ranked[0].output if ranked else None

    @staticmethod
    def _format_output_item(item: Any) -> str:
        if isinstance(item, str):
            return item
        if isinstance(item, dict):
            if item.get("output"):
                return str(item["output"])
            return json.dumps(item, indent=2, default=str, ensure_ascii=False)
        return str(item)

    def format_for_chat(self, result: MergedResult) -> ChatMessage:
        """Project a merged result into a chat message with a metadata footer."""
        output = result.output
        if isinstance(output, str):
            text = output
        elif isinstance(output, list):
            text = "\n\n".join(self._format_output_item(item) for item in output)
        else:
            text = json.dumps(output, indent=2, default=str, ensure_ascii=False)

        if len(text) > CHAT_MAX_LENGTH:
            text = text[:CHAT_TRUNCATE_AT] + CHAT_TRUNCATION_MARKER

        footer = [
            f"Sources: {', '.join(result.sources)}",
            f"Results: {result.success_count}/{result.result_count} succeeded",
            f"Duration: {result.metadata.get('total_duration', 0):g}ms",
        ]
        blocks = [
            {"type": "section", "text": {"type": "mrkdwn", "text": text}},
            {"type": "context", "elements": [{"type": "mrkdwn", "text": part} for part in footer]},
        ]

        attachments = None
        if result.failed_count > 0:
            attachments = [
                {
                    "color": "warning",
                    "text": f"{result.failed_count} task(s) failed during execution",
                    "fallback": f"{result.failed_count} task(s) failed",
                }
            ]

        preview = text[:CHAT_PREVIEW_LENGTH] + ("..." if len(text) > CHAT_PREVIEW_LENGTH else "")
        return ChatMessage(text=preview, blocks=blocks, attachments=attachments)

    @staticmethod
    def format_for_api(
        result: MergedResult,
        results: Optional[Sequence[TaskResult]] = None,
    ) -> ApiResponse:
        """Project a merged result into a `{success, data, meta, errors?}` envelope."""
        errors = [
            {
                "task_id": r.task_id,
                "source": r.source,
                "message": r.error.message or "Unknown error",
            }
            for r in (results or [])
            if not r.success and r.error is not None
        ]
        timestamp_ms = result.metadata.get("merge_timestamp", 0)

        return ApiResponse(
            success=result.failed_count == 0,
            data=result.output,
            meta={
                "sources": list(result.sources),
                "result_count": result.result_count,
                "duration": result.metadata.get("total_duration", 0),
                "timestamp": datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat(),
            },
            errors=errors or None,
        )


# =============================================================================
# Presets and factories
# =============================================================================

MERGE_STRATEGIES: dict[str, MergeStrategy] = {
    "DEFAULT": MergeStrategy(mode=MergeMode.CONCAT),
    "SUCCESS_ONLY": MergeStrategy(mode=MergeMode.CONCAT, filter_failed=True),
    "AGENT_PRIORITY": MergeStrategy(mode=MergeMode.PRIORITY, priority_order=(AGENT_SOURCE, WORKFLOW_SOURCE)),
    "WORKFLOW_PRIORITY": MergeStrategy(mode=MergeMode.PRIORITY, priority_order=(WORKFLOW_SOURCE, AGENT_SOURCE)),
    "DEDUPE": MergeStrategy(mode=MergeMode.DEDUPE, filter_failed=True),
}


def merge_results(
    results: Sequence[TaskResult],
    strategy: MergeStrategy = MERGE_STRATEGIES["DEFAULT"],
) -> MergedResult:
    """Merge results with a fresh ResultMerger."""
    return ResultMerger().merge(results, strategy)


def create_merge_strategy(mode: MergeMode | str, **options: Any) -> MergeStrategy:
    if "priority_order" in options:
        options["priority_order"] = tuple(options["priority_order"])
    return MergeStrategy(mode=MergeMode(mode), **options)


def create_priority_strategy(priority_order: Sequence[str], filter_failed: bool = False) -> MergeStrategy:
    return MergeStrategy(mode=MergeMode.PRIORITY, priority_order=tuple(priority_order), filter_failed=filter_failed)


def create_custom_strategy(
    merger: Callable[[list[TaskResult]], Any],
    filter_failed: bool = False,
) -> MergeStrategy:
    return MergeStrategy(mode=MergeMode.CUSTOM, custom_merger=merger, filter_failed=filter_failed)
