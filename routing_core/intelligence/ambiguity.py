"""
Ambiguity detection and clarification questions.

`detect_ambiguity` sums independent heuristic contributions:

| Check                                   | Score | Cap  |
|-----------------------------------------|-------|------|
| Vague verb without a concrete target    | 0.20  |      |
| No specific file/function/component     | 0.25  |      |
| Request shorter than 15 characters      | 0.30  |      |
| Topic with several interpretations      | 0.15  | 0.30 |
| Unresolved pronoun                      | 0.20  |      |
| Conflicting instruction pair            | 0.30  | 0.40 |

The total is clamped to [0, 1]; a score of 0.6 or more is ambiguous.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from routing_core.intelligence.intent_detector import ExtractedEntities

logger = structlog.get_logger(__name__)


AMBIGUITY_THRESHOLD = 0.6
MIN_REQUEST_LENGTH = 15

SCORE_VAGUE_VERB = 0.2
SCORE_NO_SPECIFICITY = 0.25
SCORE_TOO_SHORT = 0.3
SCORE_MULTI_INTERPRETATION = 0.15
MAX_MULTI_INTERPRETATION = 0.3
SCORE_PRONOUN = 0.2
SCORE_CONFLICTING = 0.3
MAX_CONFLICTING = 0.4

MAX_SUGGESTED_ANSWERS = 5


@dataclass
class AmbiguityResult:
    """Outcome of ambiguity scoring."""

    is_ambiguous: bool
    ambiguity_score: float
    reasons: list[str] = field(default_factory=list)
    suggested_clarifications: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_ambiguous": self.is_ambiguous,
            "ambiguity_score": self.ambiguity_score,
            "reasons": list(self.reasons),
            "suggested_clarifications": list(self.suggested_clarifications),
        }


@dataclass
class ClarificationQuestion:
    """Question to put back to the user before acting."""

    question: str
    context: str
    suggested_answers: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        result = {"question": self.question, "context": self.context}
        if self.suggested_answers:
            result["suggested_answers"] = list(self.suggested_answers)
        return result


# =============================================================================
# Patterns
# =============================================================================

VAGUE_VERB_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(rf"\b({verb})\b", re.IGNORECASE)
    for verb in (
        "fix", "improve", "update", "change", "make better", "enhance", "refactor",
        "clean up", "optimize", "handle", "deal with", "address", "look at",
        "work on", "tweak",
    )
) + tuple(
    re.compile(verb)
    for verb in (
        "해줘", "고쳐줘", "바꿔줘", "수정해", "개선해", "좀 해", "처리해", "손봐",
        "다듬어", "정리해",
    )
)

SPECIFICITY_PATTERNS: tuple[re.Pattern, ...] = (
    # File names and paths
    re.compile(r"\b[\w-]+\.(ts|tsx|js|jsx|py|go|rs|java|css|html|json|yaml|yml|md|sql)\b", re.IGNORECASE),
    # camelCase or snake_case calls
    re.compile(r"\b[a-z][a-zA-Z0-9]*[A-Z][a-zA-Z0-9]*\s*\("),
    re.compile(r"\b[a-z_]+[a-z0-9]*_[a-z_]+\s*\("),
    # PascalCase UI components
    re.compile(
        r"\b[A-Z][a-zA-Z0-9]+(?:Component|Page|View|Modal|Dialog|Form|Button|Widget"
        r"|Card|Panel|Layout|Header|Footer|Sidebar|Nav)\b"
    ),
    re.compile(r"\bclass\s+[A-Z][a-zA-Z0-9]+"),
    # API endpoints
    re.compile(r"/(api|v[0-9]+)/"),
    # CSS selectors
    re.compile(r"\.[a-z][a-zA-Z0-9-]+"),
    # Import paths
    re.compile(r"from\s+['\"][^'\"]+['\"]"),
    re.compile(r"line\s+\d+", re.IGNORECASE),
    # Error codes
    re.compile(r"error\s*:\s*\w+", re.IGNORECASE),
    re.compile(r"\bERR_\w+"),
)

SPECIFIC_IMPERATIVES = re.compile(
    r"\b(run tests|build|deploy|lint|format|start|stop|restart|install|migrate|seed)\b",
    re.IGNORECASE,
)

PRONOUN_START_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(rf"^{pronoun}\b", re.IGNORECASE)
    for pronoun in ("it", "this", "that", "those", "these", "they", "them")
) + tuple(
    re.compile(rf"^{pronoun}")
    for pronoun in ("이거", "그거", "저거", "이것", "그것", "저것", "이게", "그게", "저게")
)

# "fix it", "clean this up": a bare verb whose only object is a pronoun
BARE_PRONOUN_OBJECT = re.compile(
    r"^[a-z]+(?:\s+(?:up|out))?\s+(it|this|that|them|those|these)(?:\s+(?:up|out))?\s*[.!?]*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class InterpretationPattern:
    pattern: re.Pattern
    topic: str
    question: str


MULTI_INTERPRETATION_PATTERNS: tuple[InterpretationPattern, ...] = (
    InterpretationPattern(
        re.compile(r"\badd error handling\b", re.IGNORECASE),
        "error handling scope",
        "Where should error handling be added? (specific files, functions, or endpoints)",
    ),
    InterpretationPattern(
        re.compile(r"\badd (logging|logs)\b", re.IGNORECASE),
        "logging scope",
        "Where should logging be added and at what level? (debug, info, warn, error)",
    ),
    InterpretationPattern(
        re.compile(r"\badd (tests|testing)\b", re.IGNORECASE),
        "testing scope",
        "Which modules or functions should be tested? (unit, integration, e2e)",
    ),
    InterpretationPattern(
        re.compile(r"\badd (validation|input validation)\b", re.IGNORECASE),
        "validation scope",
        "Which inputs or endpoints need validation? What rules should be applied?",
    ),
    InterpretationPattern(
        re.compile(r"\badd (auth|authentication|authorization)\b", re.IGNORECASE),
        "auth scope",
        "Which routes or resources need authentication/authorization? What auth method?",
    ),
    InterpretationPattern(
        re.compile(r"\brefactor\b", re.IGNORECASE),
        "refactoring scope",
        "What specific code should be refactored, and what is the desired outcome?",
    ),
    InterpretationPattern(
        re.compile(r"\b(style|styling|css)\b", re.IGNORECASE),
        "styling scope",
        "Which components or pages need styling changes? What is the desired look?",
    ),
    InterpretationPattern(
        re.compile(r"\b(performance|slow|fast|speed)\b", re.IGNORECASE),
        "performance target",
        "Which part of the system is slow? Is there a specific metric or benchmark target?",
    ),
    InterpretationPattern(
        re.compile(r"\b(security|secure|vulnerability)\b", re.IGNORECASE),
        "security scope",
        "Which security concern should be addressed? (XSS, CSRF, injection, auth, etc.)",
    ),
    InterpretationPattern(
        re.compile(r"에러\s*처리"),
        "error handling scope (ko)",
        "어디에 에러 처리를 추가해야 하나요? (파일, 함수, 엔드포인트)",
    ),
    InterpretationPattern(
        re.compile(r"테스트\s*(추가|작성)"),
        "testing scope (ko)",
        "어떤 모듈이나 함수에 테스트를 추가해야 하나요? (단위, 통합, e2e)",
    ),
    InterpretationPattern(
        re.compile(r"리팩토링|리팩터링"),
        "refactoring scope (ko)",
        "어떤 코드를 리팩토링해야 하나요? 원하는 결과물은 무엇인가요?",
    ),
)


@dataclass(frozen=True)
class ConflictPair:
    first: re.Pattern
    second: re.Pattern
    description: str


CONFLICT_PAIRS: tuple[ConflictPair, ...] = (
    ConflictPair(
        re.compile(r"\b(add|include|keep)\b", re.IGNORECASE),
        re.compile(r"\b(remove|delete|drop)\b", re.IGNORECASE),
        "Request mentions both adding and removing. Clarify which action is intended for each item.",
    ),
    ConflictPair(
        re.compile(r"\b(simplif\w*|simpler|reduce)\b", re.IGNORECASE),
        re.compile(r"\b(add more|extend|expand|more features)\b", re.IGNORECASE),
        "Request asks to both simplify and extend. Clarify the priority.",
    ),
    ConflictPair(
        re.compile(r"\b(strict|stricter|enforce)\b", re.IGNORECASE),
        re.compile(r"\b(flexible|lenient|relax)\b", re.IGNORECASE),
        "Request mentions both stricter and more flexible behavior. Clarify which applies where.",
    ),
    ConflictPair(
        re.compile(r"\b(sync|synchronous)\b", re.IGNORECASE),
        re.compile(r"\b(async|asynchronous)\b", re.IGNORECASE),
        "Request mentions both synchronous and asynchronous. Clarify the desired approach.",
    ),
)


# =============================================================================
# Checks
# =============================================================================


def _has_specific_target(text: str) -> bool:
    return any(p.search(text) for p in SPECIFICITY_PATTERNS)


def _check_vague_verbs(text: str, reasons: list[str], clarifications: list[str]) -> float:
    matched = [m.group(0) for m in (p.search(text) for p in VAGUE_VERB_PATTERNS) if m]
    if not matched or _has_specific_target(text):
        return 0.0

    reasons.append(f"Vague verb(s) without specific target: {', '.join(matched)}")
    clarifications.append("Which specific file, function, or component should be affected?")
    return SCORE_VAGUE_VERB


def _check_specificity(text: str, reasons: list[str], clarifications: list[str]) -> float:
    if _has_specific_target(text) or SPECIFIC_IMPERATIVES.search(text):
        return 0.0

    reasons.append("No specific file names, function names, or component names mentioned")
    clarifications.append("Can you specify the exact files, functions, or components involved?")
    return SCORE_NO_SPECIFICITY


def _check_length(text: str, reasons: list[str], clarifications: list[str]) -> float:
    if len(text) >= MIN_REQUEST_LENGTH:
        return 0.0

    reasons.append(f"Request is very short ({len(text)} characters) and may lack detail")
    clarifications.append("Could you provide more detail about what you need done?")
    return SCORE_TOO_SHORT


def _check_multiple_interpretations(text: str, reasons: list[str], clarifications: list[str]) -> float:
    if _has_specific_target(text):
        return 0.0

    added = 0.0
    for entry in MULTI_INTERPRETATION_PATTERNS:
        if entry.pattern.search(text):
            reasons.append(f'Ambiguous scope for "{entry.topic}": multiple interpretations possible')
            clarifications.append(entry.question)
            added += SCORE_MULTI_INTERPRETATION
    return min(added, MAX_MULTI_INTERPRETATION)


def _check_pronouns(text: str, reasons: list[str], clarifications: list[str]) -> float:
    pronoun = None
    for pattern in PRONOUN_START_PATTERNS:
        match = pattern.search(text)
        if match:
            pronoun = match.group(0)
            break
    if pronoun is None:
        match = BARE_PRONOUN_OBJECT.search(text)
        if match:
            pronoun = match.group(1)
    if pronoun is None:
        return 0.0

    reasons.append(f'Pronoun ("{pronoun}") without a clear antecedent')
    clarifications.append(
        "What specifically are you referring to? Please name the file, component, or feature."
    )
    return SCORE_PRONOUN


def _check_conflicts(text: str, reasons: list[str], clarifications: list[str]) -> float:
    added = 0.0
    for pair in CONFLICT_PAIRS:
        if pair.first.search(text) and pair.second.search(text):
            reasons.append(f"Potentially conflicting instructions: {pair.description}")
            clarifications.append(pair.description)
            added += SCORE_CONFLICTING
    return min(added, MAX_CONFLICTING)


_CHECKS = (
    _check_vague_verbs,
    _check_specificity,
    _check_length,
    _check_multiple_interpretations,
    _check_pronouns,
    _check_conflicts,
)


def detect_ambiguity(request: str, threshold: float = AMBIGUITY_THRESHOLD) -> AmbiguityResult:
    """Score how under-specified a request is.

    Args:
        request: Raw request text
        threshold: Score at or above which the request is ambiguous

    Returns:
        AmbiguityResult. Reasons are empty for a clear request.
    """
    text = (request or "").strip()
    reasons: list[str] = []
    clarifications: list[str] = []

    score = sum(check(text, reasons, clarifications) for check in _CHECKS)
    score = round(min(1.0, max(0.0, score)), 2)
    is_ambiguous = score >= threshold

    logger.debug(
        "Ambiguity detection complete",
        score=score,
        is_ambiguous=is_ambiguous,
        reason_count=len(reasons),
    )
    if is_ambiguous:
        logger.info("Ambiguous request detected", score=score, reasons=reasons)

    return AmbiguityResult(
        is_ambiguous=is_ambiguous,
        ambiguity_score=score,
        reasons=reasons,
        suggested_clarifications=clarifications,
    )


def needs_clarification(ambiguity_score: float, threshold: float = AMBIGUITY_THRESHOLD) -> bool:
    """Check a precomputed score against the ambiguity threshold."""
    return ambiguity_score >= threshold


# =============================================================================
# Clarification
# =============================================================================


def _suggest_answers(
    request: str,
    reasons: list[str],
    entities: Optional[ExtractedEntities],
) -> list[str]:
    suggestions: list[str] = []
    lowered = request.lower()

    if any("scope" in reason for reason in reasons):
        if entities and entities.file_names:
            suggestions.append(f"All files in {entities.file_names[0]}")
            suggestions.append(f"Only {entities.file_names[0]}")
        else:
            suggestions.extend(["Entire codebase", "Specific file or module", "Current directory only"])

    if "error" in lowered or "에러" in lowered:
        suggestions.extend([
            "Add try-catch blocks",
            "Add error logging",
            "Add user-facing error messages",
            "Add error recovery logic",
        ])

    if "test" in lowered or "테스트" in lowered:
        suggestions.extend(["Unit tests", "Integration tests", "End-to-end tests"])

    if "refactor" in lowered or "리팩토링" in lowered:
        suggestions.extend(["Extract functions", "Improve naming", "Remove duplication", "Simplify logic"])

    if entities and entities.providers:
        provider = entities.providers[0]
        suggestions.extend([
            f"Create in {provider}",
            f"Update existing {provider} item",
            f"Search {provider}",
        ])

    return suggestions[:MAX_SUGGESTED_ANSWERS]


def generate_clarification_question(
    request: str,
    ambiguity: AmbiguityResult,
    entities: Optional[ExtractedEntities] = None,
) -> ClarificationQuestion:
    """Build the question to ask the user about an ambiguous request.

    Args:
        request: Raw request text
        ambiguity: Result of detect_ambiguity for the same request
        entities: Entities extracted from the request, used for context

    Returns:
        ClarificationQuestion. A clear request gets a proceed confirmation.
    """
    if not ambiguity.is_ambiguous:
        return ClarificationQuestion(
            question="The request seems clear. Do you want to proceed?",
            context="No ambiguity detected",
        )

    question = (
        ambiguity.suggested_clarifications[0]
        if ambiguity.suggested_clarifications
        else "Could you provide more details about what you need?"
    )

    context_parts: list[str] = []
    if entities:
        if entities.providers:
            context_parts.append(f"Detected providers: {', '.join(entities.providers)}")
        if entities.file_names:
            context_parts.append(f"Detected files: {', '.join(entities.file_names)}")
        if entities.dates:
            context_parts.append(f"Detected dates: {', '.join(entities.dates)}")
        if entities.project_names:
            context_parts.append(f"Detected projects: {', '.join(entities.project_names)}")
    context = " | ".join(context_parts) if context_parts else f"Ambiguity score: {ambiguity.ambiguity_score}"

    answers = _suggest_answers(request, ambiguity.reasons, entities)

    return ClarificationQuestion(
        question=question,
        context=context,
        suggested_answers=answers or None,
    )
