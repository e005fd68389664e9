"""
Pattern-based intent detection and entity extraction.

Keyword tables cover English and Korean. Each action group carries a base
confidence; a matching keyword scores `base + min(0.01 * len(keyword), 0.1)`
so longer, more specific keywords win. The target (what is acted upon) comes
from a separate table, preferring the longest matching keyword.

These functions are pure and synchronous. Escalation to the LLM classifier
for low-confidence results lives in `llm_classifier.IntentDetector`.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog
from prometheus_client import Counter

logger = structlog.get_logger(__name__)


INTENT_DETECTIONS_TOTAL = Counter(
    "routing_intent_detections_total",
    "Pattern intent detections by resulting action",
    ["action"],
)


class IntentAction(str, Enum):
    """Kind of work a request asks for."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    SEARCH = "search"
    ANALYZE = "analyze"
    SUMMARIZE = "summarize"
    SCHEDULE = "schedule"
    NOTIFY = "notify"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "IntentAction":
        """Map a free-form value onto the enum, defaulting to UNKNOWN."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


UNKNOWN_TARGET = "unknown"


@dataclass(frozen=True)
class Intent:
    """Action and target inferred from a request."""

    action: IntentAction
    target: str
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "target": self.target,
            "confidence": self.confidence,
        }


UNKNOWN_INTENT = Intent(action=IntentAction.UNKNOWN, target=UNKNOWN_TARGET, confidence=0.1)


@dataclass
class ExtractedEntities:
    """Structured entities found in a request. Lists keep first-seen order."""

    providers: list[str] = field(default_factory=list)
    file_names: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    dates: list[str] = field(default_factory=list)
    project_names: list[str] = field(default_factory=list)
    user_mentions: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            (self.providers, self.file_names, self.urls, self.dates, self.project_names, self.user_mentions)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "providers": list(self.providers),
            "file_names": list(self.file_names),
            "urls": list(self.urls),
            "dates": list(self.dates),
            "project_names": list(self.project_names),
            "user_mentions": list(self.user_mentions),
        }


@dataclass
class RequestAnalysis:
    """Intent plus entities for one request."""

    intent: Intent
    entities: ExtractedEntities

    def to_dict(self) -> dict[str, Any]:
        return {"intent": self.intent.to_dict(), "entities": self.entities.to_dict()}


# =============================================================================
# Keyword tables
# =============================================================================


@dataclass(frozen=True)
class ActionPattern:
    action: IntentAction
    keywords: tuple[str, ...]
    confidence: float


ACTION_PATTERNS: tuple[ActionPattern, ...] = (
    ActionPattern(
        IntentAction.CREATE,
        (
            "create", "make", "new", "add", "build", "generate", "write", "draft",
            "compose", "register", "set up", "setup", "init", "initialize",
            "만들어", "만들", "생성", "추가", "작성", "등록", "초기화", "세팅",
        ),
        0.85,
    ),
    ActionPattern(
        IntentAction.READ,
        (
            "find", "show", "list", "get", "display", "view", "look up", "lookup",
            "fetch", "retrieve", "open", "check", "see",
            "찾아", "보여", "조회", "확인", "열어", "가져", "리스트", "목록",
        ),
        0.80,
    ),
    ActionPattern(
        IntentAction.SEARCH,
        (
            "search", "query", "filter", "where", "which", "locate", "look for",
            "검색", "탐색", "찾기", "필터",
        ),
        0.85,
    ),
    ActionPattern(
        IntentAction.UPDATE,
        (
            "update", "modify", "change", "edit", "rename", "fix", "patch", "revise",
            "adjust", "alter",
            "수정", "변경", "편집", "업데이트", "고쳐", "바꿔", "갱신",
        ),
        0.85,
    ),
    ActionPattern(
        IntentAction.DELETE,
        (
            "delete", "remove", "destroy", "drop", "purge", "clear", "erase", "trash",
            "삭제", "제거", "지워", "없애", "비워",
        ),
        0.90,
    ),
    ActionPattern(
        IntentAction.ANALYZE,
        (
            "analyze", "analyse", "investigate", "examine", "inspect", "diagnose",
            "debug", "audit", "review", "evaluate", "assess",
            "분석", "조사", "검토", "진단", "디버그", "평가",
        ),
        0.85,
    ),
    ActionPattern(
        IntentAction.SUMMARIZE,
        (
            "summarize", "summarise", "summary", "overview", "brief", "recap", "digest",
            "tldr", "tl;dr",
            "요약", "정리", "간추려", "브리핑",
        ),
        0.85,
    ),
    ActionPattern(
        IntentAction.SCHEDULE,
        (
            "schedule", "book", "reserve", "plan", "calendar", "appointment", "meeting",
            "event", "remind", "reminder", "set time",
            "일정", "예약", "스케줄", "캘린더", "미팅", "회의", "알림", "리마인더",
        ),
        0.85,
    ),
    ActionPattern(
        IntentAction.NOTIFY,
        (
            "notify", "alert", "send", "message", "ping", "broadcast", "announce",
            "email", "dm", "slack",
            "알려", "알림", "전송", "보내", "메시지", "공지", "통보",
        ),
        0.80,
    ),
)

TARGET_PATTERNS: dict[str, tuple[str, ...]] = {
    "task": (
        "task", "tasks", "태스크", "작업", "todo", "to-do", "ticket", "티켓", "item",
        "할일", "할 일",
    ),
    "issue": ("issue", "issues", "이슈", "bug", "버그", "defect", "결함", "problem", "문제"),
    "document": (
        "document", "documents", "doc", "docs", "문서", "page", "pages", "페이지",
        "wiki", "위키", "note", "notes", "노트", "file", "파일",
    ),
    "event": (
        "event", "events", "이벤트", "meeting", "meetings", "미팅", "회의",
        "appointment", "예약", "calendar", "캘린더", "일정",
    ),
    "pull request": (
        "pull request", "pull requests", "pr", "prs", "풀 리퀘스트", "풀리퀘스트",
        "merge request", "mr",
    ),
    "project": ("project", "projects", "프로젝트", "repo", "repository", "레포", "저장소"),
    "workflow": ("workflow", "workflows", "워크플로우", "pipeline", "파이프라인", "automation", "자동화"),
    "report": (
        "report", "reports", "리포트", "보고서", "dashboard", "대시보드", "analytics",
        "분석", "통계", "stats", "statistics",
    ),
    "message": ("message", "messages", "메시지", "notification", "notifications", "알림", "공지"),
    "user": ("user", "users", "유저", "사용자", "member", "members", "멤버", "team", "teams", "팀"),
}

PROVIDER_PATTERNS: dict[str, tuple[str, ...]] = {
    "notion": ("notion", "노션"),
    "linear": ("linear", "리니어"),
    "github": ("github", "깃허브", "깃헙"),
    "google-drive": ("google drive", "drive", "드라이브", "구글 드라이브"),
    "google-calendar": ("google calendar", "calendar", "캘린더", "구글 캘린더"),
}


# =============================================================================
# Entity regexes
# =============================================================================

URL_RE = re.compile(
    r"https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*)"
)
FILE_NAME_RE = re.compile(r"(?:[\w-]+/)*[\w-]+\.\w{1,10}")
USER_MENTION_RE = re.compile(r"@([\w-]{2,})")
ISO_DATE_RE = re.compile(r"\b\d{4}-\d{2}-\d{2}\b")

RELATIVE_DATES_EN: tuple[tuple[re.Pattern, str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), label)
    for pattern, label in (
        (r"\btoday\b", "today"),
        (r"\btomorrow\b", "tomorrow"),
        (r"\byesterday\b", "yesterday"),
        (r"\bnext\s+week\b", "next week"),
        (r"\bthis\s+week\b", "this week"),
        (r"\blast\s+week\b", "last week"),
        (r"\bnext\s+month\b", "next month"),
        (r"\bthis\s+month\b", "this month"),
        (r"\blast\s+month\b", "last month"),
        (r"\bnext\s+monday\b", "next monday"),
        (r"\bnext\s+tuesday\b", "next tuesday"),
        (r"\bnext\s+wednesday\b", "next wednesday"),
        (r"\bnext\s+thursday\b", "next thursday"),
        (r"\bnext\s+friday\b", "next friday"),
        (r"\bin\s+\d+\s+days?\b", "in N days"),
        (r"\bin\s+\d+\s+weeks?\b", "in N weeks"),
        (r"\bin\s+\d+\s+months?\b", "in N months"),
        (r"\bend\s+of\s+(?:the\s+)?(?:week|month|quarter|year)\b", "end of period"),
    )
)

RELATIVE_DATES_KO: tuple[tuple[re.Pattern, str], ...] = tuple(
    (re.compile(pattern), label)
    for pattern, label in (
        (r"오늘", "오늘"),
        (r"내일", "내일"),
        (r"어제", "어제"),
        (r"모레", "모레"),
        (r"다음\s*주", "다음주"),
        (r"이번\s*주", "이번주"),
        (r"지난\s*주", "지난주"),
        (r"다음\s*달", "다음달"),
        (r"이번\s*달", "이번달"),
        (r"지난\s*달", "지난달"),
        (r"다음\s*월요일", "다음 월요일"),
        (r"다음\s*화요일", "다음 화요일"),
        (r"다음\s*수요일", "다음 수요일"),
        (r"다음\s*목요일", "다음 목요일"),
        (r"다음\s*금요일", "다음 금요일"),
    )
)

PROJECT_NAME_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"(?:project|repo|repository)\s+[\"']?([A-Za-z][\w./-]{1,64})[\"']?", re.IGNORECASE),
    re.compile(r"(?:프로젝트|레포|저장소)\s+[\"']?([A-Za-z가-힣][\w가-힣./-]{1,64})[\"']?"),
    # org/repo, GitHub style
    re.compile(r"\b([A-Za-z][\w-]+/[A-Za-z][\w.-]+)\b"),
)

_WORD_SPLIT_RE = re.compile(r"[\s,.:;!?]+")


def _append_unique(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)


# =============================================================================
# Detection
# =============================================================================


def detect_intent(request: str) -> Intent:
    """Detect the primary action and target of a request by keyword matching.

    Args:
        request: Raw request text (English, Korean or mixed)

    Returns:
        Intent with confidence in [0.1, 0.95], rounded to 2 decimals
    """
    text = (request or "").lower()

    best_action = IntentAction.UNKNOWN
    best_action_confidence = 0.0
    matched_keyword = ""

    for pattern in ACTION_PATTERNS:
        for keyword in pattern.keywords:
            if keyword in text:
                candidate = pattern.confidence + min(len(keyword) * 0.01, 0.1)
                if candidate > best_action_confidence:
                    best_action = pattern.action
                    best_action_confidence = candidate
                    matched_keyword = keyword

    best_target = ""
    best_target_score = 0
    for target, keywords in TARGET_PATTERNS.items():
        for keyword in keywords:
            if keyword in text and len(keyword) > best_target_score:
                best_target = target
                best_target_score = len(keyword)

    # Last resort: the word right after the action keyword
    if not best_target and matched_keyword:
        idx = text.find(matched_keyword)
        after = text[idx + len(matched_keyword):].strip()
        next_word = _WORD_SPLIT_RE.split(after)[0] if after else ""
        if len(next_word) > 1:
            best_target = next_word

    if best_action is IntentAction.UNKNOWN:
        confidence = 0.1
    elif not best_target:
        confidence = max(best_action_confidence - 0.15, 0.1)
    else:
        confidence = best_action_confidence

    confidence = round(min(confidence, 0.95), 2)
    target = best_target or UNKNOWN_TARGET

    INTENT_DETECTIONS_TOTAL.labels(action=best_action.value).inc()
    logger.debug(
        "Intent detected",
        action=best_action.value,
        target=target,
        confidence=confidence,
        matched_keyword=matched_keyword or "none",
    )

    return Intent(action=best_action, target=target, confidence=confidence)


def extract_entities(request: str) -> ExtractedEntities:
    """Extract providers, URLs, file names, dates, projects and mentions.

    Args:
        request: Raw request text

    Returns:
        ExtractedEntities with de-duplicated lists in first-seen order
    """
    text = request or ""
    text_lower = text.lower()
    entities = ExtractedEntities()

    for provider, keywords in PROVIDER_PATTERNS.items():
        if any(keyword in text_lower for keyword in keywords):
            _append_unique(entities.providers, provider)

    for url in URL_RE.findall(text):
        _append_unique(entities.urls, url)

    for file_name in FILE_NAME_RE.findall(text):
        if any(file_name in url for url in entities.urls):
            continue
        _append_unique(entities.file_names, file_name)

    for iso_date in ISO_DATE_RE.findall(text):
        _append_unique(entities.dates, iso_date)
    for regex, label in RELATIVE_DATES_EN + RELATIVE_DATES_KO:
        if regex.search(text):
            _append_unique(entities.dates, label)

    for regex in PROJECT_NAME_PATTERNS:
        match = regex.search(text)
        if match and match.group(1):
            name = match.group(1).strip()
            if len(name) > 1:
                _append_unique(entities.project_names, name)

    for username in USER_MENTION_RE.findall(text):
        _append_unique(entities.user_mentions, username)

    logger.debug(
        "Entities extracted",
        provider_count=len(entities.providers),
        url_count=len(entities.urls),
        file_name_count=len(entities.file_names),
        date_count=len(entities.dates),
        project_name_count=len(entities.project_names),
        mention_count=len(entities.user_mentions),
    )

    return entities


def analyze_request(request: str) -> RequestAnalysis:
    """Detect intent and extract entities in one pass."""
    intent = detect_intent(request)
    entities = extract_entities(request)

    logger.debug(
        "Request analysis complete",
        action=intent.action.value,
        target=intent.target,
        confidence=intent.confidence,
        providers=entities.providers,
    )

    return RequestAnalysis(intent=intent, entities=entities)
