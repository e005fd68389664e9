"""Tests for pattern-based intent detection and entity extraction."""

import pytest


class TestDetectIntent:
    """Tests for detect_intent."""

    def test_korean_create_task(self):
        """Test a Korean create request maps to create/task."""
        from routing_core.intelligence.intent_detector import IntentAction, detect_intent

        intent = detect_intent("작업 생성해줘")

        assert intent.action == IntentAction.CREATE
        assert intent.target == "task"
        assert intent.confidence >= 0.7

    def test_english_create_task(self):
        """Test the longest keyword decides the score."""
        from routing_core.intelligence.intent_detector import IntentAction, detect_intent

        intent = detect_intent("Create a new task in Linear")

        assert intent.action == IntentAction.CREATE
        assert intent.target == "task"
        # 0.85 + min(0.01 * len("create"), 0.1)
        assert intent.confidence == 0.91

    @pytest.mark.parametrize(
        "request_text,action",
        [
            ("delete the old tickets", "delete"),
            ("summarize the meeting notes", "summarize"),
            ("분석 리포트 보여줘", "analyze"),
            ("search issues about login", "search"),
        ],
    )
    def test_action_groups(self, request_text, action):
        """Test representative requests per action group."""
        from routing_core.intelligence.intent_detector import detect_intent

        assert detect_intent(request_text).action.value == action

    def test_unknown_request(self):
        """Test a request with no action keyword."""
        from routing_core.intelligence.intent_detector import IntentAction, detect_intent

        intent = detect_intent("hello there")

        assert intent.action == IntentAction.UNKNOWN
        assert intent.confidence == 0.1

    def test_target_falls_back_to_next_word(self):
        """Test the word after the action keyword is used when no target matches."""
        from routing_core.intelligence.intent_detector import detect_intent

        intent = detect_intent("create invoice")

        assert intent.target == "invoice"
        assert intent.confidence == 0.91

    def test_missing_target_lowers_confidence(self):
        """Test an action with nothing after it loses 0.15."""
        from routing_core.intelligence.intent_detector import UNKNOWN_TARGET, detect_intent

        intent = detect_intent("create")

        assert intent.target == UNKNOWN_TARGET
        assert intent.confidence == 0.76

    def test_confidence_bounds(self):
        """Test confidence stays within [0.1, 0.95]."""
        from routing_core.intelligence.intent_detector import detect_intent

        for text in ("", "x", "delete everything now", "스케줄 일정 회의 예약"):
            confidence = detect_intent(text).confidence
            assert 0.1 <= confidence <= 0.95

    def test_intent_action_parse(self):
        """Test free-form action parsing."""
        from routing_core.intelligence.intent_detector import IntentAction

        assert IntentAction.parse(" Create ") == IntentAction.CREATE
        assert IntentAction.parse("explode") == IntentAction.UNKNOWN
        assert IntentAction.parse(None) == IntentAction.UNKNOWN


class TestExtractEntities:
    """Tests for extract_entities."""

    def test_url_file_date_mention(self):
        """Test URLs, file names, relative dates and mentions."""
        from routing_core.intelligence.intent_detector import extract_entities

        entities = extract_entities("Check https://github.com/acme/api and report.pdf tomorrow @alice")

        assert entities.urls == ["https://github.com/acme/api"]
        assert entities.file_names == ["report.pdf"]
        assert entities.dates == ["tomorrow"]
        assert entities.user_mentions == ["alice"]
        assert "github" in entities.providers

    def test_file_names_inside_urls_are_skipped(self):
        """Test domains from URLs are not reported as files."""
        from routing_core.intelligence.intent_detector import extract_entities

        entities = extract_entities("open https://docs.example.com/guide")

        assert "docs.example.com" not in entities.file_names

    def test_korean_providers_and_dates(self):
        """Test Korean provider names and relative dates."""
        from routing_core.intelligence.intent_detector import extract_entities

        entities = extract_entities("내일 노션에 회의록 정리해줘")

        assert entities.providers == ["notion"]
        assert entities.dates == ["내일"]

    def test_iso_dates_deduplicated(self):
        """Test repeated dates appear once, in first-seen order."""
        from routing_core.intelligence.intent_detector import extract_entities

        entities = extract_entities("move 2024-05-01 to 2024-06-01, not 2024-05-01")

        assert entities.dates == ["2024-05-01", "2024-06-01"]

    def test_project_name(self):
        """Test project names after a project keyword."""
        from routing_core.intelligence.intent_detector import extract_entities

        entities = extract_entities("deploy project atlas to staging")

        assert entities.project_names == ["atlas"]

    def test_empty_request(self):
        """Test nothing is extracted from an empty request."""
        from routing_core.intelligence.intent_detector import extract_entities

        assert extract_entities("").is_empty()

    @pytest.mark.parametrize(
        "request_text",
        [
            "create a linear issue for @kim tomorrow",
            "노션 회의록 정리해서 다음 주 금요일까지 @park-j 에게 공유",
            "review src/router.py and docs/setup.md in repo acme-web on 2024-03-15",
            "sync github pull requests to google drive next week",
            "summarize https://notion.so/team/roadmap-2024 for @lee",
        ],
    )
    def test_reextraction_yields_subsets(self, request_text):
        """Test extracting again from text built out of the entities finds nothing new."""
        from routing_core.intelligence.intent_detector import extract_entities

        original = extract_entities(request_text)
        rebuilt = " ".join(
            original.providers
            + original.urls
            + original.file_names
            + original.dates
            + original.project_names
            + [f"@{name}" for name in original.user_mentions]
        )
        again = extract_entities(rebuilt)

        assert not original.is_empty()
        for name, values in again.to_dict().items():
            assert set(values) <= set(original.to_dict()[name]), name


class TestAnalyzeRequest:
    """Tests for analyze_request."""

    def test_analyze_request(self):
        """Test intent and entities come back together."""
        from routing_core.intelligence.intent_detector import analyze_request

        analysis = analyze_request("create a linear issue for login bug")
        data = analysis.to_dict()

        assert data["intent"]["action"] == "create"
        assert data["intent"]["target"] == "issue"
        assert data["entities"]["providers"] == ["linear"]
