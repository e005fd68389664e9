"""Tests for the result merger and its presentation adapters."""

import pytest


def _result(task_id, source, output, success=True, duration=10.0, error=None):
    from routing_core.orchestrator.result_merger import TaskError, TaskResult

    return TaskResult(
        task_id=task_id,
        source=source,
        output=output,
        success=success,
        duration=duration,
        error=TaskError(error) if error else None,
    )


class TestMerge:
    """Tests for ResultMerger.merge."""

    def test_concat_default(self):
        """Test concat tags every result."""
        from routing_core.orchestrator.result_merger import MergeMode, merge_results

        merged = merge_results([
            _result("t1", "agent", "drafted issue"),
            _result("t2", "workflow", None, success=False, error="timeout"),
        ])

        assert merged.merge_mode == MergeMode.CONCAT
        assert merged.output == [
            {"task_id": "t1", "source": "agent", "output": "drafted issue", "success": True},
            {"task_id": "t2", "source": "workflow", "output": None, "success": False},
        ]
        assert merged.result_count == 2
        assert merged.success_count == 1
        assert merged.failed_count == 1
        assert merged.sources == ["agent", "workflow"]
        assert merged.metadata["total_duration"] == 20.0
        assert merged.metadata["average_duration"] == 10.0

    def test_empty_input(self):
        """Test merging nothing."""
        from routing_core.orchestrator.result_merger import merge_results

        merged = merge_results([])

        assert merged.output == []
        assert merged.result_count == 0
        assert merged.sources == []
        assert merged.metadata["average_duration"] == 0

    def test_success_only_keeps_counts(self):
        """Test filtered failures still count in the totals."""
        from routing_core.orchestrator.result_merger import MERGE_STRATEGIES, merge_results

        merged = merge_results(
            [_result("t1", "agent", "ok"), _result("t2", "workflow", "bad", success=False)],
            MERGE_STRATEGIES["SUCCESS_ONLY"],
        )

        assert [item["task_id"] for item in merged.output] == ["t1"]
        assert merged.result_count == 2
        assert merged.failed_count == 1
        assert merged.sources == ["agent", "workflow"]

    def test_dedupe_first_wins(self):
        """Test duplicate outputs are dropped in arrival order."""
        from routing_core.orchestrator.result_merger import MERGE_STRATEGIES, merge_results

        merged = merge_results(
            [
                _result("t1", "agent", {"title": "Login bug", "id": 1}),
                _result("t2", "workflow", "summary"),
                _result("t3", "workflow", {"id": 1, "title": "Login bug"}),
                _result("t4", "agent", "summary", success=False),
            ],
            MERGE_STRATEGIES["DEDUPE"],
        )

        assert merged.output == [{"title": "Login bug", "id": 1}, "summary"]
        assert merged.result_count == 4

    @pytest.mark.parametrize(
        "outputs,first,duplicate",
        [
            (["a", "b", "c", "a"], 0, 3),
            (["b", "a", "c", "d", "a"], 1, 4),
            ([{"title": "Login bug", "id": 1}, "x", 7, {"id": 1, "title": "Login bug"}], 0, 3),
            ([3, 1, 4, 1, 5, 9, 2, 6], 1, 3),
            (["회의록", "report", "회의록"], 0, 2),
        ],
    )
    def test_dedupe_ignores_duplicate_position(self, outputs, first, duplicate):
        """Test moving a repeated entry anywhere after its first copy keeps the output."""
        from routing_core.orchestrator.result_merger import MERGE_STRATEGIES, merge_results

        results = [_result(f"t{i}", "agent", output) for i, output in enumerate(outputs)]
        expected = merge_results(results, MERGE_STRATEGIES["DEDUPE"]).output

        moved = results[duplicate]
        rest = results[:duplicate] + results[duplicate + 1:]
        for position in range(first + 1, len(results)):
            shuffled = rest[:position] + [moved] + rest[position:]
            assert merge_results(shuffled, MERGE_STRATEGIES["DEDUPE"]).output == expected

    def test_dedupe_custom_key(self):
        """Test a caller-supplied de-duplication key."""
        from routing_core.orchestrator.result_merger import MergeMode, create_merge_strategy, merge_results

        strategy = create_merge_strategy(MergeMode.DEDUPE, dedupe_key=lambda r: r.source)

        merged = merge_results(
            [_result("t1", "agent", "a"), _result("t2", "agent", "b"), _result("t3", "workflow", "c")],
            strategy,
        )

        assert merged.output == ["a", "c"]

    def test_priority_prefers_first_successful_source(self):
        """Test priority skips failed results of the preferred source."""
        from routing_core.orchestrator.result_merger import MERGE_STRATEGIES, merge_results

        results = [
            _result("t1", "workflow", "from workflow"),
            _result("t2", "agent", "agent failed", success=False),
        ]

        assert merge_results(results, MERGE_STRATEGIES["AGENT_PRIORITY"]).output == "from workflow"

        results.append(_result("t3", "agent", "from agent"))
        assert merge_results(results, MERGE_STRATEGIES["AGENT_PRIORITY"]).output == "from agent"
        assert merge_results(results, MERGE_STRATEGIES["WORKFLOW_PRIORITY"]).output == "from workflow"

    def test_priority_all_failed(self):
        """Test the top-ranked output is returned when everything failed."""
        from routing_core.orchestrator.result_merger import create_priority_strategy, merge_results

        merged = merge_results(
            [_result("t1", "mcp", "m", success=False), _result("t2", "agent", "a", success=False)],
            create_priority_strategy(["agent", "mcp"]),
        )

        assert merged.output == "a"

    def test_priority_empty(self):
        """Test priority over no results."""
        from routing_core.orchestrator.result_merger import MERGE_STRATEGIES, merge_results

        assert merge_results([], MERGE_STRATEGIES["AGENT_PRIORITY"]).output is None

    def test_custom_reducer(self):
        """Test a custom reducer receives the candidate results."""
        from routing_core.orchestrator.result_merger import create_custom_strategy, merge_results

        strategy = create_custom_strategy(lambda rs: sum(r.output for r in rs), filter_failed=True)

        merged = merge_results(
            [_result("t1", "agent", 2), _result("t2", "agent", 3), _result("t3", "agent", 100, success=False)],
            strategy,
        )

        assert merged.output == 5

    def test_custom_without_reducer(self):
        """Test custom mode requires a reducer."""
        from routing_core.orchestrator.result_merger import MergeMode, MergeStrategy, merge_results

        with pytest.raises(ValueError, match="custom_merger"):
            merge_results([_result("t1", "agent", 1)], MergeStrategy(mode=MergeMode.CUSTOM))

    def test_merge_does_not_mutate_input(self):
        """Test the input list is left untouched."""
        from routing_core.orchestrator.result_merger import MERGE_STRATEGIES, merge_results

        results = [_result("t2", "workflow", "w"), _result("t1", "agent", "a")]
        snapshot = list(results)

        merge_results(results, MERGE_STRATEGIES["AGENT_PRIORITY"])

        assert results == snapshot


class TestFormatForChat:
    """Tests for ResultMerger.format_for_chat."""

    def test_blocks_and_footer(self):
        """Test the section text and metadata footer."""
        from routing_core.orchestrator.result_merger import ResultMerger, merge_results

        merged = merge_results([_result("t1", "agent", "Created LIN-42", duration=12.5)])
        message = ResultMerger().format_for_chat(merged)

        assert message.text == "Created LIN-42"
        assert message.blocks[0]["text"]["text"] == "Created LIN-42"
        footer = [e["text"] for e in message.blocks[1]["elements"]]
        assert footer == ["Sources: agent", "Results: 1/1 succeeded", "Duration: 12.5ms"]
        assert message.attachments is None

    def test_truncation(self):
        """Test long output is truncated with a marker."""
        from routing_core.orchestrator.result_merger import (
            CHAT_TRUNCATE_AT,
            CHAT_TRUNCATION_MARKER,
            MERGE_STRATEGIES,
            ResultMerger,
            merge_results,
        )

        merged = merge_results([_result("t1", "agent", "x" * 5000)], MERGE_STRATEGIES["AGENT_PRIORITY"])
        message = ResultMerger().format_for_chat(merged)

        section = message.blocks[0]["text"]["text"]
        assert section == "x" * CHAT_TRUNCATE_AT + CHAT_TRUNCATION_MARKER
        assert message.text == "x" * 150 + "..."

    def test_failure_attachment(self):
        """Test failures add a warning attachment."""
        from routing_core.orchestrator.result_merger import ResultMerger, merge_results

        merged = merge_results([
            _result("t1", "agent", "ok"),
            _result("t2", "workflow", None, success=False),
        ])
        message = ResultMerger().format_for_chat(merged)

        assert message.attachments[0]["color"] == "warning"
        assert message.attachments[0]["text"] == "1 task(s) failed during execution"

    def test_list_output_joined(self):
        """Test list outputs are rendered item by item."""
        from routing_core.orchestrator.result_merger import ResultMerger, merge_results

        merged = merge_results([_result("t1", "agent", "first"), _result("t2", "mcp", "second")])
        message = ResultMerger().format_for_chat(merged)

        assert message.blocks[0]["text"]["text"] == "first\n\nsecond"


class TestFormatForApi:
    """Tests for ResultMerger.format_for_api."""

    def test_success_envelope(self):
        """Test a fully successful merge has no errors key."""
        from routing_core.orchestrator.result_merger import ResultMerger, merge_results

        results = [_result("t1", "agent", "ok")]
        response = ResultMerger().format_for_api(merge_results(results), results).to_dict()

        assert response["success"] is True
        assert "errors" not in response
        assert response["meta"]["result_count"] == 1
        assert response["meta"]["sources"] == ["agent"]
        assert response["meta"]["timestamp"].endswith("+00:00")

    def test_errors_listed(self):
        """Test failed results with errors are listed."""
        from routing_core.orchestrator.result_merger import ResultMerger, merge_results

        results = [
            _result("t1", "agent", "ok"),
            _result("t2", "workflow", None, success=False, error="upstream 502"),
            _result("t3", "mcp", None, success=False),
        ]
        response = ResultMerger().format_for_api(merge_results(results), results)

        assert response.success is False
        assert response.errors == [{"task_id": "t2", "source": "workflow", "message": "upstream 502"}]
