"""Tests for skill resolution and prompt rendering."""

from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def registry(sample_skill_payloads):
    """Create a registry with the sample skills registered globally."""
    from routing_core.skills.registry import InMemorySkillRegistry

    registry = InMemorySkillRegistry()
    for payload in sample_skill_payloads:
        registry.register(payload)
    return registry


class TestFormatSkillPrompt:
    """Tests for format_skill_prompt."""

    def test_full_prompt(self, sample_skill_payloads):
        """Test every section is rendered when present."""
        from routing_core.skills.models import ResolvedSkill, parse_extension
        from routing_core.skills.resolver import format_skill_prompt

        prompt = format_skill_prompt(
            ResolvedSkill(skill=parse_extension(sample_skill_payloads[0]), matched_triggers=["linear"])
        )

        assert prompt.startswith("## Skill: Linear Task\nCreate and update Linear issues")
        assert "**Matched triggers:** linear" in prompt
        assert "- `title` (string, required): Issue title" in prompt
        assert "- `priority` (number) (default: 2)" in prompt
        assert "**Required tools:** linear.create_issue" in prompt

    def test_minimal_prompt(self):
        """Test empty sections are omitted."""
        from routing_core.skills.models import ResolvedSkill, parse_extension
        from routing_core.skills.resolver import format_skill_prompt

        skill = parse_extension({"slug": "noop", "name": "Noop", "runtime_type": "prompt"})

        assert format_skill_prompt(ResolvedSkill(skill=skill)) == "## Skill: Noop"


class TestResolveSkillsFromRegistry:
    """Tests for resolve_skills_from_registry."""

    @pytest.mark.asyncio
    async def test_partitions_by_runtime(self, registry):
        """Test executable and prompt skills are partitioned."""
        from routing_core.skills.resolver import PROMPT_SEPARATOR, resolve_skills_from_registry

        result = await resolve_skills_from_registry(
            registry, "org-1", "put the linear issue into the weekly report"
        )

        assert [r.skill.slug for r in result.executable_skills] == ["linear-task"]
        assert [r.skill.slug for r in result.prompt_skills] == ["weekly-report"]
        assert len(result.skill_prompts) == 2
        assert result.combined_prompt.count(PROMPT_SEPARATOR) == 1
        assert set(result.slugs) == {"linear-task", "weekly-report"}

    @pytest.mark.asyncio
    async def test_legacy_slugs_skipped(self, registry):
        """Test skills already chosen by the caller are not resolved again."""
        from routing_core.skills.resolver import resolve_skills_from_registry

        result = await resolve_skills_from_registry(
            registry, "org-1", "create a linear issue", legacy_skill_slugs=["Linear-Task"]
        )

        assert result.resolved_skills == []
        assert result.skill_prompts == []

    @pytest.mark.asyncio
    async def test_registry_failure_returns_empty(self):
        """Test a failing registry never breaks routing."""
        from routing_core.skills.resolver import resolve_skills_from_registry

        failing = MagicMock()
        failing.resolve_skills_for_request = AsyncMock(side_effect=TimeoutError("registry down"))

        result = await resolve_skills_from_registry(failing, "org-1", "create a linear issue")

        assert result.resolved_skills == []
        assert result.combined_prompt == ""

    @pytest.mark.asyncio
    async def test_to_dict(self, registry):
        """Test serialization lists slugs per partition."""
        from routing_core.skills.resolver import resolve_skills_from_registry

        result = await resolve_skills_from_registry(registry, "org-1", "create a linear issue")
        data = result.to_dict()

        assert data["executable_skills"] == ["linear-task"]
        assert data["prompt_skills"] == []
        assert data["resolved_skills"][0]["skill"]["runtime_type"] == "mcp"


class TestSkillResolver:
    """Tests for SkillResolver."""

    @pytest.mark.asyncio
    async def test_without_registry(self):
        """Test a resolver with no registry resolves nothing."""
        from routing_core.skills.resolver import SkillResolver

        result = await SkillResolver().resolve("org-1", "create a linear issue")

        assert result.slugs == []

    @pytest.mark.asyncio
    async def test_with_registry(self, registry):
        """Test the resolver delegates to the registry."""
        from routing_core.skills.resolver import SkillResolver

        result = await SkillResolver(registry).resolve("org-1", "summarize the meeting notes")

        assert result.slugs == ["meeting-notes"]


class TestMergeSkillNames:
    """Tests for merge_skill_names."""

    def test_legacy_first_without_duplicates(self):
        """Test ordering and case-insensitive de-duplication."""
        from routing_core.skills.resolver import merge_skill_names

        merged = merge_skill_names(["linear-task", "Notion"], ["notion", "meeting-notes", "linear-task"])

        assert merged == ["linear-task", "Notion", "meeting-notes"]

    def test_empty(self):
        """Test empty inputs."""
        from routing_core.skills.resolver import merge_skill_names

        assert merge_skill_names([], []) == []
