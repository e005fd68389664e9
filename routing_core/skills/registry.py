"""
Skill registry interface and an in-memory keyword registry.

The routing layer only needs `resolve_skills_for_request`. Production
deployments plug in their own store; `InMemorySkillRegistry` serves tests,
local runs and small deployments.
"""

from typing import Any, Optional, Protocol

import structlog

from routing_core.skills.models import Extension, ResolvedSkill, parse_extension

logger = structlog.get_logger(__name__)

NAME_MATCH_BONUS = 5.0


class SkillRegistry(Protocol):
    """Lookup service that matches skills against a request."""

    async def resolve_skills_for_request(
        self, organization_id: str, request: str
    ) -> list[ResolvedSkill]: ...


class InMemorySkillRegistry:
    """Keyword-matching registry held in process memory.

    Skills registered with an organization are visible only to it; skills
    registered without one are global. An organization's skill shadows a
    global skill with the same slug.

    Scoring per skill:
    - each trigger found in the request: 1 + len(trigger) / 10
    - name or slug found in the request: +5
    """

    def __init__(self, min_score: float = 1.0, limit: int = 10):
        self.min_score = min_score
        self.limit = limit
        self._global: dict[str, Extension] = {}
        self._by_org: dict[str, dict[str, Extension]] = {}
        self._log = logger.bind(component="skill_registry")

    def register(
        self,
        payload: dict[str, Any] | Extension,
        organization_id: Optional[str] = None,
    ) -> Extension:
        """Validate and register a skill.

        Raises:
            SkillValidationError: If the payload is not a valid skill
        """
        skill = parse_extension(payload)
        bucket = self._global if organization_id is None else self._by_org.setdefault(organization_id, {})
        bucket[skill.slug] = skill
        self._log.debug(
            "Skill registered",
            slug=skill.slug,
            runtime_type=skill.runtime_type.value,
            organization_id=organization_id,
        )
        return skill

    def unregister(self, slug: str, organization_id: Optional[str] = None) -> bool:
        bucket = self._global if organization_id is None else self._by_org.get(organization_id, {})
        return bucket.pop(slug.strip().lower(), None) is not None

    def list_skills(self, organization_id: Optional[str] = None) -> list[Extension]:
        """Skills visible to an organization (global plus its own)."""
        visible = dict(self._global)
        if organization_id is not None:
            visible.update(self._by_org.get(organization_id, {}))
        return list(visible.values())

    def _score(self, skill: Extension, text: str) -> tuple[float, list[str]]:
        matched: list[str] = []
        score = 0.0
        for trigger in skill.triggers:
            if trigger.lower() in text:
                matched.append(trigger)
                score += 1 + len(trigger) / 10

        if skill.name.lower() in text or skill.slug in text:
            score += NAME_MATCH_BONUS
            if skill.name not in matched:
                matched.append(skill.name)
        return score, matched

    async def resolve_skills_for_request(
        self, organization_id: str, request: str
    ) -> list[ResolvedSkill]:
        """Return matching skills, best score first."""
        text = (request or "").lower()
        scored: list[tuple[float, ResolvedSkill]] = []

        for skill in self.list_skills(organization_id):
            score, matched = self._score(skill, text)
            if score >= self.min_score:
                scored.append((score, ResolvedSkill(skill=skill, matched_triggers=matched)))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [resolved for _, resolved in scored[: self.limit]]
