"""
Skill resolution: match registry skills to a request and render prompts.

Routing never fails because skill augmentation is unavailable: any registry
error yields an empty result and a warning.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import structlog

from routing_core.skills.models import ResolvedSkill
from routing_core.skills.registry import SkillRegistry

logger = structlog.get_logger(__name__)

PROMPT_SEPARATOR = "\n\n---\n\n"


@dataclass
class SkillResolutionResult:
    """Skills matched for one request, partitioned by runtime."""

    resolved_skills: list[ResolvedSkill] = field(default_factory=list)
    skill_prompts: list[str] = field(default_factory=list)
    executable_skills: list[ResolvedSkill] = field(default_factory=list)
    prompt_skills: list[ResolvedSkill] = field(default_factory=list)

    @property
    def slugs(self) -> list[str]:
        return [r.skill.slug for r in self.resolved_skills]

    @property
    def combined_prompt(self) -> str:
        return PROMPT_SEPARATOR.join(self.skill_prompts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolved_skills": [r.model_dump(mode="json") for r in self.resolved_skills],
            "skill_prompts": list(self.skill_prompts),
            "executable_skills": [r.skill.slug for r in self.executable_skills],
            "prompt_skills": [r.skill.slug for r in self.prompt_skills],
        }


def format_skill_prompt(resolved: ResolvedSkill) -> str:
    """Render one matched skill as a markdown block."""
    skill = resolved.skill
    lines = [f"## Skill: {skill.name}"]
    if skill.description:
        lines.append(skill.description)

    if resolved.matched_triggers:
        lines.append(f"**Matched triggers:** {', '.join(resolved.matched_triggers)}")

    if skill.parameters:
        lines.append("**Parameters:**")
        for param in skill.parameters:
            line = f"- `{param.name}` ({param.type}{', required' if param.required else ''})"
            if param.description:
                line += f": {param.description}"
            if param.default is not None:
                line += f" (default: {param.default})"
            lines.append(line)

    if skill.outputs:
        lines.append("**Outputs:**")
        for output in skill.outputs:
            line = f"- `{output.name}` ({output.type})"
            if output.description:
                line += f": {output.description}"
            lines.append(line)

    if skill.required_tools:
        lines.append(f"**Required tools:** {', '.join(skill.required_tools)}")
    if skill.dependencies:
        lines.append(f"**Dependencies:** {', '.join(skill.dependencies)}")

    return "\n".join(lines)


async def resolve_skills_from_registry(
    registry: SkillRegistry,
    organization_id: str,
    request: str,
    legacy_skill_slugs: Iterable[str] = (),
) -> SkillResolutionResult:
    """Resolve registry skills for a request.

    Args:
        registry: Skill lookup service
        organization_id: Organization the request belongs to
        request: Raw request text
        legacy_skill_slugs: Skills already chosen by the caller; these are
            skipped to avoid injecting the same prompt twice

    Returns:
        SkillResolutionResult, empty when the registry fails
    """
    try:
        matches = await registry.resolve_skills_for_request(organization_id, request)
    except Exception as e:
        logger.warning(
            "Skill registry lookup failed, continuing without skills",
            organization_id=organization_id,
            error=str(e),
        )
        return SkillResolutionResult()

    legacy = {slug.lower() for slug in legacy_skill_slugs}
    result = SkillResolutionResult()
    for resolved in matches:
        if resolved.skill.slug.lower() in legacy:
            continue
        result.resolved_skills.append(resolved)
        result.skill_prompts.append(format_skill_prompt(resolved))
        if resolved.skill.runtime_type.is_executable:
            result.executable_skills.append(resolved)
        else:
            result.prompt_skills.append(resolved)

    logger.debug(
        "Skills resolved",
        organization_id=organization_id,
        resolved=len(result.resolved_skills),
        executable=len(result.executable_skills),
        prompt=len(result.prompt_skills),
    )
    return result


def merge_skill_names(legacy: Iterable[str], resolved: Iterable[str]) -> list[str]:
    """Legacy slugs followed by newly resolved ones, without duplicates."""
    merged: list[str] = []
    seen: set[str] = set()
    for slug in [*legacy, *resolved]:
        if slug.lower() not in seen:
            seen.add(slug.lower())
            merged.append(slug)
    return merged


class SkillResolver:
    """Registry-bound wrapper around `resolve_skills_from_registry`."""

    def __init__(self, registry: Optional[SkillRegistry] = None):
        self.registry = registry

    async def resolve(
        self,
        organization_id: str,
        request: str,
        legacy_skill_slugs: Iterable[str] = (),
    ) -> SkillResolutionResult:
        if self.registry is None:
            return SkillResolutionResult()
        return await resolve_skills_from_registry(
            self.registry, organization_id, request, legacy_skill_slugs
        )
