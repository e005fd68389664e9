"""Skill models, registry interface and resolution."""

from .models import (
    Extension,
    ResolvedSkill,
    RuntimeType,
    SkillOutput,
    SkillParameter,
    parse_extension,
)
from .registry import InMemorySkillRegistry, SkillRegistry
from .resolver import (
    SkillResolutionResult,
    SkillResolver,
    format_skill_prompt,
    merge_skill_names,
    resolve_skills_from_registry,
)

__all__ = [
    "Extension",
    "ResolvedSkill",
    "RuntimeType",
    "SkillOutput",
    "SkillParameter",
    "parse_extension",
    "InMemorySkillRegistry",
    "SkillRegistry",
    "SkillResolutionResult",
    "SkillResolver",
    "format_skill_prompt",
    "merge_skill_names",
    "resolve_skills_from_registry",
]
