"""Skill descriptors consumed from the skill registry.

Registry payloads are validated into these models at the registry boundary,
so the resolver only ever sees well-formed skills.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from routing_core.errors import SkillValidationError


class RuntimeType(str, Enum):
    """How a skill runs once selected."""
    CODE = "code"
    MCP = "mcp"
    PROMPT = "prompt"
    COMPOSITE = "composite"

    @property
    def is_executable(self) -> bool:
        return self in (RuntimeType.CODE, RuntimeType.MCP)


class SkillParameter(BaseModel):
    """Input a skill accepts."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    type: str = "string"
    description: str = ""
    required: bool = False
    default: Any = None


class SkillOutput(BaseModel):
    """Value a skill produces."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    type: str = "string"
    description: str = ""


class Extension(BaseModel):
    """A registered capability (skill) that can handle requests."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    slug: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    runtime_type: RuntimeType
    parameters: list[SkillParameter] = Field(default_factory=list)
    outputs: list[SkillOutput] = Field(default_factory=list)
    required_tools: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    triggers: list[str] = Field(default_factory=list)

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("triggers")
    @classmethod
    def drop_blank_triggers(cls, v: list[str]) -> list[str]:
        return [t.strip() for t in v if t and t.strip()]


class ResolvedSkill(BaseModel):
    """A skill matched against a request, with the triggers that fired."""

    skill: Extension
    matched_triggers: list[str] = Field(default_factory=list)


def parse_extension(payload: dict[str, Any] | Extension) -> Extension:
    """Validate a raw registry payload into an Extension.

    Raises:
        SkillValidationError: If the payload is not a valid skill (for
            example an unknown runtime type)
    """
    if isinstance(payload, Extension):
        return payload
    try:
        return Extension.model_validate(payload)
    except ValidationError as e:
        slug = payload.get("slug") if isinstance(payload, dict) else None
        raise SkillValidationError(f"Invalid skill payload: {slug or '<unnamed>'}", errors=e.errors()) from e
