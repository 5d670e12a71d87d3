"""Common types and enums shared across all models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire.

    Accepts both camelCase and snake_case on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DetailLevel(str, Enum):
    """How much depth the narrative summary should carry."""

    basic = "basic"
    standard = "standard"
    comprehensive = "comprehensive"
    expert = "expert"


class FocusArea(str, Enum):
    """Policy areas the summary should emphasise."""

    coverage = "coverage"
    exclusions = "exclusions"
    eligibility = "eligibility"
    contacts = "contacts"
    benefits = "benefits"
    costs = "costs"


class OutputFormat(str, Enum):
    """Narrative shape requested from the extraction service."""

    structured = "structured"
    narrative = "narrative"
    bullet = "bullet"
    detailed = "detailed"


class VersionSource(str, Enum):
    """What produced a summary version."""

    extraction = "extraction"
    regeneration = "regeneration"
    edit = "edit"


class Theme(str, Enum):
    """UI colour theme."""

    light = "light"
    dark = "dark"
    system = "system"
