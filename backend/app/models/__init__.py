"""Models package - re-exports for convenience."""

from backend.app.models.common import (
    CamelModel,
    DetailLevel,
    FocusArea,
    OutputFormat,
    Theme,
    VersionSource,
)
from backend.app.models.policy import (
    CoverageDetail,
    Eligibility,
    ImportantContacts,
    PolicyData,
    ProcessingOptions,
    RiskAssessment,
    Scenario,
)
from backend.app.models.settings import (
    AgentProfile,
    AgentSettings,
    AgentSettingsUpdate,
    ExportPreferences,
    UiPreferences,
)

__all__ = [
    "AgentProfile",
    "AgentSettings",
    "AgentSettingsUpdate",
    "CamelModel",
    "CoverageDetail",
    "DetailLevel",
    "Eligibility",
    "ExportPreferences",
    "FocusArea",
    "ImportantContacts",
    "OutputFormat",
    "PolicyData",
    "ProcessingOptions",
    "RiskAssessment",
    "Scenario",
    "Theme",
    "UiPreferences",
    "VersionSource",
]
