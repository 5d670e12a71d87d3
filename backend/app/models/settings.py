"""Per-agent settings sections."""

from pydantic import Field

from backend.app.models.common import CamelModel, Theme
from backend.app.models.policy import ProcessingOptions


class AgentProfile(CamelModel):
    """Agent and firm details printed on exported summaries."""

    name: str = ""
    title: str = ""
    phone: str = ""
    email: str = ""
    license: str = ""
    signature: str = ""
    firm_name: str = ""
    firm_address: str = ""
    firm_phone: str = ""
    firm_website: str = ""


class ExportPreferences(CamelModel):
    """Defaults applied to PDF export when the request leaves a value out."""

    include_branding: bool = True
    include_explanations: bool = True
    include_technical_details: bool = False
    include_agent_signature: bool = True
    default_client_name: str = ""
    default_policy_reference: str = ""


class UiPreferences(CamelModel):
    theme: Theme = Theme.system
    compact_view: bool = False
    auto_refresh: bool = True
    show_preview: bool = True


class AgentSettings(CamelModel):
    """All settings for one agent."""

    default_processing_options: ProcessingOptions = Field(default_factory=ProcessingOptions)
    agent_profile: AgentProfile = Field(default_factory=AgentProfile)
    export_preferences: ExportPreferences = Field(default_factory=ExportPreferences)
    ui_preferences: UiPreferences = Field(default_factory=UiPreferences)


class AgentSettingsUpdate(CamelModel):
    """Partial settings update - sections left out keep their stored value."""

    default_processing_options: ProcessingOptions | None = None
    agent_profile: AgentProfile | None = None
    export_preferences: ExportPreferences | None = None
    ui_preferences: UiPreferences | None = None
