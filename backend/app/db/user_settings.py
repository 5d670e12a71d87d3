"""Helper functions for per-agent settings."""

import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.context import RequestContext
from backend.app.db.models import UserSettings as UserSettingsDB
from backend.app.models.settings import AgentSettings, AgentSettingsUpdate

_SECTIONS = (
    "default_processing_options",
    "agent_profile",
    "export_preferences",
    "ui_preferences",
)


def to_agent_settings(row: UserSettingsDB) -> AgentSettings:
    """Convert a settings row into the API model, filling defaults for missing keys."""
    return AgentSettings.model_validate({section: getattr(row, section) for section in _SECTIONS})


async def get_or_create_settings(session: AsyncSession, ctx: RequestContext) -> UserSettingsDB:
    """Load the caller's settings, creating defaults on first access.

    Commits when a row is created. A concurrent first access that loses the
    race on the unique user_id rolls back and reads the winner's row.
    """
    stmt = select(UserSettingsDB).where(UserSettingsDB.user_id == ctx.user_id)
    result = await session.execute(stmt)
    row = result.scalar_one_or_none()
    if row is not None:
        return row

    defaults = AgentSettings().model_dump(by_alias=True, mode="json")
    row = UserSettingsDB(
        settings_id=uuid.uuid4(),
        user_id=ctx.user_id,
        default_processing_options=defaults["defaultProcessingOptions"],
        agent_profile=defaults["agentProfile"],
        export_preferences=defaults["exportPreferences"],
        ui_preferences=defaults["uiPreferences"],
    )
    session.add(row)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        result = await session.execute(stmt)
        return result.scalar_one()
    return row


async def update_settings(
    session: AsyncSession, ctx: RequestContext, changes: AgentSettingsUpdate
) -> UserSettingsDB:
    """Replace the sections present in changes; others keep their stored values."""
    row = await get_or_create_settings(session, ctx)
    for section in _SECTIONS:
        value = getattr(changes, section)
        if value is not None:
            setattr(row, section, value.model_dump(by_alias=True, mode="json"))
    await session.commit()
    return row
