"""Per-agent settings endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.auth import get_current_context
from backend.app.db.context import RequestContext
from backend.app.db.engine import get_session
from backend.app.db.user_settings import get_or_create_settings, to_agent_settings, update_settings
from backend.app.models.settings import AgentSettings, AgentSettingsUpdate

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=AgentSettings)
async def get_agent_settings(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AgentSettings:
    """Current settings; defaults are created on first access."""
    return to_agent_settings(await get_or_create_settings(session, ctx))


@router.put("", response_model=AgentSettings)
async def put_agent_settings(
    changes: AgentSettingsUpdate,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AgentSettings:
    """Replace the settings sections present in the body."""
    return to_agent_settings(await update_settings(session, ctx, changes))
