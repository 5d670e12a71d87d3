"""Dev seeding helper for stub authentication.

Run with: python -m backend.app.db.seed_dev
"""

import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.auth import DEV_USER_ID
from backend.app.db.engine import get_async_engine
from backend.app.db.models import Agent

DEV_AGENT_EMAIL = "dev-agent@example.com"


async def seed_dev_agent(session: AsyncSession) -> bool:
    """Create the dev agent used when requests carry no bearer token.

    Idempotent - safe to run multiple times.

    Returns:
        True if the agent was created, False if it already existed
    """
    result = await session.execute(select(Agent).where(Agent.user_id == DEV_USER_ID))
    if result.scalar_one_or_none() is not None:
        return False

    session.add(Agent(user_id=DEV_USER_ID, email=DEV_AGENT_EMAIL, display_name="Dev Agent"))
    await session.commit()
    return True


async def main() -> None:
    async with AsyncSession(get_async_engine()) as session:
        created = await seed_dev_agent(session)
    if created:
        print(f"Created dev agent {DEV_USER_ID} ({DEV_AGENT_EMAIL})")
    else:
        print(f"Dev agent {DEV_USER_ID} already exists")


if __name__ == "__main__":
    asyncio.run(main())
