from bikeshare_refresh.core.db import engine
from bikeshare_refresh.models import Base


async def init_db() -> None:
    """
    Create the `networks` and `stations` tables if they do not exist.

    Intended for local development and tests. Deployed databases are
    managed by migrations owned by the ingestion side of the system.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
