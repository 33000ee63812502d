from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshare_refresh.models.station import Station

# Rows per INSERT statement; keeps bind parameters under driver limits.
UPSERT_CHUNK_SIZE = 500

# Columns never overwritten on conflict.
_IMMUTABLE_COLUMNS = frozenset({"id", "created_at"})


class StationRepository:
    """
    Repository for managing bikeshare station persistence.

    Stations are written exclusively through `upsert_stations`, keyed by
    their deterministic id, so re-running a refresh never duplicates rows.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with an active database session.

        Args:
            db: Asynchronous SQLAlchemy session.
        """
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(Station)
        if dialect == "sqlite":
            return sqlite.insert(Station)
        raise NotImplementedError(f"Station upsert is not supported on '{dialect}'")

    async def upsert_stations(self, rows: Sequence[Dict[str, Any]]) -> int:
        """
        Insert or replace stations keyed by `id`.

        Every column except `id` and `created_at` is overwritten on
        conflict (last write wins). The caller owns the transaction.

        Args:
            rows: Column mappings as produced by `StationRecord.to_row()`.

        Returns:
            Number of rows written.
        """
        if not rows:
            return 0

        for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
            chunk = list(rows[start:start + UPSERT_CHUNK_SIZE])
            stmt = self._insert().values(chunk)
            update_cols = {
                name: stmt.excluded[name]
                for name in chunk[0]
                if name not in _IMMUTABLE_COLUMNS
            }
            stmt = stmt.on_conflict_do_update(
                index_elements=[Station.id],
                set_=update_cols,
            )
            await self.db.execute(stmt)

        return len(rows)

    async def get_oldest_fetched_at(self, network_id: str) -> Optional[datetime]:
        """
        Return the oldest `fetched_at` among a network's stations, or None
        if the network has no stations yet.
        """
        stmt = select(func.min(Station.fetched_at)).where(
            Station.network_id == network_id
        )
        res = await self.db.execute(stmt)
        return res.scalar_one()

    async def list_stations(
        self,
        network_id: Optional[str] = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> List[Station]:
        """
        List stations with optional network filtering and pagination.

        Args:
            network_id: Optional network filter.
            limit: Max items to return.
            offset: Pagination offset.

        Returns:
            A list of Station models ordered by network, then name.
        """
        stmt = select(Station)
        if network_id:
            stmt = stmt.where(Station.network_id == network_id)
        stmt = (
            stmt.order_by(Station.network_id.asc(), Station.name.asc(), Station.id.asc())
            .limit(limit)
            .offset(offset)
        )

        res = await self.db.execute(stmt)
        return list(res.scalars().all())

    async def count_stations(self, network_id: Optional[str] = None) -> int:
        stmt = select(func.count(Station.id))
        if network_id:
            stmt = stmt.where(Station.network_id == network_id)
        return int((await self.db.execute(stmt)).scalar_one())
