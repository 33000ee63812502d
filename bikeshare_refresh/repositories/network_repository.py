from datetime import datetime
from typing import List, Sequence

from sqlalchemy import Row, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshare_refresh.models.network import Network
from bikeshare_refresh.models.station import Station


class NetworkRepository:
    """
    Repository for reading bikeshare networks.

    Networks are owned by the ingestion side of the system; this
    repository only exposes the read queries the refresh pipeline needs.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with an active database session.

        Args:
            db: Asynchronous SQLAlchemy session.
        """
        self.db = db

    @staticmethod
    def citybikes_id_expr():
        """SQL expression extracting the upstream network id from `raw_data`."""
        return Network.raw_data["id"].as_string()

    def _refreshable_filters(self):
        citybikes_id = self.citybikes_id_expr()
        return (
            Network.station_status_url.is_not(None),
            citybikes_id.is_not(None),
            citybikes_id != "",
        )

    async def list_refreshable(self) -> List[Network]:
        """
        List networks that carry an upstream id and a station status URL.

        Networks are returned ordered by id so repeated scans visit them in
        a stable order.
        """
        stmt = (
            select(Network)
            .where(*self._refreshable_filters())
            .order_by(Network.id.asc())
        )
        res = await self.db.execute(stmt)
        return [n for n in res.scalars().all() if n.citybikes_id]

    async def list_stale_aggregated(
        self,
        threshold_time: datetime,
        max_results: int,
    ) -> Sequence[Row]:
        """
        Compute stale networks in a single grouped query.

        A network is stale when it has no stations or when its oldest
        `fetched_at` is older than `threshold_time`. Rows are ordered
        stalest first, networks without stations leading.

        Returns:
            Rows of `(id, name, citybikes_id, oldest_fetched_at)`.
        """
        citybikes_id = self.citybikes_id_expr()
        oldest = func.min(Station.fetched_at)

        stmt = (
            select(
                Network.id,
                Network.name,
                citybikes_id.label("citybikes_id"),
                oldest.label("oldest_fetched_at"),
            )
            .outerjoin(Station, Station.network_id == Network.id)
            .where(*self._refreshable_filters())
            # Other network columns are functionally dependent on the primary key.
            .group_by(Network.id)
            .having(or_(oldest.is_(None), oldest < threshold_time))
            .order_by(oldest.asc().nulls_first(), Network.id.asc())
            .limit(max_results)
        )
        res = await self.db.execute(stmt)
        return res.all()
