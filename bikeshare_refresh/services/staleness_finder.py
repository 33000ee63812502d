from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Literal, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshare_refresh.core.errors import StalenessQueryError
from bikeshare_refresh.repositories.network_repository import NetworkRepository
from bikeshare_refresh.repositories.station_repository import StationRepository
from bikeshare_refresh.utils.timestamps import ensure_utc, utcnow

logger = logging.getLogger(__name__)

StalenessStrategy = Literal["scan", "aggregate"]


@dataclass(frozen=True)
class StaleNetwork:
    id: str
    name: str
    citybikes_id: str
    oldest_fetched_at: Optional[datetime]

    def age_minutes(self, now: datetime) -> Optional[int]:
        """Minutes since the oldest station fetch, None when never fetched."""
        if self.oldest_fetched_at is None:
            return None
        return round((now - self.oldest_fetched_at).total_seconds() / 60)


def _staleness_key(network: StaleNetwork):
    # Never-fetched networks first, then oldest fetch first.
    if network.oldest_fetched_at is None:
        return (0, datetime.min, network.id)
    return (1, network.oldest_fetched_at, network.id)


class StalenessFinder:
    """
    Finds networks whose station data needs refreshing.

    A network is stale when it has no stations yet, or when the oldest
    `fetched_at` among its stations is older than `now - threshold`.
    Networks without an upstream id or station status URL are never
    returned. Results are ordered stalest first and capped at the batch
    size; networks left out remain eligible on the next run.
    """

    def __init__(self, db: AsyncSession):
        self.network_repo = NetworkRepository(db)
        self.station_repo = StationRepository(db)

    async def find_stale_networks(
        self,
        threshold_minutes: int,
        batch_size: int,
        strategy: StalenessStrategy = "scan",
        now: Optional[datetime] = None,
    ) -> List[StaleNetwork]:
        """
        Return up to `batch_size` stale networks, stalest first.

        Args:
            threshold_minutes: Station data older than this is stale.
            batch_size: Maximum number of networks returned.
            strategy: "scan" issues one staleness query per network;
                "aggregate" computes everything in one grouped query.
            now: Reference time, defaults to the current UTC time.

        Raises:
            StalenessQueryError: if the store cannot be queried.
        """
        now = ensure_utc(now) if now else utcnow()
        threshold_time = now - timedelta(minutes=threshold_minutes)

        try:
            if strategy == "aggregate":
                stale = await self._find_aggregated(threshold_time, batch_size)
            else:
                stale = await self._find_by_scan(threshold_time, batch_size)
        except SQLAlchemyError as e:
            raise StalenessQueryError(f"Failed to query stale networks: {e}") from e

        logger.debug(
            "Staleness query (%s) found %d network(s) older than %s",
            strategy,
            len(stale),
            threshold_time.isoformat(),
        )
        return stale

    async def _find_by_scan(
        self,
        threshold_time: datetime,
        batch_size: int,
    ) -> List[StaleNetwork]:
        stale: List[StaleNetwork] = []

        for network in await self.network_repo.list_refreshable():
            oldest = await self.station_repo.get_oldest_fetched_at(network.id)
            if oldest is not None:
                oldest = ensure_utc(oldest)
                if oldest >= threshold_time:
                    continue

            stale.append(
                StaleNetwork(
                    id=network.id,
                    name=network.name,
                    citybikes_id=network.citybikes_id,
                    oldest_fetched_at=oldest,
                )
            )
            if len(stale) >= batch_size:
                break

        return sorted(stale, key=_staleness_key)

    async def _find_aggregated(
        self,
        threshold_time: datetime,
        batch_size: int,
    ) -> List[StaleNetwork]:
        rows = await self.network_repo.list_stale_aggregated(threshold_time, batch_size)
        return [
            StaleNetwork(
                id=row.id,
                name=row.name,
                citybikes_id=str(row.citybikes_id),
                oldest_fetched_at=(
                    ensure_utc(row.oldest_fetched_at)
                    if row.oldest_fetched_at is not None
                    else None
                ),
            )
            for row in rows
        ]
