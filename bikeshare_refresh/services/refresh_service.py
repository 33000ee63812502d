from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshare_refresh.core.config import settings
from bikeshare_refresh.repositories.station_repository import StationRepository
from bikeshare_refresh.schemas.refresh import NetworkRefreshResult, RefreshSummary
from bikeshare_refresh.services.providers.citybikes_client import CityBikesClient
from bikeshare_refresh.services.staleness_finder import (
    StaleNetwork,
    StalenessFinder,
    StalenessStrategy,
)
from bikeshare_refresh.services.station_mapper import map_station
from bikeshare_refresh.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class RefreshService:
    """
    Runs one stale-station refresh cycle.

    Stale networks are processed sequentially, stalest first. Fetch and
    write failures are isolated to their network: they are logged,
    recorded in the summary, and the run moves on. Only a failure of the
    staleness query itself (`StalenessQueryError`) aborts the run.
    """

    def __init__(
        self,
        db: AsyncSession,
        client: Optional[CityBikesClient] = None,
        *,
        stale_threshold_minutes: Optional[int] = None,
        batch_size: Optional[int] = None,
        dry_run: Optional[bool] = None,
        staleness_strategy: Optional[StalenessStrategy] = None,
    ):
        self.db = db
        self.client = client or CityBikesClient()
        self.finder = StalenessFinder(db)
        self.station_repo = StationRepository(db)

        self.stale_threshold_minutes = (
            settings.stale_threshold_minutes
            if stale_threshold_minutes is None
            else stale_threshold_minutes
        )
        self.batch_size = settings.batch_size if batch_size is None else batch_size
        self.dry_run = settings.dry_run if dry_run is None else dry_run
        self.staleness_strategy = staleness_strategy or settings.staleness_strategy

    async def run(self) -> RefreshSummary:
        """
        Find stale networks, refresh each one and summarize the run.

        Raises:
            StalenessQueryError: if stale networks cannot be determined.
        """
        logger.info(
            "Station refresh: threshold=%d min, batch size=%d%s",
            self.stale_threshold_minutes,
            self.batch_size,
            ", DRY RUN (no changes will be made)" if self.dry_run else "",
        )

        now = utcnow()
        stale = await self.finder.find_stale_networks(
            threshold_minutes=self.stale_threshold_minutes,
            batch_size=self.batch_size,
            strategy=self.staleness_strategy,
            now=now,
        )

        summary = RefreshSummary(stale_networks=len(stale), dry_run=self.dry_run)

        if not stale:
            logger.info("All station data is fresh, nothing to refresh")
            return summary

        logger.info("Found %d network(s) with stale data", len(stale))

        for network in stale:
            age = network.age_minutes(now)
            logger.info(
                "Refreshing %s (%s)",
                network.name,
                "never fetched" if age is None else f"{age} min old",
            )

            result = await self.refresh_network(network)
            summary.networks.append(result)

            if result.outcome in ("updated", "dry_run") and result.stations > 0:
                summary.networks_processed += 1
                summary.stations_updated += result.stations

        logger.info(
            "Summary: networks processed %d/%d, stations %s %d",
            summary.networks_processed,
            summary.stale_networks,
            "that would be updated" if self.dry_run else "updated",
            summary.stations_updated,
        )
        return summary

    async def refresh_network(self, network: StaleNetwork) -> NetworkRefreshResult:
        """
        Fetch, normalize and upsert the stations of one network.
        """

        def result(outcome: str, stations: int = 0) -> NetworkRefreshResult:
            return NetworkRefreshResult(
                network_id=network.id,
                name=network.name,
                outcome=outcome,
                stations=stations,
            )

        upstream = await self.client.fetch_network_stations(network.citybikes_id)
        if upstream is None:
            logger.warning("  No station data from citybik.es for %s", network.name)
            return result("no_data")

        rows = self._map_stations(upstream, network.id)
        if not rows:
            logger.warning("  No valid stations for %s", network.name)
            return result("empty")

        if self.dry_run:
            logger.info("  [DRY RUN] Would update %d stations", len(rows))
            return result("dry_run", len(rows))

        try:
            written = await self.station_repo.upsert_stations(rows)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("  Failed to update %s: %s", network.name, e)
            return result("write_failed")

        logger.info("  Updated %d stations", written)
        return result("updated", written)

    @staticmethod
    def _map_stations(
        upstream: List[Mapping[str, Any]],
        network_id: str,
    ) -> List[Dict[str, Any]]:
        now = utcnow()
        # Keyed by station id: a single statement cannot upsert the same row twice.
        rows: Dict[str, Dict[str, Any]] = {}
        skipped = 0
        malformed = 0

        for station in upstream:
            if station.get("id") in (None, ""):
                skipped += 1
                continue
            try:
                row = map_station(station, network_id, now=now).to_row()
            except (ValueError, TypeError, OverflowError) as e:
                malformed += 1
                logger.warning("  Dropped station %r: %s", station.get("id"), e)
                continue
            rows[row["id"]] = row

        if skipped:
            logger.warning("  Skipped %d station(s) without an upstream id", skipped)
        if malformed:
            logger.warning("  Dropped %d malformed station(s)", malformed)
        return list(rows.values())
