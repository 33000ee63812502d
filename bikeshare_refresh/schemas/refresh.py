from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

RefreshOutcome = Literal["updated", "dry_run", "no_data", "empty", "write_failed"]


class RefreshRequest(BaseModel):
    """
    Optional overrides for a refresh run triggered over HTTP.

    Omitted fields fall back to the environment configuration.
    """

    stale_threshold_minutes: Optional[int] = Field(
        default=None,
        ge=0,
        description="Station data older than this (minutes) is refreshed.",
        examples=[30],
    )
    batch_size: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum number of networks processed in this run.",
        examples=[100],
    )
    dry_run: Optional[bool] = Field(
        default=None,
        description="Report what would be written without touching the store.",
    )


class NetworkRefreshResult(BaseModel):
    """
    Outcome of refreshing one network.
    """

    network_id: str
    name: str
    outcome: RefreshOutcome
    stations: int = Field(0, description="Stations written (or that would be written in dry-run).")


class RefreshSummary(BaseModel):
    """
    Summary of one refresh run.
    """

    stale_networks: int = Field(0, description="Networks found stale.")
    networks_processed: int = Field(0, description="Networks whose stations were written.")
    stations_updated: int = Field(0, description="Total station rows written.")
    dry_run: bool = False
    networks: list[NetworkRefreshResult] = Field(default_factory=list)


class StaleNetworkOut(BaseModel):
    """
    Network selected for refresh, with the age of its oldest station.
    """

    id: str
    name: str
    citybikes_id: str
    oldest_fetched_at: Optional[datetime] = Field(
        None, description="Oldest station fetch time; null when never fetched."
    )
