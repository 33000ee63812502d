from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshare_refresh.core.db import get_db
from bikeshare_refresh.repositories.station_repository import StationRepository
from bikeshare_refresh.schemas.stations import StationListResponse, StationOut

router = APIRouter(prefix="/stations", tags=["Stations"])


@router.get(
    "",
    response_model=StationListResponse,
    summary="List stations",
    description="Returns stored station snapshots. Optionally filter by network.",
)
async def list_stations(
    network_id: Optional[str] = Query(default=None, description="Filter by internal network id"),
    limit: int = Query(default=200, ge=1, le=5000),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> StationListResponse:
    """
    List stored stations.

    Useful to confirm a refresh wrote what was expected.
    """
    repo = StationRepository(db)

    items = await repo.list_stations(network_id=network_id, limit=limit, offset=offset)
    total = await repo.count_stations(network_id=network_id)

    return StationListResponse(
        items=[StationOut.model_validate(x) for x in items],
        total=total,
    )
