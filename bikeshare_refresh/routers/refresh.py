from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshare_refresh.core.config import settings
from bikeshare_refresh.core.db import get_db
from bikeshare_refresh.core.errors import StalenessQueryError
from bikeshare_refresh.schemas.refresh import RefreshRequest, RefreshSummary, StaleNetworkOut
from bikeshare_refresh.services.refresh_service import RefreshService
from bikeshare_refresh.services.staleness_finder import StalenessFinder

router = APIRouter(tags=["Refresh"])


@router.post(
    "/refresh",
    response_model=RefreshSummary,
    summary="Refresh stale stations",
    description=(
        "Runs one refresh cycle: finds networks with stale station data, fetches "
        "their stations from citybik.es and upserts them.\n\n"
        "- Omitted body fields fall back to the environment configuration.\n"
        "- Per-network fetch or write failures are reported in `networks` and do not "
        "abort the run.\n"
        "- If stale networks cannot be determined, the request fails with HTTP 500."
    ),
)
async def refresh(
    payload: Optional[RefreshRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    payload = payload or RefreshRequest()
    service = RefreshService(
        db=db,
        stale_threshold_minutes=payload.stale_threshold_minutes,
        batch_size=payload.batch_size,
        dry_run=payload.dry_run,
    )
    try:
        return await service.run()
    except StalenessQueryError as e:
        raise HTTPException(status_code=500, detail=f"Refresh failed: {e}")


@router.get(
    "/networks/stale",
    response_model=List[StaleNetworkOut],
    summary="Preview stale networks",
    description="Lists the networks the next refresh run would process, stalest first.",
)
async def list_stale_networks(
    threshold_minutes: Optional[int] = Query(default=None, ge=0),
    limit: Optional[int] = Query(default=None, ge=1, le=5000),
    db: AsyncSession = Depends(get_db),
):
    finder = StalenessFinder(db)
    try:
        stale = await finder.find_stale_networks(
            threshold_minutes=(
                settings.stale_threshold_minutes if threshold_minutes is None else threshold_minutes
            ),
            batch_size=settings.batch_size if limit is None else limit,
            strategy=settings.staleness_strategy,
        )
    except StalenessQueryError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return [
        StaleNetworkOut(
            id=n.id,
            name=n.name,
            citybikes_id=n.citybikes_id,
            oldest_fetched_at=n.oldest_fetched_at,
        )
        for n in stale
    ]
