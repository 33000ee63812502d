from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StationOut(BaseModel):
    """
    Public representation of a stored station snapshot.

    `is_renting` / `is_returning` are null when the upstream feed did not
    say, which is not the same as false.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    network_id: str
    name: str
    location: str
    address: Optional[str] = None
    capacity: int
    num_regular_bikes_available: int
    num_ebikes_available: int
    num_docks_available: int
    is_operational: bool
    is_renting: Optional[bool] = None
    is_returning: Optional[bool] = None
    is_virtual: bool
    last_reported: datetime
    fetched_at: datetime


class StationListResponse(BaseModel):
    """
    Response payload for listing stations with pagination.
    """

    items: list[StationOut] = Field(default_factory=list)
    total: int
