from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from bikeshare_refresh.utils.identifiers import derive_station_id
from bikeshare_refresh.utils.timestamps import parse_timestamp, utcnow

CLOSED_STATUSES = frozenset({"closed", "offline"})
UNAVAILABLE_STATUSES = frozenset({"closed", "offline", "maintenance"})
OPEN_STATUSES = frozenset({"open", "active"})

_TRUE_STRINGS = frozenset({"true", "1"})
_FALSE_STRINGS = frozenset({"false", "0"})


class TriState(enum.Enum):
    """
    Three-valued flag: known true, known false, or no information.

    Used both for provider flags parsed from `extra` (present-true,
    present-false, absent) and for the `is_renting` / `is_returning`
    outputs, where "unknown" must not collapse into "false".
    """

    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"

    @classmethod
    def of(cls, value: bool) -> "TriState":
        return cls.YES if value else cls.NO

    @classmethod
    def parse(cls, raw: Any) -> "TriState":
        """Read a provider flag encoded as bool, number or "true"/"false" string."""
        if isinstance(raw, bool):
            return cls.of(raw)
        if isinstance(raw, (int, float)):
            if isinstance(raw, float) and not math.isfinite(raw):
                return cls.UNKNOWN
            return cls.of(raw != 0)
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in _TRUE_STRINGS:
                return cls.YES
            if lowered in _FALSE_STRINGS:
                return cls.NO
        return cls.UNKNOWN

    @property
    def known(self) -> bool:
        return self is not TriState.UNKNOWN

    def as_bool(self) -> Optional[bool]:
        if self is TriState.UNKNOWN:
            return None
        return self is TriState.YES


def _number(raw: Any) -> Optional[float]:
    # Booleans count as 1/0; numeric strings are accepted. NaN and infinities are absent.
    if isinstance(raw, bool):
        return 1.0 if raw else 0.0
    if isinstance(raw, (int, float)):
        try:
            value = float(raw)
        except OverflowError:
            return None
    elif isinstance(raw, str):
        try:
            value = float(raw)
        except ValueError:
            return None
    else:
        return None
    return value if math.isfinite(value) else None


@dataclass(frozen=True)
class StationExtra:
    """
    Typed view of the provider-specific `extra` object of a citybik.es station.
    """

    virtual: TriState = TriState.UNKNOWN
    operational: TriState = TriState.UNKNOWN
    online: TriState = TriState.UNKNOWN
    renting: TriState = TriState.UNKNOWN
    returning: TriState = TriState.UNKNOWN
    uid: Optional[str] = None
    status: Optional[str] = None
    slots: Optional[float] = None
    ebikes: Optional[float] = None
    normal_bikes: Optional[float] = None
    address: Optional[str] = None

    @classmethod
    def parse(cls, raw: Any) -> "StationExtra":
        if not isinstance(raw, Mapping):
            return cls()

        status = raw.get("status")
        uid = raw.get("uid")
        address = raw.get("address")

        return cls(
            virtual=TriState.parse(raw.get("virtual")),
            operational=TriState.parse(raw.get("operational")),
            online=TriState.parse(raw.get("online")),
            renting=TriState.parse(raw.get("renting")),
            returning=TriState.parse(raw.get("returning")),
            uid=str(uid) if uid is not None else None,
            status=status.strip().lower() if isinstance(status, str) else None,
            slots=_number(raw.get("slots")),
            ebikes=_number(raw.get("ebikes")),
            normal_bikes=_number(raw.get("normal_bikes")),
            address=address if isinstance(address, str) and address else None,
        )


@dataclass(frozen=True)
class StationRecord:
    """
    Canonical station attributes for one network, ready to be upserted.
    """

    id: str
    network_id: str
    name: str
    location: str
    address: Optional[str]
    capacity: int
    num_regular_bikes_available: int
    num_ebikes_available: int
    num_docks_available: int
    is_operational: bool
    is_renting: TriState
    is_returning: TriState
    is_virtual: bool
    last_reported: datetime
    fetched_at: datetime
    raw_data: Dict[str, Any] = field(default_factory=dict)

    def to_row(self) -> Dict[str, Any]:
        """
        Column mapping written to the `stations` table.

        Unknown tri-state flags are stored as NULL.
        """
        return {
            "id": self.id,
            "network_id": self.network_id,
            "name": self.name,
            "location": self.location,
            "address": self.address,
            "capacity": self.capacity,
            "num_regular_bikes_available": self.num_regular_bikes_available,
            "num_ebikes_available": self.num_ebikes_available,
            "num_docks_available": self.num_docks_available,
            "is_operational": self.is_operational,
            "is_renting": self.is_renting.as_bool(),
            "is_returning": self.is_returning.as_bool(),
            "is_virtual": self.is_virtual,
            "last_reported": self.last_reported,
            "fetched_at": self.fetched_at,
            "raw_data": self.raw_data,
        }


def point_wkt(longitude: Any, latitude: Any) -> str:
    """WKT point in (longitude latitude) axis order."""
    lon = _number(longitude) or 0.0
    lat = _number(latitude) or 0.0
    return f"POINT({lon} {lat})"


def resolve_is_virtual(extra: StationExtra) -> bool:
    if extra.virtual.known:
        return extra.virtual is TriState.YES
    return extra.uid == "virtual"


def resolve_capacity(
    is_virtual: bool,
    free_bikes: Optional[float],
    empty_slots: Optional[float],
    extra: StationExtra,
) -> int:
    """
    Total docks/slots of a station.

    Virtual stations have no fixed docks: use the advertised slots, else
    the bikes currently parked there. Docked stations add free bikes and
    empty slots when both are known.
    """
    if is_virtual:
        return int(extra.slots or free_bikes or 0)

    if (
        empty_slots is not None
        and free_bikes is not None
        and empty_slots >= 0
        and free_bikes >= 0
    ):
        return int(empty_slots + free_bikes)
    if extra.slots is not None and extra.slots > 0:
        return int(extra.slots)
    if free_bikes is not None and free_bikes > 0:
        return int(free_bikes)
    return 0


def resolve_is_operational(capacity: int, extra: StationExtra) -> bool:
    if extra.operational.known:
        return extra.operational is TriState.YES
    if extra.online.known:
        return extra.online is TriState.YES
    if extra.status in CLOSED_STATUSES:
        return False
    return capacity > 0


def resolve_is_renting(
    is_operational: bool,
    free_bikes: float,
    extra: StationExtra,
) -> TriState:
    if not is_operational:
        return TriState.NO
    if extra.renting.known:
        return extra.renting
    if extra.status in UNAVAILABLE_STATUSES:
        return TriState.NO
    if extra.status in OPEN_STATUSES:
        return TriState.YES
    if free_bikes > 0:
        return TriState.YES
    if free_bikes == 0:
        return TriState.NO
    return TriState.UNKNOWN


def resolve_is_returning(
    is_operational: bool,
    is_virtual: bool,
    empty_slots: float,
    extra: StationExtra,
) -> TriState:
    if not is_operational:
        return TriState.NO
    if extra.returning.known:
        return extra.returning
    if extra.status in UNAVAILABLE_STATUSES:
        return TriState.NO
    if extra.status in OPEN_STATUSES:
        return TriState.YES
    # Virtual stations accept returns regardless of reported empty slots.
    if is_virtual:
        return TriState.YES
    if empty_slots > 0:
        return TriState.YES
    return TriState.UNKNOWN


def map_station(
    station: Mapping[str, Any],
    network_id: str,
    now: Optional[datetime] = None,
) -> StationRecord:
    """
    Convert one citybik.es station record into a `StationRecord`.

    Every attribute resolves to a concrete value; missing optional fields
    fall back to documented defaults instead of raising. The record must
    carry an upstream `id`, from which the station id is derived.

    Args:
        station: Upstream station object (`id`, `name`, `latitude`,
            `longitude`, `free_bikes`, `empty_slots`, `timestamp`, `extra`).
        network_id: Internal id of the network the station belongs to.
        now: Ingestion time; defaults to the current UTC time.

    Raises:
        ValueError: if the station has no usable upstream `id`.
    """
    fetched_at = now or utcnow()
    extra = StationExtra.parse(station.get("extra"))

    free_bikes_raw = _number(station.get("free_bikes"))
    empty_slots_raw = _number(station.get("empty_slots"))
    free_bikes = free_bikes_raw if free_bikes_raw is not None else 0.0
    empty_slots = empty_slots_raw if empty_slots_raw is not None else 0.0

    is_virtual = resolve_is_virtual(extra)
    capacity = resolve_capacity(is_virtual, free_bikes_raw, empty_slots_raw, extra)
    is_operational = resolve_is_operational(capacity, extra)

    num_ebikes = int(extra.ebikes or 0)
    if extra.normal_bikes is not None:
        num_regular = int(extra.normal_bikes)
    else:
        num_regular = int(max(0, free_bikes - num_ebikes))

    name = station.get("name")
    upstream_id = station.get("id")

    return StationRecord(
        id=derive_station_id(str(upstream_id) if upstream_id is not None else ""),
        network_id=network_id,
        name=str(name) if name is not None else "",
        location=point_wkt(station.get("longitude"), station.get("latitude")),
        address=extra.address,
        capacity=capacity,
        num_regular_bikes_available=num_regular,
        num_ebikes_available=num_ebikes,
        num_docks_available=int(max(0, empty_slots)),
        is_operational=is_operational,
        is_renting=resolve_is_renting(is_operational, free_bikes, extra),
        is_returning=resolve_is_returning(is_operational, is_virtual, empty_slots, extra),
        is_virtual=is_virtual,
        last_reported=parse_timestamp(station.get("timestamp")) or fetched_at,
        fetched_at=fetched_at,
        raw_data=dict(station),
    )
