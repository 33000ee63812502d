from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bikeshare_refresh.models.base import Base


class Station(Base):
    """
    Bikeshare station snapshot.

    One row per (network, upstream station id). The primary key is derived
    deterministically from the upstream station id, so every refresh
    replaces the previous snapshot in place instead of appending.

    `is_renting` and `is_returning` are nullable: NULL means the upstream
    feed gave no information, which is distinct from a known `False`.
    """

    __tablename__ = "stations"

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Deterministic UUID derived from the upstream station id",
    )

    network_id: Mapped[str] = mapped_column(
        ForeignKey("networks.id", ondelete="CASCADE"),
        nullable=False,
        comment="Network this station belongs to",
    )

    name: Mapped[str] = mapped_column(String(512), nullable=False)

    location: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="WKT point in (longitude latitude) order",
    )

    address: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    num_regular_bikes_available: Mapped[int] = mapped_column(Integer, nullable=False)

    num_ebikes_available: Mapped[int] = mapped_column(Integer, nullable=False)

    num_docks_available: Mapped[int] = mapped_column(Integer, nullable=False)

    is_operational: Mapped[bool] = mapped_column(Boolean, nullable=False)

    is_renting: Mapped[Optional[bool]] = mapped_column(
        Boolean,
        nullable=True,
        comment="NULL when unknown",
    )

    is_returning: Mapped[Optional[bool]] = mapped_column(
        Boolean,
        nullable=True,
        comment="NULL when unknown",
    )

    is_virtual: Mapped[bool] = mapped_column(Boolean, nullable=False)

    last_reported: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Freshness timestamp asserted by the upstream feed",
    )

    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Local ingestion time; staleness is measured against it",
    )

    raw_data: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        comment="Raw upstream station payload",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    network = relationship(
        "Network",
        back_populates="stations",
    )

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    __table_args__ = (
        Index("ix_stations_network_fetched_at", "network_id", "fetched_at"),
    )
