import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bikeshare_refresh.models.base import Base


class Network(Base):
    """
    Bikeshare network entity.

    Identifies one bikeshare system. Networks are created by the ingestion
    side of the system; the refresh pipeline only reads them.

    The upstream citybik.es identifier is embedded in `raw_data["id"]`.
    """

    __tablename__ = "networks"

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Internal unique identifier for the network",
    )

    name: Mapped[str] = mapped_column(
        String(256),
        nullable=False,
        comment="Display name of the network",
    )

    company: Mapped[Optional[str]] = mapped_column(
        String(256),
        nullable=True,
        comment="Operating company",
    )

    city: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    country: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)

    station_status_url: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
        comment="Station status feed URL; networks without it are not refreshed",
    )

    station_information_url: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
        comment="Station information feed URL",
    )

    raw_data: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        comment="Raw upstream network payload; `id` holds the citybik.es network id",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    stations = relationship(
        "Station",
        back_populates="network",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def citybikes_id(self) -> Optional[str]:
        """Upstream citybik.es network id, or None when the network cannot be refreshed."""
        if not isinstance(self.raw_data, dict):
            return None
        value = self.raw_data.get("id")
        if value is None or value == "":
            return None
        return str(value)
