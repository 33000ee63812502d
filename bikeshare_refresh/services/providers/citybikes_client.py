from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from bikeshare_refresh.core.config import settings

logger = logging.getLogger(__name__)


class CityBikesClient:
    """
    citybik.es REST API client.

    Endpoint used:
    - Network with its full station list: GET /v2/networks/{network_id}

    Response shape:
    {"network": {"id": ..., "name": ..., "stations": [{"id", "name",
    "latitude", "longitude", "free_bikes", "empty_slots", "timestamp",
    "extra"?}, ...]}}
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.citybikes_base_url).rstrip("/")
        self.timeout = timeout_s if timeout_s is not None else settings.http_timeout_seconds
        self.user_agent = user_agent or settings.citybikes_user_agent
        self.transport = transport

    async def _get_json(self, url: str) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            r = await client.get(
                url,
                headers={"accept": "application/json", "user-agent": self.user_agent},
            )
            r.raise_for_status()
            return r.json()

    async def fetch_network_stations(self, network_id: str) -> Optional[List[Dict[str, Any]]]:
        """
        Fetch the current station list of one network.

        Failures never propagate: a non-2xx status, a transport error or
        timeout, or a malformed body is logged as a warning and reported as
        None so one unreachable network cannot abort a batch.

        Args:
            network_id: citybik.es network id (e.g. "velib").

        Returns:
            The raw station dicts, or None when no data is available.
        """
        url = f"{self.base_url}/v2/networks/{network_id}"

        try:
            payload = await self._get_json(url)
        except httpx.HTTPStatusError as e:
            logger.warning("HTTP %s from citybik.es for %s", e.response.status_code, network_id)
            return None
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch %s from citybik.es: %r", network_id, e)
            return None
        except ValueError as e:
            logger.warning("Malformed JSON from citybik.es for %s: %s", network_id, e)
            return None

        network = payload.get("network") if isinstance(payload, dict) else None
        stations = network.get("stations") if isinstance(network, dict) else None
        if not isinstance(stations, list):
            logger.warning("No station list in citybik.es response for %s", network_id)
            return None

        return [s for s in stations if isinstance(s, dict)]
