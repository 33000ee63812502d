from bikeshare_refresh.models.base import Base
from bikeshare_refresh.models.network import Network
from bikeshare_refresh.models.station import Station

__all__ = ["Base", "Network", "Station"]
