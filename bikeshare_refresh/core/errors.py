class RefreshError(RuntimeError):
    """Base class for errors that abort a whole refresh run."""


class StalenessQueryError(RefreshError):
    """The store could not be queried for stale networks."""
