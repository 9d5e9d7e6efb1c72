class GafError(Exception):
    """Base class for errors raised by the GAF backend."""


class AuthenticationError(GafError):
    """Garmin credentials are missing, malformed or were rejected. Fatal for a sync run."""


class StorageError(GafError):
    """The raw data store could not be reached or a write failed outside a per-unit step."""


class ConfigurationError(GafError):
    """Required service configuration (e.g. service-level Garmin secrets) is missing."""


class SyncInProgressError(GafError):
    """A sync for this user is already running in this process."""
