class DccError(Exception):
    """Base class for everything this package raises."""


class ConfigError(DccError):
    pass


class TransportError(DccError):
    """Connect, write, spawn or read failure talking to the DCC backend."""


class BackendLaunchError(TransportError):
    """The dccproc executable could not be started."""


class NoHeaderError(TransportError):
    """The backend answered without any X-DCC header lines."""


class MalformedResponseError(DccError):
    pass


class DeadlineError(DccError):
    """The deadline could not be armed (bad timeout, nested use, no thread)."""
