"""Exception types raised across the switchboard.

Only the failures that cross a module boundary get a class here.
Extraction misses and classification misses are ordinary return values.
"""


class SwitchboardError(Exception):
    """Base class for all switchboard errors."""


class SessionNotFound(SwitchboardError, KeyError):
    """Raised when an operation names a session the store does not hold."""


class TenantNotFound(SwitchboardError, KeyError):
    """Raised when no tenant profile matches an id or dialed number."""


class TenantConfigError(SwitchboardError, ValueError):
    """Raised when a tenant profile file cannot be parsed or validated."""


class TransferUnavailable(SwitchboardError):
    """Raised when a staff transfer cannot be started at all.

    Missing contact address, missing public base URL, missing call-control
    credentials, or the provider rejecting the redirect all end here. The
    caller hears an apology and the call is hung up.
    """


class NotificationFailure(SwitchboardError):
    """Raised by a sender when a single outbound message could not be delivered."""
