"""
Exception types raised by the sync service.

Statement failures are not wrapped: they reach callers as the original
`psycopg.Error` subclass so the route layer can report the driver's message.
"""


class InvalidRequest(ValueError):
    """A request field is missing or malformed. Routes map this to 400."""


class StoreConnectionError(ConnectionError):
    """The target store could not be reached or rejected the credentials."""
