"""
Tellah - Errors

Engine functions raise these; the API layer maps them to HTTP status codes.
"""


class NotFoundError(ValueError):
    """A referenced project, scenario, output or extraction does not exist (404)."""


class InvalidRequestError(ValueError):
    """The request is missing required fields or the data isn't ready yet (400)."""
