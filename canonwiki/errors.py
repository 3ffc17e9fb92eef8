"""Engine error taxonomy.

Every operation raises one of these synchronously; nothing is swallowed.
The HTTP layer maps ``status_code`` straight onto the response.
"""

from __future__ import annotations


class WikiError(Exception):
    """Base class for all engine errors."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(WikiError):
    """No valid caller identity."""

    status_code = 401


class Forbidden(WikiError):
    """Caller lacks the workspace role or protection clearance."""

    status_code = 403


class NotFound(WikiError):
    """Referenced record does not exist or is soft-deleted."""

    status_code = 404


class Conflict(WikiError):
    """Title collision or a lost race on a pointer/status field."""

    status_code = 409


class InvalidTransition(Conflict):
    """A review or revision status change the state machine does not allow."""


class InvalidInput(WikiError):
    """Malformed input rejected before any write."""

    status_code = 422
