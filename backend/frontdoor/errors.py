"""Error taxonomy shared by every endpoint.

Each error carries the HTTP status it maps to and a message that is safe to
show to the client. Details of unexpected failures stay in the server log.
"""

import logging
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class FrontdoorError(Exception):
    status_code = 400
    message = "Bad request"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(FrontdoorError):
    """Missing or malformed request fields."""

    message = "Missing required fields"


class MalformedInput(ValidationError):
    """A credential payload that cannot be parsed as a WebAuthn response."""


class VerificationFailed(FrontdoorError):
    """A ceremony check did not hold. Deliberately does not say which."""

    message = "Verification failed"


class InternalError(FrontdoorError):
    status_code = 500
    message = "Internal server error"


@contextmanager
def error_boundary(message: str):
    """Turn anything that is not a FrontdoorError into a logged InternalError."""
    try:
        yield
    except FrontdoorError:
        raise
    except Exception as exc:
        logger.exception("%s", message)
        raise InternalError(message) from exc
