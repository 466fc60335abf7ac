class BackofficeError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(BackofficeError):
    status_code = 404


class ValidationError(BackofficeError):
    status_code = 400


class InvalidState(BackofficeError):
    status_code = 409


class UpstreamFailure(BackofficeError):
    """The database failed part way through a write; nothing was committed."""

    status_code = 503
