"""Application error taxonomy.

Handlers raise these; ``main.py`` maps them onto HTTP responses.
"""


class CRMError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal Server Error"):
        super().__init__(message)
        self.message = message


class ValidationError(CRMError):
    """Missing or malformed required field."""

    status_code = 400


class NotFoundError(CRMError):
    status_code = 404


class ConflictError(CRMError):
    """Uniqueness violation, e.g. an e-mail address that is already taken."""

    status_code = 400


class AuthError(CRMError):
    status_code = 401


class SyncError(CRMError):
    """Mirroring a showing into the events collection failed.

    Raised and caught inside the showing sync service only.
    """


class UnexpectedError(CRMError):
    pass


class NotificationError(CRMError):
    """The e-mail or SMS provider rejected a request or was unreachable."""

    status_code = 502
