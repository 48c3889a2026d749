"""Errors raised by the registration store."""


class RegistrationError(Exception):
    """Base class for registration store failures."""


class InvalidOperation(RegistrationError):
    """The requested operation is not allowed on this path."""


class StorageUnavailable(RegistrationError):
    """The backing database could not be reached or timed out.

    The originating driver exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient
