"""
Error taxonomy shared by the core services.

Services raise these; the request layer translates them to status codes.
"""


class UsageGuardError(Exception):
    """Base class for business-rule failures."""
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(UsageGuardError):
    """Entity or referenced parent does not exist."""


class InvalidCredentials(UsageGuardError):
    """Authentication failed.

    Unknown email and wrong password raise the same error.
    """
    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class InvalidToken(UsageGuardError):
    """Token has a bad signature, a malformed payload, or has expired."""
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class ValidationFailure(UsageGuardError):
    """Caller-supplied data is missing required fields or is malformed."""
