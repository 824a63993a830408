"""Errors raised by the daily register engine.

Views translate these into JSON error responses; see `status_code`.
"""


class RegisterError(Exception):
    status_code = 400


class FetchError(RegisterError):
    """A read from the store failed; no partial register is returned."""
    status_code = 502


class RegisterNotFound(FetchError):
    """The shop or the stored day does not exist."""
    status_code = 404


class AuthError(RegisterError):
    """No authenticated identity, or the identity has no organization."""
    status_code = 401


class ConfigError(RegisterError):
    """Organization catalog is missing a default (expense category, payment method)."""


class PersistError(RegisterError):
    """A write to the store failed."""
    status_code = 502


class AuditError(RegisterError):
    """Writing the activity record failed. Never fails the surrounding save."""
    status_code = 502


class RegisterLockedError(RegisterError):
    """The day is verified or locked and cannot be edited."""
    status_code = 409


class RegisterValidationError(RegisterError):
    pass
