# sarvasync/errors.py
from typing import Optional


class SarvasyncError(Exception):
    """Base class for every error raised by the auth/linking core."""

    public_message = "An internal server error occurred."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


# --- authentication (401) ---
class AuthenticationError(SarvasyncError):
    public_message = "Unauthorized."


class InvalidTokenError(AuthenticationError):
    public_message = "Invalid token."


class TokenExpiredError(AuthenticationError):
    public_message = "Token has expired."


class InvalidOrRevokedError(AuthenticationError):
    public_message = "Invalid or revoked refresh token."


class MissingIdentityError(AuthenticationError):
    public_message = "Email is required in token payload."


# --- oauth state ---
class StateIntegrityError(SarvasyncError):
    public_message = "Invalid authentication state."


class MissingStateError(StateIntegrityError):
    public_message = "Missing state parameter."


class MissingUserError(StateIntegrityError):
    public_message = "State does not identify a user."


class InvalidStateError(StateIntegrityError):
    pass


class EmailTakenError(StateIntegrityError):
    public_message = "This Google account's email already belongs to another user."


# --- provider resources ---
class ResourceMissingError(SarvasyncError):
    public_message = "Required provider resource is missing."


class NoResourceError(ResourceMissingError):
    public_message = "No YouTube channel found for this Google account."


# --- infrastructure ---
class ConfigurationError(SarvasyncError):
    public_message = "Server configuration error."


class DeliveryError(SarvasyncError):
    public_message = "Failed to send login link."


class PersistenceError(SarvasyncError):
    pass


# --- credential vault ---
class VaultError(SarvasyncError):
    pass


class FormatError(VaultError):
    public_message = "Invalid encrypted text format."


class IntegrityError(VaultError):
    public_message = "Encrypted payload failed authentication."
