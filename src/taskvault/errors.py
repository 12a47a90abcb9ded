"""Error taxonomy for vault operations.

Every cryptographic or structural failure is normalized to one of these
before it leaves a VaultSession.
"""


class VaultError(Exception):
    """Base class for all vault errors."""

    code = "VAULT_ERROR"
    default_message = "Vault error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class PasswordMismatch(VaultError):
    code = "PASSWORD_MISMATCH"
    default_message = "Passwords do not match"


class EmptyPassword(VaultError):
    code = "EMPTY_PASSWORD"
    default_message = "Password must not be empty"


class AuthenticationFailure(VaultError):
    """Ciphertext did not verify under the given key."""

    code = "AUTHENTICATION_FAILURE"
    default_message = "Authentication failed"


class UnlockFailed(VaultError):
    """Generic unlock failure. Never says whether the password or the data was at fault."""

    code = "UNLOCK_FAILED"
    default_message = "Unable to unlock vault"

    def __init__(self):
        super().__init__(self.default_message)


class MalformedDocument(VaultError):
    code = "MALFORMED_DOCUMENT"
    default_message = "Malformed vault document"


class StorageError(VaultError):
    code = "STORAGE_ERROR"
    default_message = "Vault storage error"


class VaultStateError(VaultError):
    code = "INVALID_STATE"
    default_message = "Operation not allowed in the current vault state"


class ConfirmationRequired(VaultError):
    code = "CONFIRMATION_REQUIRED"
    default_message = "Import replaces all vault data and must be confirmed"


class EntityNotFound(VaultError):
    code = "NOT_FOUND"
    default_message = "Entry not found"


class InvalidValue(VaultError):
    code = "INVALID_VALUE"
    default_message = "Invalid value"
