"""
Vault error taxonomy.
"""


class VaultError(Exception):
    """Base class for all kernel errors."""
    pass


class LockedVault(VaultError):
    """A data operation was attempted while the vault is locked."""
    pass


class CapacityExceeded(VaultError):
    """Ingestion would push the store past the caller-supplied quota."""

    def __init__(self, current_bytes: int, incoming_bytes: int, quota_bytes: int):
        self.current_bytes = current_bytes
        self.incoming_bytes = incoming_bytes
        self.quota_bytes = quota_bytes
        super().__init__(
            f"Vault over capacity: {current_bytes} + {incoming_bytes} bytes exceeds quota of {quota_bytes} bytes"
        )


class InvalidCredential(VaultError):
    """PIN did not match the stored credential."""
    pass


class CorruptStore(VaultError):
    """Durable state could not be read. Recovered locally, never raised to callers."""
    pass


class ProviderUnavailable(VaultError):
    """Adapter transport failure, HTTP error or timeout."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"Provider {provider} unavailable: {reason}")


class UnknownProviderKind(VaultError):
    """No adapter registered for a provider kind. Indicates a programming error."""
    pass
