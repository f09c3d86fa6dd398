"""
Sync error classes.

Classifies failures the pipeline reacts to differently: rate limits and
transient network faults are retried, lock conflicts are retried at the
transaction level, everything else propagates.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all catalog sync errors"""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider

    def __str__(self):
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class RateLimitError(SyncError):
    """Raised when a remote API answers with a rate-limit signal"""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class TransientNetworkError(SyncError):
    """Raised for connection resets, timeouts and 5xx answers"""

    def __init__(self, message: str = "Network error", status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class LockConflictError(SyncError):
    """Raised when the graph store reports a deadlock or lock timeout"""


class AdapterError(SyncError):
    """Raised when a provider adapter cannot fetch or parse a page"""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class AuthenticationError(AdapterError):
    """Raised when the storefront rejects the credentials"""


class BatchPersistenceError(SyncError):
    """Raised when one or more sub-batches could not be persisted"""

    def __init__(self, message: str, failed_product_ids: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.failed_product_ids = failed_product_ids or []


class SyncCancelled(SyncError):
    """Raised when a sync observes its cancellation token"""

    def __init__(self, message: str = "Sync cancelled", **kwargs):
        super().__init__(message, **kwargs)


class ConfigurationError(SyncError):
    """Raised for missing or invalid store/provider configuration"""
