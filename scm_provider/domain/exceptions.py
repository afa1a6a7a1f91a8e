from typing import Any, Dict, Optional

class ScmProviderException(Exception):
    """Base exception for all discovery errors."""
    pass

class ConfigurationError(ScmProviderException):
    """Raised when a provider is constructed with a missing or invalid credential or address."""
    pass

class ScmApiError(ScmProviderException):
    """
    Raised when the hosting backend answers with an error.
    Carries the decoded JSON payload so providers can classify it by structure.
    """
    def __init__(self, message: str, status: Optional[int] = None, url: str = "", payload: Optional[Dict[str, Any]] = None):
        self.status = status
        self.url = url
        self.payload = payload or {}
        super().__init__(message)

class AuthenticationError(ScmApiError):
    """Raised when the backend rejects the credential or its scope (401/403)."""
    pass

class NotFoundError(ScmApiError):
    """Raised when the backend reports a missing resource (404)."""
    pass

class TransportError(ScmApiError):
    """Raised on network failures, timeouts and server errors that outlived the retries."""
    pass

class RateLimitExceededException(ScmApiError):
    """Raised when the backend rate limit is hit and retries are exhausted."""
    def __init__(self, reset_at: Optional[str] = None, message: str = "SCM API rate limit exceeded.", url: str = ""):
        self.reset_at = reset_at
        super().__init__(f"{message} Resets at: {reset_at}", status=429, url=url)
