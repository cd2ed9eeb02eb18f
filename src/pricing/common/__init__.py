"""Common utilities shared across pricing modules."""

from .config import Config
from .errors import (
    ConfigurationMissing,
    FailureKind,
    PersistenceFailure,
    PricingError,
    SourceUnavailable,
)
from .http_client import HTTPClient
from .rate_limiter import RateLimiter

__all__ = [
    "Config",
    "ConfigurationMissing",
    "FailureKind",
    "HTTPClient",
    "PersistenceFailure",
    "PricingError",
    "RateLimiter",
    "SourceUnavailable",
]
