"""Exa Websets integration: client, cache, submission and polling."""

from .client import (
    WebsetsClient,
    WebsetsError,
    ConfigurationError,
    ProviderRejection,
    TransientProviderError,
    RateLimitError,
)
from .cache import WebsetCache, fingerprint
from .submitter import SearchSubmitter, build_webset_params, idempotency_key, prioritize_criteria
from .poller import CancellationToken, ProspectAccumulator, WebsetPoller

__all__ = [
    # Client
    "WebsetsClient",
    "WebsetsError",
    "ConfigurationError",
    "ProviderRejection",
    "TransientProviderError",
    "RateLimitError",
    # Reuse
    "WebsetCache",
    "fingerprint",
    # Submission
    "SearchSubmitter",
    "build_webset_params",
    "idempotency_key",
    "prioritize_criteria",
    # Polling
    "CancellationToken",
    "ProspectAccumulator",
    "WebsetPoller",
]
