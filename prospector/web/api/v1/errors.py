"""Translate domain errors into HTTP errors."""

import logging

from fastapi import HTTPException

from prospector.validation import SearchValidationError
from prospector.websets import ConfigurationError, ProviderRejection, TransientProviderError

logger = logging.getLogger(__name__)


def http_error(e: Exception) -> HTTPException:
    """
    Map an exception onto the HTTP status the caller should see.

    Provider rejections keep the provider's status and message.
    """
    if isinstance(e, SearchValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, ProviderRejection):
        return HTTPException(status_code=e.status_code, detail=str(e))
    if isinstance(e, TransientProviderError):
        logger.warning("Provider unavailable: %s", e)
    return HTTPException(status_code=502, detail=str(e))
