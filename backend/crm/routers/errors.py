from fastapi import HTTPException

from crm.exceptions import (
    CRMError,
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    ProviderError,
    ValidationError,
)


def to_http_exception(error: CRMError) -> HTTPException:
    """Map a service error onto the status code the API reports for it"""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=error.message)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, InvalidTransitionError):
        return HTTPException(status_code=409, detail=error.message)
    if isinstance(error, ProviderError):
        return HTTPException(status_code=502, detail=error.message)
    if isinstance(error, ConfigurationError):
        return HTTPException(status_code=503, detail=error.message)
    return HTTPException(status_code=500, detail=error.message)
