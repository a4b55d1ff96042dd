"""
Error taxonomy shared by services and routers.

Services raise these; routers translate them into HTTP responses.
Pure helpers (money parsing, line items, totals) never raise.
"""
from typing import Iterable, List, Optional


class CRMError(Exception):
    """Base class for all application errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CRMError):
    """A required field is missing or malformed. Raised before any external call."""

    def __init__(self, message: str, fields: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.fields: List[str] = list(fields or [])


class NotFoundError(CRMError):
    pass


class InvalidTransitionError(CRMError):
    """The requested lifecycle action is not available in the current state"""


class TransientInfraError(CRMError):
    """Network failure, rate limiting or an expired token. Eligible for read retries."""


class ProviderError(CRMError):
    """A third-party service returned a non-success response"""


class EmailProviderError(ProviderError):
    pass


class PdfRenderError(ProviderError):
    pass


class PersistenceError(CRMError):
    """The backing store rejected a write"""


class ConfigurationError(CRMError):
    pass
