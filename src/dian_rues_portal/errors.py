from __future__ import annotations

from typing import Iterable


class PortalError(RuntimeError):
    """
    Base class for failures the invocation envelope knows how to report.

    `error_code` is what ends up in the response body; handlers map it to a status code.
    """

    error_code: str = "UNKNOWN_ERROR"


class PayloadValidationError(PortalError):
    """
    Raised before any browser session is created when required input is missing.
    """

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, missing_fields: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.missing_fields: list[str] = list(missing_fields)


class RecordNotFoundError(PortalError):
    """The identification does not exist under any of the searched registry categories."""

    error_code = "NOT_FOUND"


class UpstreamUnavailableError(PortalError):
    """The registry search never finished for any category (spinner stuck). Retry later."""

    error_code = "API_ERROR"


class ChallengeUnresolvedError(PortalError):
    """No captcha provider returned a token."""


class PageStateError(PortalError):
    """The target page reported (or implied) a failure, or died mid-flow."""


class OutcomeError(PageStateError):
    """Raised by the outcome poller with the most specific message it could capture."""


class CertificateConversionError(PortalError):
    """The P12 blob could not be decoded into a certificate + private key."""
