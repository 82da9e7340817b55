"""Custom exceptions for the billing pipeline.

Scope matters more than type here: credential problems skip one account,
fetch problems flag one instrument, and only NoCredentialsError ends a run.
"""


class BillingError(Exception):
    """Base exception for all billing errors."""


class ConfigurationError(BillingError):
    """Raised when tracked instruments or output settings are unusable."""


class CredentialError(BillingError):
    """Raised when an account has no usable API key triple."""


class NoCredentialsError(CredentialError):
    """Raised when no usable credentials exist for any account."""


class ExchangeRequestError(BillingError):
    """Raised on a transport failure or a non-zero OKX response code."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class FetchError(BillingError):
    """Raised when bills for one instrument could not be fetched completely."""

    def __init__(self, inst_id: str, message: str) -> None:
        super().__init__(f"{inst_id}: {message}")
        self.inst_id = inst_id


class PaginationLimitExceeded(FetchError):
    """Raised when an instrument needs more pages than the configured bound."""


class MalformedBillError(FetchError):
    """Raised when a bill lacks a usable timestamp or cursor id."""


class FormatError(BillingError):
    """Raised when an upstream numeric field cannot be parsed."""
