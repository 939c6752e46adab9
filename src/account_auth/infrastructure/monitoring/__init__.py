"""Logging and audit support."""

from .logging import (
    AuthJSONFormatter,
    SensitiveDataConfig,
    SensitiveDataMasker,
    account_context,
    correlation_context,
    get_correlation_id,
    log_security_event,
    mask_sensitive_data,
    set_account_id,
    set_correlation_id,
    setup_structured_logging,
)

__all__ = [
    "AuthJSONFormatter",
    "SensitiveDataConfig",
    "SensitiveDataMasker",
    "account_context",
    "correlation_context",
    "get_correlation_id",
    "log_security_event",
    "mask_sensitive_data",
    "set_account_id",
    "set_correlation_id",
    "setup_structured_logging",
]
