"""
Structured Logging for the account authentication services

JSON structured logs with correlation IDs, account context, security event
fields and masking of credentials, tokens and one-time passcodes.
"""

import json
import logging
import re
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from opentelemetry import trace

# Context variables for correlation tracking
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
account_id_var: ContextVar[str | None] = ContextVar("account_id", default=None)

logger = logging.getLogger(__name__)


@dataclass
class SensitiveDataConfig:
    """Configuration for sensitive data masking."""

    # Credential, token and passcode keys
    credential_patterns: list[str] = field(
        default_factory=lambda: [
            r"password",
            r"access[_-]?token",
            r"refresh[_-]?token",
            r"two[_-]?factor[_-]?token",
            r"authorization",
            r"otp",
            r"code",
            r"secret",
        ]
    )

    # Contact data that identifies a person
    contact_patterns: list[str] = field(
        default_factory=lambda: [
            r"phone",
            r"destination",
        ]
    )

    # Replacement text
    mask_replacement: str = "***MASKED***"

    # Fields to completely exclude from logs
    excluded_fields: set[str] = field(
        default_factory=lambda: {"password", "new_password", "current_password", "password_hash"}
    )

    @property
    def all_patterns(self) -> list[str]:
        return self.credential_patterns + self.contact_patterns


class AuthLogRecord(logging.LogRecord):
    """Log record enriched with correlation, account and tracing context."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)

        self.correlation_id = correlation_id_var.get()
        self.account_id = account_id_var.get()

        span = trace.get_current_span()
        if span.is_recording():
            span_context = span.get_span_context()
            self.trace_id = format(span_context.trace_id, "032x") if span_context.trace_id else None
            self.span_id = format(span_context.span_id, "016x") if span_context.span_id else None
        else:
            self.trace_id = None
            self.span_id = None


class SensitiveDataMasker:
    """Masks sensitive data in log messages and extra fields."""

    def __init__(self, config: SensitiveDataConfig) -> None:
        self.config = config
        self._compiled_patterns = self._compile_patterns()

    def _compile_patterns(self) -> list[re.Pattern[str]]:
        """Compile key:value and key=value matchers for every sensitive key."""
        compiled = []
        for pattern in self.config.all_patterns:
            try:
                full_pattern = rf'("{pattern}":\s*"[^"]*"|\b{pattern}=\S+|\b{pattern}:\s*\S+)'
                compiled.append(re.compile(full_pattern, re.IGNORECASE))
            except re.error as e:
                logger.warning(f"Invalid regex pattern '{pattern}': {e}")
        return compiled

    def mask_message(self, message: str) -> str:
        """Mask sensitive data in log message."""
        masked_message = message
        for pattern in self._compiled_patterns:
            masked_message = pattern.sub(lambda m: self._replace_value(m.group(0)), masked_message)
        return masked_message

    def mask_extra_fields(self, extra: dict[str, Any]) -> dict[str, Any]:
        """Mask sensitive data in extra log fields."""
        if not extra:
            return extra

        masked_extra: dict[str, Any] = {}
        for key, value in extra.items():
            if key.lower() in self.config.excluded_fields:
                continue

            if self._is_sensitive_field(key):
                masked_extra[key] = self.config.mask_replacement
            elif isinstance(value, str):
                masked_extra[key] = self.mask_message(value)
            elif isinstance(value, dict):
                masked_extra[key] = self.mask_extra_fields(value)
            else:
                masked_extra[key] = value

        return masked_extra

    def _is_sensitive_field(self, field_name: str) -> bool:
        field_lower = field_name.lower()
        return any(re.search(pattern, field_lower) for pattern in self.config.all_patterns)

    def _replace_value(self, match: str) -> str:
        if ":" in match:
            key_part = match.split(":", 1)[0]
            return f'{key_part}: "{self.config.mask_replacement}"'
        elif "=" in match:
            key_part = match.split("=", 1)[0]
            return f"{key_part}={self.config.mask_replacement}"
        return self.config.mask_replacement


class AuthJSONFormatter(logging.Formatter):
    """JSON formatter for structured authentication logs."""

    STANDARD_FIELDS = frozenset(
        {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "exc_info",
            "exc_text",
            "stack_info",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "taskName",
            "message",
            "correlation_id",
            "account_id",
            "trace_id",
            "span_id",
        }
    )

    def __init__(
        self,
        sensitive_data_config: SensitiveDataConfig | None = None,
        include_extra: bool = True,
        sort_keys: bool = True,
    ):
        super().__init__()
        self.include_extra = include_extra
        self.sort_keys = sort_keys
        self.masker = SensitiveDataMasker(sensitive_data_config or SensitiveDataConfig())

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self.masker.mask_message(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for attr in ("correlation_id", "account_id", "trace_id", "span_id"):
            value = getattr(record, attr, None)
            if value:
                log_entry[attr] = value

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": self.masker.mask_message(str(record.exc_info[1]))
                if record.exc_info[1]
                else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: self._serialize_value(value)
                for key, value in record.__dict__.items()
                if key not in self.STANDARD_FIELDS and not key.startswith("_")
            }
            if extra:
                log_entry["extra"] = self.masker.mask_extra_fields(extra)

        return json.dumps(log_entry, sort_keys=self.sort_keys, default=self._serialize_value)

    def _serialize_value(self, value: Any) -> Any:
        """Serialize complex values for JSON output."""
        if isinstance(value, Enum):
            return value.value
        elif isinstance(value, datetime):
            return value.isoformat()
        elif isinstance(value, (set, frozenset)):
            return list(value)
        elif hasattr(value, "__dict__"):
            return str(value)
        return value


# Correlation ID management
def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID for current context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get current correlation ID."""
    return correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str, None, None]:
    """Context manager for correlation ID scope."""
    if correlation_id is None:
        correlation_id = generate_correlation_id()

    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


def set_account_id(account_id: str | None) -> None:
    """Bind an account id to the current context."""
    account_id_var.set(account_id)


@contextmanager
def account_context(account_id: str) -> Generator[None, None, None]:
    """Context manager binding an account id to every record logged inside it."""
    token = account_id_var.set(account_id)
    try:
        yield
    finally:
        account_id_var.reset(token)


def log_security_event(
    event_type: str,
    account_id: str | None = None,
    success: bool = True,
    level: int | None = None,
    **event_data: Any,
) -> None:
    """
    Log an authentication audit event.

    Args:
        event_type: Event name such as login_failed or password_changed
        account_id: Account the event concerns, if known
        success: Whether the operation succeeded
        level: Explicit log level; defaults to INFO on success and WARNING otherwise
        **event_data: Additional fields, masked by the JSON formatter
    """
    audit_logger = logging.getLogger("account_auth.audit")
    if level is None:
        level = logging.INFO if success else logging.WARNING

    audit_logger.log(
        level,
        f"Security event {event_type}",
        extra={
            "event_type": event_type,
            "event_account_id": account_id,
            "success": success,
            **event_data,
        },
    )


def mask_sensitive_data(
    data: str | dict[str, Any], config: SensitiveDataConfig | None = None
) -> str | dict[str, Any]:
    """Utility function to mask sensitive data."""
    masker = SensitiveDataMasker(config or SensitiveDataConfig())

    if isinstance(data, str):
        return masker.mask_message(data)
    return masker.mask_extra_fields(data)


def setup_structured_logging(
    level: str = "INFO",
    format_type: str = "json",
    sensitive_data_config: SensitiveDataConfig | None = None,
    log_file: str | None = None,
) -> None:
    """
    Setup structured logging for the authentication services.

    Args:
        level: Logging level
        format_type: Formatter type ('json' or 'text')
        sensitive_data_config: Sensitive data masking configuration
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter: logging.Formatter
    if format_type == "json":
        formatter = AuthJSONFormatter(sensitive_data_config)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(getattr(logging, level.upper()))

    # Every record carries correlation and tracing context
    logging.setLogRecordFactory(AuthLogRecord)

    logging.info("Structured logging configured successfully")
