"""Log sanitization and setup.

Redacts credentials and PII before log records are emitted. The sync
bridge and the Supabase adapter both log payload fragments and connection
errors, which can carry service keys, JWTs or email addresses.

Usage:
    from flexr.utils.log_sanitizer import configure_logging

    # Once, at process start
    configure_logging("INFO")
"""

import logging
import re
from typing import Any


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class LogSanitizationFilter(logging.Filter):
    """Logging filter that redacts sensitive information from log records."""

    # Order matters - JWTs must be redacted before the Bearer pattern
    PATTERNS: list[tuple[re.Pattern, str]] = [
        # Supabase anon/service keys and session tokens are JWTs
        (re.compile(r'\beyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+'), '[REDACTED_JWT]'),

        # xAI (Grok) API keys
        (re.compile(r'\bxai-[a-zA-Z0-9]{20,}'), '[REDACTED_XAI_KEY]'),

        # Bearer tokens in Authorization headers
        (re.compile(r'Bearer\s+[a-zA-Z0-9_\-\.]+', re.IGNORECASE), 'Bearer [REDACTED_TOKEN]'),

        # apikey header used by the Supabase REST gateway
        (re.compile(r'(apikey["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),

        # Key/secret/password/token fields
        (re.compile(r'(service_key["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),
        (re.compile(r'(secret["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),
        (re.compile(r'(password["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),
        (re.compile(r'(token["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),

        # Email addresses
        (re.compile(r'\b[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}\b'), '[REDACTED_EMAIL]'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Sanitize the record in place; never drops it."""
        if record.msg:
            record.msg = self._sanitize(str(record.msg))
        if record.args:
            record.args = self._sanitize_args(record.args)
        return True

    def _sanitize(self, text: str) -> str:
        for pattern, replacement in self.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def _sanitize_args(self, args: Any) -> Any:
        if isinstance(args, str):
            return self._sanitize(args)
        elif isinstance(args, tuple):
            return tuple(self._sanitize_args(arg) for arg in args)
        elif isinstance(args, list):
            return [self._sanitize_args(arg) for arg in args]
        elif isinstance(args, dict):
            return {k: self._sanitize_args(v) for k, v in args.items()}
        else:
            str_val = str(args)
            sanitized = self._sanitize(str_val)
            # Keep non-string args intact unless something was redacted
            return sanitized if sanitized != str_val else args


def install_log_sanitizer(logger_name: str | None = None) -> None:
    """Install the sanitization filter on a named logger or on the root logger.

    When installed on the root logger, the filter is also added to every
    existing root handler so records propagated from child loggers are
    covered.
    """
    sanitizer = LogSanitizationFilter()

    if logger_name:
        logging.getLogger(logger_name).addFilter(sanitizer)
        return

    root_logger = logging.getLogger()
    root_logger.addFilter(sanitizer)
    for handler in root_logger.handlers:
        handler.addFilter(sanitizer)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging format and level, then install the sanitizer."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    install_log_sanitizer()


def sanitize_string(text: str) -> str:
    """Sanitize a string outside the logging system (e.g. error messages)."""
    return LogSanitizationFilter()._sanitize(text)
