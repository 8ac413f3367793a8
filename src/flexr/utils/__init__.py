"""Utility modules for FLEXR."""

from .log_sanitizer import (
    LogSanitizationFilter,
    configure_logging,
    install_log_sanitizer,
    sanitize_string,
)

__all__ = [
    "LogSanitizationFilter",
    "configure_logging",
    "install_log_sanitizer",
    "sanitize_string",
]
