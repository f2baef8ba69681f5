"""
Utility modules for IMA signature tooling.

Provides common utilities including:
- Error categorization, logging and exit code mapping
"""

from .error_handling import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    categorize_error,
    determine_severity,
    exit_code_for,
    handle_error,
    report_error,
)

__all__ = [
    # Error handling
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'categorize_error',
    'determine_severity',
    'exit_code_for',
    'handle_error',
    'report_error',
]
