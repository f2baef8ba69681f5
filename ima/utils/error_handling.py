"""
Error handling at the command-line boundary.

Library code raises typed errors (ima.errors, InvalidSignature, OSError)
and leaves them alone. imactl catches them per file, turns each into an
ErrorContext, logs it and exits with the matching status:

    InvalidSignature, UnknownSigner   -> VERIFICATION -> exit 1
    other ImaError                    -> FORMAT       -> exit 2
    cryptography UnsupportedAlgorithm -> FORMAT       -> exit 2
    OSError                           -> FILESYSTEM   -> exit 3
    ConfigError                       -> CONFIG       -> exit 4
    anything else                     -> UNKNOWN      -> re-raised

Usage:
    try:
        verify_file(path, pool)
    except (ImaError, InvalidSignature, OSError) as e:
        context = handle_error(e, f"verify {path}")
        report_error(context)
        status = context.exit_code
"""

import logging
import sys
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.exceptions import UnsupportedAlgorithm as BackendUnsupportedAlgorithm

from ..constants import ExitCode
from ..errors import ConfigError, ImaError, UnknownSigner
from ..logging_config import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """What kind of failure an error represents."""
    VERIFICATION = "verification"
    FORMAT = "format"
    FILESYSTEM = "filesystem"
    CONFIG = "configuration"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    WARNING = "warning"
    ERROR = "error"
    # Integrity of a file could not be established
    CRITICAL = "critical"


_EXIT_CODES = {
    ErrorCategory.VERIFICATION: ExitCode.VERIFICATION_FAILED,
    ErrorCategory.FORMAT: ExitCode.INVALID_INPUT,
    ErrorCategory.FILESYSTEM: ExitCode.IO_ERROR,
    ErrorCategory.CONFIG: ExitCode.CONFIG_ERROR,
}

_LOG_LEVELS = {
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def categorize_error(error: BaseException) -> ErrorCategory:
    """Classify an error by type. ConfigError wins over the ImaError base."""
    if isinstance(error, (InvalidSignature, UnknownSigner)):
        return ErrorCategory.VERIFICATION
    if isinstance(error, ConfigError):
        return ErrorCategory.CONFIG
    if isinstance(error, (ImaError, BackendUnsupportedAlgorithm)):
        return ErrorCategory.FORMAT
    if isinstance(error, OSError):
        return ErrorCategory.FILESYSTEM
    return ErrorCategory.UNKNOWN


def determine_severity(error: BaseException, category: ErrorCategory) -> ErrorSeverity:
    if category is ErrorCategory.VERIFICATION:
        return ErrorSeverity.CRITICAL
    if isinstance(error, FileNotFoundError):
        return ErrorSeverity.WARNING
    return ErrorSeverity.ERROR


def exit_code_for(error: BaseException) -> ExitCode:
    """
    Exit status for an error.

    Errors of the UNKNOWN category are re-raised: they are bugs and must
    not be reported as an ordinary failed check.
    """
    code = _EXIT_CODES.get(categorize_error(error))
    if code is None:
        raise error
    return code


@dataclass
class ErrorContext:
    """A handled error with the operation it interrupted."""
    error: BaseException
    operation: str
    category: ErrorCategory
    severity: ErrorSeverity
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    stack_trace: str = ""

    def __post_init__(self):
        if not self.stack_trace and self.error.__traceback__ is not None:
            self.stack_trace = ''.join(traceback.format_exception(
                type(self.error), self.error, self.error.__traceback__,
            ))

    @property
    def message(self) -> str:
        # InvalidSignature is usually raised without a message
        return str(self.error) or type(self.error).__name__

    @property
    def exit_code(self) -> ExitCode:
        return exit_code_for(self.error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'error_type': type(self.error).__name__,
            'error_message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'timestamp': self.timestamp,
            'details': dict(self.details),
        }

    def format_log_message(self, include_stack: bool = False) -> str:
        """One summary line, then indented details and optionally the traceback."""
        summary = (
            f"{self.operation} failed [{self.category.value}/{self.severity.value}]: "
            f"{type(self.error).__name__}: {self.message}"
        )
        extra = [f"  {key} = {value}" for key, value in self.details.items()]
        if include_stack and self.stack_trace:
            extra.append("  traceback:")
            extra.extend(f"    {line}" for line in self.stack_trace.rstrip().splitlines())
        return '\n'.join([summary] + extra)


def handle_error(
    error: BaseException,
    operation: str,
    category: Optional[ErrorCategory] = None,
    severity: Optional[ErrorSeverity] = None,
    details: Optional[Dict[str, Any]] = None,
) -> ErrorContext:
    """
    Build an ErrorContext and log it.

    Verification failures are logged at SECURITY so they show up at the
    default threshold; the rest at the level matching their severity.
    The traceback is included when DEBUG logging is enabled.
    """
    category = category or categorize_error(error)
    context = ErrorContext(
        error=error,
        operation=operation,
        category=category,
        severity=severity or determine_severity(error, category),
        details=details or {},
    )

    message = context.format_log_message(
        include_stack=logger.isEnabledFor(logging.DEBUG),
    )
    if category is ErrorCategory.VERIFICATION:
        logger.security(message)
    else:
        logger.log(_LOG_LEVELS[context.severity], message)
    return context


def report_error(context: ErrorContext, stream=None) -> None:
    """Print the one-line diagnostic users see on stderr."""
    print(f"imactl: {context.operation}: {context.message}",
          file=sys.stderr if stream is None else stream)


__all__ = [
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'categorize_error',
    'determine_severity',
    'exit_code_for',
    'handle_error',
    'report_error',
]
