"""
Logging Configuration for IMA signature tooling.

Library modules only create loggers (get_logger(__name__)) and emit
debug and trace records. The command-line tool calls setup_logging() once to
decide where records go and in which format.

Levels:
    TRACE     5   per-candidate key attempts, enabled by --trace
    DEBUG    10
    VERBOSE  15   what imactl is doing, enabled by --verbose
    INFO     20
    WARNING  30   default threshold
    SECURITY 55   failed verifications, always shown

Usage:
    from ima.logging_config import setup_logging, get_logger

    setup_logging(verbose=True, json_format=False)
    logger = get_logger(__name__)
    logger.log_with_data(VERBOSE, "Loaded keys", {'count': 3})
"""

import json
import logging
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import Any, Dict, Optional

TRACE = 5
VERBOSE = 15
SECURITY = 55

logging.addLevelName(TRACE, 'TRACE')
logging.addLevelName(VERBOSE, 'VERBOSE')
logging.addLevelName(SECURITY, 'SECURITY')


class FeatureArea(Enum):
    """Package area a log record comes from."""
    CORE = auto()
    HASHES = auto()
    KEYS = auto()
    CODEC = auto()
    SIGNING = auto()
    XATTR = auto()
    CONFIG = auto()
    CLI = auto()


_MODULE_FEATURES = {
    'hashes': FeatureArea.HASHES,
    'keys': FeatureArea.KEYS,
    'signature': FeatureArea.CODEC,
    'signing': FeatureArea.SIGNING,
    'xattr': FeatureArea.XATTR,
    'config': FeatureArea.CONFIG,
    'cli': FeatureArea.CLI,
    'imactl': FeatureArea.CLI,
}


def detect_feature(logger_name: str) -> FeatureArea:
    """Map a logger name such as 'ima.keys' to its feature area."""
    for part in logger_name.lower().split('.'):
        feature = _MODULE_FEATURES.get(part)
        if feature is not None:
            return feature
    return FeatureArea.CORE


# =============================================================================
# FORMATTER
# =============================================================================

# ANSI colors, only for levels that deserve attention
_LEVEL_COLORS = {
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[1;31m',
    SECURITY: '\033[1;35m',
}
_COLOR_RESET = '\033[0m'


class ImaFormatter(logging.Formatter):
    """Render records as a single text line or as a JSON object."""

    def __init__(self, use_colors: bool = True, json_format: bool = False, stream=None):
        super().__init__()
        stream = sys.stderr if stream is None else stream
        isatty = getattr(stream, 'isatty', None)
        self.use_colors = bool(use_colors and isatty is not None and isatty())
        self.json_format = json_format

    def _fields(self, record: logging.LogRecord) -> Dict[str, Any]:
        fields = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(timespec='milliseconds'),
            'level': record.levelname,
            'logger': record.name,
            'feature': detect_feature(record.name).name.lower(),
            'message': record.getMessage(),
        }
        data = getattr(record, 'extra_data', None)
        if data:
            fields['extra'] = data
        if record.exc_info:
            fields['exception'] = self.formatException(record.exc_info)
        return fields

    def format(self, record: logging.LogRecord) -> str:
        fields = self._fields(record)
        if self.json_format:
            return json.dumps(fields, default=str)

        level = f"{fields['level']:<8}"
        color = _LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        if color:
            level = f"{color}{level}{_COLOR_RESET}"

        line = f"{fields['timestamp']} {level} [{fields['feature']}] {fields['message']}"
        if 'extra' in fields:
            pairs = ', '.join(f"{key}={value}" for key, value in fields['extra'].items())
            line = f"{line} | {pairs}"
        if 'exception' in fields:
            line = f"{line}\n{fields['exception']}"
        return line


# =============================================================================
# LOGGER CLASS
# =============================================================================

class ImaLogger(logging.Logger):
    """Logger with TRACE, VERBOSE and SECURITY shortcuts."""

    def __init__(self, name: str, level: int = logging.NOTSET):
        super().__init__(name, level)
        self.feature = detect_feature(name)

    def trace(self, msg: str, *args, **kwargs):
        self.log(TRACE, msg, *args, **kwargs)

    def verbose(self, msg: str, *args, **kwargs):
        self.log(VERBOSE, msg, *args, **kwargs)

    def security(self, msg: str, *args, **kwargs):
        self.log(SECURITY, msg, *args, **kwargs)

    def log_with_data(self, level: int, msg: str, data: Dict[str, Any], **kwargs):
        """Log msg with a dictionary rendered after the message."""
        extra = dict(kwargs.pop('extra', None) or {})
        extra['extra_data'] = data
        self.log(level, msg, extra=extra, **kwargs)


logging.setLoggerClass(ImaLogger)


def get_logger(name: str) -> ImaLogger:
    """
    Get an ImaLogger for name.

    A logger created before this module was imported is a plain Logger;
    in that case its '<name>.ima' child is returned instead.
    """
    logger = logging.getLogger(name)
    if isinstance(logger, ImaLogger):
        return logger
    return logging.getLogger(f"{name}.ima")


# =============================================================================
# SETUP
# =============================================================================

@dataclass
class LoggingOptions:
    """Where records go and from which level."""
    verbose: bool = False
    trace: bool = False
    log_file: Optional[str] = None
    console: bool = True
    json_format: bool = False

    def level(self) -> int:
        if self.trace:
            return TRACE
        if self.verbose:
            return VERBOSE
        return logging.WARNING


_installed = []
_lock = threading.RLock()


def _build_handlers(options: LoggingOptions):
    handlers = []
    if options.console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ImaFormatter(json_format=options.json_format, stream=sys.stderr))
        handlers.append(handler)
    if options.log_file:
        Path(options.log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(options.log_file)
        handler.setFormatter(ImaFormatter(use_colors=False, json_format=options.json_format))
        handlers.append(handler)
    return handlers


def setup_logging(
    verbose: bool = False,
    trace: bool = False,
    log_file: Optional[str] = None,
    console: bool = True,
    json_format: bool = False,
) -> None:
    """
    Replace the root logger's handlers according to the options.

    Console records go to stderr; stdout is reserved for command output.
    trace implies verbose. Handlers installed by an earlier call are
    closed. If the log file cannot be opened, OSError propagates and the
    existing handlers are left in place.
    """
    options = LoggingOptions(
        verbose=verbose or trace,
        trace=trace,
        log_file=log_file,
        console=console,
        json_format=json_format,
    )
    level = options.level()

    with _lock:
        handlers = _build_handlers(options)
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in _installed:
            handler.close()
        _installed[:] = handlers
        for handler in handlers:
            handler.setLevel(level)
            root.addHandler(handler)
        root.setLevel(level)


__all__ = [
    'TRACE',
    'VERBOSE',
    'SECURITY',
    'FeatureArea',
    'detect_feature',
    'ImaFormatter',
    'ImaLogger',
    'get_logger',
    'LoggingOptions',
    'setup_logging',
]
