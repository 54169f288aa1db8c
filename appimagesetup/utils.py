"""
AppImage Setup - Utilities
Logging setup and the filename -> short identifier rules shared by every command.
"""

import os
import re
import logging
from logging.handlers import MemoryHandler, RotatingFileHandler

from packaging.version import InvalidVersion, Version

from . import config

logger = logging.getLogger(__name__)

# Characters that end the short identifier. Creation, listing and lookup
# must all go through derive_identifier so they agree on this set.
SEPARATORS = "-_"

_SEPARATOR_RE = re.compile(f"[{re.escape(SEPARATORS)}]")
_VERSION_RE = re.compile(r"v?(\d+(?:\.\d+)*)", re.IGNORECASE)
_ARCH_RE = re.compile(r"x86[-_]64|aarch64|amd64|arm64|armhf|i[3-6]86|x86", re.IGNORECASE)

_HANDLER_MARKER = "_appimage_setup_handler"
_CONSOLE_MARKER = "_appimage_setup_console"
_PENDING_MARKER = "_appimage_setup_pending"

# Records kept in memory until the log file is opened
_PENDING_CAPACITY = 10000


def _file_handler(log_path):
    log_dir = os.path.dirname(log_path)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=config.MAX_LOG_SIZE,
        backupCount=config.MAX_LOG_BACKUPS
    )
    # Include function name in the log format
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s.%(funcName)s - %(levelname)s - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    setattr(file_handler, _HANDLER_MARKER, True)
    return file_handler


def setup_logging(level=None, log_path=None, verbose=False, defer_file=False):
    """Configures the root logger: rotating log file, plus console output when verbose.

    With ``defer_file`` nothing is created on disk yet. Records are buffered
    in memory until attach_log_file() opens the log, so read-only runs leave
    no trace in the config directory.
    """
    root_logger = logging.getLogger()

    level_name = (level or config.LOG_LEVEL).upper()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    # Drop handlers from an earlier call so repeated setup does not duplicate output
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root_logger.removeHandler(handler)
            handler.close()

    if defer_file:
        pending = MemoryHandler(_PENDING_CAPACITY, flushLevel=logging.CRITICAL + 1, target=None)
        setattr(pending, _HANDLER_MARKER, True)
        setattr(pending, _PENDING_MARKER, True)
        root_logger.addHandler(pending)
    else:
        root_logger.addHandler(_file_handler(log_path or config.LOG_PATH))

    if verbose:
        console_handler = logging.StreamHandler()
        console_formatter = logging.Formatter(
            '%(levelname)s: [%(name)s] %(message)s'
        )
        console_handler.setFormatter(console_formatter)
        setattr(console_handler, _HANDLER_MARKER, True)
        setattr(console_handler, _CONSOLE_MARKER, True)
        root_logger.addHandler(console_handler)

    return root_logger


def attach_log_file(log_path=None):
    """Opens the log file for a deferred setup and writes out the buffered records.

    Returns:
        bool: True if a log file was attached, False if logging was not deferred.
    """
    root_logger = logging.getLogger()
    pending = [h for h in root_logger.handlers if getattr(h, _PENDING_MARKER, False)]
    if not pending:
        return False

    file_handler = _file_handler(log_path or config.LOG_PATH)
    root_logger.addHandler(file_handler)
    for handler in pending:
        root_logger.removeHandler(handler)
        handler.setTarget(file_handler)
        handler.flush()
        handler.close()
    return True


def console_logging_enabled():
    """True when log records are already echoed to the console (``--verbose``)."""
    return any(getattr(h, _CONSOLE_MARKER, False) for h in logging.getLogger().handlers)


def full_base_name(filename):
    """Returns the filename without its last extension ('Foo-1.2.AppImage' -> 'Foo-1.2')."""
    filename = os.path.basename(filename)
    base, dot, _ext = filename.rpartition(".")
    if not dot:
        return filename
    return base


def derive_identifier(filename):
    """Derives the short identifier used to name a bundle's .desktop file.

    The full base name is cut at the first hyphen or underscore:
    'Foo-1.2.AppImage' and 'Foo_x86_64.AppImage' both give 'Foo'. Without a
    separator the whole base name is the identifier. A name starting with a
    separator gives an empty identifier, which callers treat as ambiguous.
    """
    base = full_base_name(filename)
    return _SEPARATOR_RE.split(base, maxsplit=1)[0]


def bundle_version(filename):
    """Parses the version that follows the short identifier, if any.

    Args:
        filename (str): Bundle filename, e.g. 'Foo-1.10.2-x86_64.AppImage'.

    Returns:
        packaging.version.Version or None: ``Version('1.10.2')`` for the
        example above, None when the name carries no version.
    """
    base = full_base_name(filename)
    identifier = derive_identifier(filename)
    remainder = _ARCH_RE.sub("", base[len(identifier) + 1:])
    for token in _SEPARATOR_RE.split(remainder):
        match = _VERSION_RE.fullmatch(token)
        if not match:
            continue
        try:
            return Version(match.group(1))
        except InvalidVersion:
            logger.debug(f"Unparseable version '{match.group(1)}' in {filename}")
            return None
    return None
