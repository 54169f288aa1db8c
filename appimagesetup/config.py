"""
AppImage Setup - Configuration
Default paths and constants, plus the SetupConfig object handed to every component.
"""

import os
from pathlib import Path
import json
import logging

from .errors import ConfigError

# --- Setup Logger for config module ---
logger = logging.getLogger(__name__)
if not logger.hasHandlers():
    logger.addHandler(logging.NullHandler()) # Prevent 'No handler found' warnings

# Application information
APP_NAME = "appimage-setup"
APP_VERSION = "1.1.0"
APP_DESCRIPTION = "Make AppImages executable and keep their .desktop entries in sync"

# System constants
LIBFUSE_PACKAGE = "libfuse2"  # Needed by type 2 AppImages on Debian/Ubuntu
PRIVILEGE_COMMAND = "sudo"

# Directory configuration
USER_HOME = str(Path.home())
CONFIG_DIR = os.path.join(USER_HOME, ".config", "appimage-setup")
SETTINGS_PATH = os.path.join(CONFIG_DIR, "settings.json")
LOG_PATH = os.path.join(CONFIG_DIR, "appimage-setup.log")

DEFAULT_APP_DIR = os.path.join(USER_HOME, "apps")
DEFAULT_DESKTOP_DIR = os.path.join(USER_HOME, ".local/share/applications")
DEFAULT_ICON_DIR = os.path.join(USER_HOME, ".local/share/icons/hicolor/256x256/apps")
DEFAULT_PREFIX = "appimage"  # prefix used for .desktop filenames

# File naming
BUNDLE_EXTENSION = ".AppImage"
DESKTOP_EXTENSION = ".desktop"
ICON_EXTENSIONS = ("png", "svg", "jpg", "jpeg")  # lookup order, first match wins

# Logging settings
LOG_LEVEL = "DEBUG"
MAX_LOG_SIZE = 1024 * 1024 * 5  # 5 MB
MAX_LOG_BACKUPS = 3

# Environment overrides, checked after settings.json
ENV_OVERRIDES = {
    "app_dir": "APPIMAGE_SETUP_APP_DIR",
    "desktop_dir": "APPIMAGE_SETUP_DESKTOP_DIR",
    "icon_dir": "APPIMAGE_SETUP_ICON_DIR",
    "prefix": "APPIMAGE_SETUP_PREFIX",
}

_DIRECTORY_KEYS = ("app_dir", "desktop_dir", "icon_dir")


def _defaults():
    return {
        'app_dir': DEFAULT_APP_DIR,
        'desktop_dir': DEFAULT_DESKTOP_DIR,
        'icon_dir': DEFAULT_ICON_DIR,
        'prefix': DEFAULT_PREFIX,
        'package_name': LIBFUSE_PACKAGE,
        'privilege_command': PRIVILEGE_COMMAND,
    }


def _load_settings(settings_path):
    """Reads settings.json, returning an empty dict when it is missing or unusable."""
    if not settings_path or not os.path.exists(settings_path):
        logger.debug(f"Settings file not found ({settings_path}). Using defaults.")
        return {}

    try:
        with open(settings_path, 'r', encoding='utf-8') as f:
            loaded_settings = json.load(f)
    except json.JSONDecodeError:
        logger.error(f"Settings file ({settings_path}) is corrupted. Using defaults.")
        return {}
    except OSError as e:
        logger.error(f"Failed to load settings from {settings_path}: {e}. Using defaults.")
        return {}

    if not isinstance(loaded_settings, dict):
        logger.error(f"Settings file ({settings_path}) does not hold an object. Using defaults.")
        return {}

    known = {key: value for key, value in loaded_settings.items() if key in _defaults()}
    unknown = set(loaded_settings) - set(known)
    if unknown:
        logger.warning(f"Ignoring unknown settings keys: {sorted(unknown)}")
    logger.debug(f"Settings loaded from {settings_path}")
    return known


class SetupConfig:
    """Directories, descriptor prefix and package settings for one run.

    Built once (normally through :meth:`load`) and passed to the stores,
    the writer and the dispatcher, so nothing reads module globals at
    call time.
    """

    def __init__(self, app_dir=DEFAULT_APP_DIR, desktop_dir=DEFAULT_DESKTOP_DIR,
                 icon_dir=DEFAULT_ICON_DIR, prefix=DEFAULT_PREFIX,
                 package_name=LIBFUSE_PACKAGE, privilege_command=PRIVILEGE_COMMAND):
        self.app_dir = os.path.abspath(os.path.expanduser(app_dir))
        self.desktop_dir = os.path.abspath(os.path.expanduser(desktop_dir))
        self.icon_dir = os.path.abspath(os.path.expanduser(icon_dir))
        self.prefix = prefix
        self.package_name = package_name
        self.privilege_command = privilege_command
        self.bundle_extension = BUNDLE_EXTENSION
        self.desktop_extension = DESKTOP_EXTENSION
        self.icon_extensions = ICON_EXTENSIONS
        self._validate()

    def _validate(self):
        if not self.prefix:
            raise ConfigError("Descriptor prefix must not be empty.")
        if os.sep in self.prefix or "/" in self.prefix:
            raise ConfigError(f"Descriptor prefix must not contain a path separator: {self.prefix!r}")
        if not self.package_name:
            raise ConfigError("Package name must not be empty.")

    @classmethod
    def load(cls, settings_path=SETTINGS_PATH, environ=None, **overrides):
        """Resolves a configuration from defaults, settings.json, environment and overrides.

        Args:
            settings_path (str): JSON settings file; ``None`` skips it.
            environ (dict): Environment mapping, ``os.environ`` when omitted.
            **overrides: Explicit values (e.g. from the command line); ``None`` means unset.

        Returns:
            SetupConfig: the resolved configuration.
        """
        if environ is None:
            environ = os.environ

        values = _defaults()
        values.update(_load_settings(settings_path))

        for key, env_name in ENV_OVERRIDES.items():
            env_value = environ.get(env_name)
            if env_value:
                logger.debug(f"Using {env_name}={env_value}")
                values[key] = env_value

        for key, value in overrides.items():
            if key not in values:
                raise TypeError(f"Unknown configuration key: {key}")
            if value is not None:
                values[key] = value

        return cls(**values)

    def with_overrides(self, **overrides):
        """Returns a copy with every non-None override applied."""
        values = self.as_dict()
        for key, value in overrides.items():
            if key not in values:
                raise TypeError(f"Unknown configuration key: {key}")
            if value is not None:
                values[key] = value
        return SetupConfig(**values)

    def as_dict(self):
        return {
            'app_dir': self.app_dir,
            'desktop_dir': self.desktop_dir,
            'icon_dir': self.icon_dir,
            'prefix': self.prefix,
            'package_name': self.package_name,
            'privilege_command': self.privilege_command,
        }

    def __repr__(self):
        return f"SetupConfig({self.as_dict()!r})"
