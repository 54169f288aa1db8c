"""
AppImage Setup - Errors
Exception types and the exit code each one maps to.
"""


class SetupError(Exception):
    """Base error; carries the process exit code for the CLI."""

    exit_code = 1


class UsageError(SetupError):
    """Malformed or conflicting command-line arguments."""

    exit_code = 2


class ConfigError(UsageError):
    """Invalid configuration value (prefix, directories, package name)."""


class DescriptorNotFoundError(SetupError):
    """No .desktop file matched the requested name."""

    def __init__(self, name, path=None):
        self.name = name
        self.path = path
        super().__init__(f"No desktop file found for name '{name}'")


class DescriptorWriteError(SetupError):
    """Writing a .desktop file or its icon failed. Aborts the batch."""

    exit_code = 3


class PackageInstallError(SetupError):
    """The package manager could not check or install the requested package."""


def exit_code_for_exception(exc):
    """Resolves the exit code for an exception raised during a run."""
    if isinstance(exc, SetupError):
        return exc.exit_code
    if isinstance(exc, OSError):
        return DescriptorWriteError.exit_code
    return SetupError.exit_code
