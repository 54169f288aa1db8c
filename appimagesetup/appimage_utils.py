"""
AppImage Setup - AppImage files
Finding AppImages in the library directory, resolving command-line tokens
to AppImage paths and toggling their executable bit.
"""

import os
import glob
import stat
import logging

from .utils import bundle_version, derive_identifier, full_base_name

logger = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


class Bundle:
    """An AppImage file. Only its path is stored; names are derived on demand."""

    def __init__(self, path):
        # Absolute but not symlink-resolved, so Exec= keeps the path the user sees
        self.path = os.path.abspath(os.path.expanduser(path))

    @property
    def filename(self):
        return os.path.basename(self.path)

    @property
    def directory(self):
        return os.path.dirname(self.path)

    @property
    def full_base_name(self):
        return full_base_name(self.filename)

    @property
    def identifier(self):
        return derive_identifier(self.filename)

    @property
    def version(self):
        return bundle_version(self.filename)

    def exists(self):
        return os.path.isfile(self.path)

    def __eq__(self, other):
        if not isinstance(other, Bundle):
            return NotImplemented
        return self.path == other.path

    def __hash__(self):
        return hash(self.path)

    def __lt__(self, other):
        return (self.filename, self.path) < (other.filename, other.path)

    def __repr__(self):
        return f"Bundle({self.path!r})"


class BundleStore:
    """The directory of AppImages managed by this tool (``~/apps`` by default)."""

    def __init__(self, setup_config):
        self.directory = setup_config.app_dir
        self.extension = setup_config.bundle_extension

    def _has_extension(self, filename):
        return filename.lower().endswith(self.extension.lower())

    def enumerate(self):
        """Lists the AppImages directly inside the directory, sorted by filename.

        A missing directory is an empty library, not an error.
        """
        if not os.path.isdir(self.directory):
            logger.info(f"AppImage directory does not exist (yet): {self.directory}")
            return []

        bundles = []
        try:
            with os.scandir(self.directory) as entries:
                for entry in entries:
                    if entry.is_file(follow_symlinks=False) and self._has_extension(entry.name):
                        bundles.append(Bundle(entry.path))
        except OSError as e:
            logger.error(f"Error scanning directory {self.directory}: {e}")
            return []

        bundles.sort()
        logger.debug(f"Found {len(bundles)} AppImages in {self.directory}")
        return bundles

    def resolve(self, token):
        """Resolves one command-line token to AppImages.

        Tokens containing a '/' or ending in the AppImage extension are paths
        (globs are expanded unless a file by that exact name exists). Anything else is a short name: every AppImage in
        the directory whose filename starts with it, ignoring case.

        Returns:
            list: matching Bundle objects, empty when nothing matched.
        """
        if os.sep in token or "/" in token or self._has_extension(token):
            path = os.path.expanduser(token)
            if glob.has_magic(path) and not os.path.lexists(path):
                matches = sorted(glob.glob(path))
                logger.debug(f"Glob '{token}' expanded to {len(matches)} paths")
                return [Bundle(match) for match in matches]
            # Kept even if missing; processing reports vanished files
            return [Bundle(path)]

        query = token.lower()
        matches = [bundle for bundle in self.enumerate() if bundle.filename.lower().startswith(query)]
        logger.debug(f"Name '{token}' matched {[b.filename for b in matches]}")
        return matches

    def resolve_all(self, tokens, on_missing=None):
        """Resolves every token, dropping duplicate paths while keeping first-seen order.

        ``on_missing(token)`` is called for each token that matched nothing.
        """
        resolved = []
        seen = set()
        for token in tokens:
            matches = self.resolve(token)
            if not matches:
                logger.debug(f"No AppImage found for '{token}'")
                if on_missing:
                    on_missing(token)
                continue
            for bundle in matches:
                if bundle not in seen:
                    seen.add(bundle)
                    resolved.append(bundle)
        return resolved


def is_executable(path):
    return os.access(path, os.X_OK)


def make_executable(path):
    """Adds the execute bits to a file (``chmod +x``).

    Returns:
        bool: True if the mode was changed, False if it was already executable.
    """
    if is_executable(path):
        logger.debug(f"{path} already executable")
        return False
    mode = os.stat(path).st_mode
    os.chmod(path, mode | _EXEC_BITS)
    logger.info(f"Made {path} executable")
    return True
