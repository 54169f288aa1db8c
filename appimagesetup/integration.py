"""
AppImage Setup - Desktop Integration
Reading, writing and removing the .desktop files named ``{prefix}-{identifier}.desktop``,
copying icons next to them and refreshing the desktop database.
"""

import os
import glob
import shutil
import stat
import subprocess
import logging
import configparser

from .errors import DescriptorNotFoundError, DescriptorWriteError

logger = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

NO_ICON_LINE = "# Icon= (no icon found)"

# Characters that need a backslash inside a quoted Exec= argument
_EXEC_QUOTED_SPECIALS = '"`$\\'
# String-type value escapes of the Desktop Entry format
_VALUE_ESCAPES = {"s": " ", "n": "\n", "t": "\t", "r": "\r", "\\": "\\"}

# --- Exec= quoting ---

def escape_exec_argument(path):
    """Quotes a path for use as one Exec= argument.

    The argument is wrapped in double quotes with '"', '`', '$' and '\\'
    backslash-escaped. The value as a whole is then a string-type key, so every
    backslash is doubled again, and a literal '%' is written '%%' so it is not
    read as a field code. Ordinary paths come out as plain ``"/path"``.
    """
    quoted = "".join(f"\\{c}" if c in _EXEC_QUOTED_SPECIALS else c for c in path)
    value = (quoted.replace("\\", "\\\\")
             .replace("\n", "\\n").replace("\t", "\\t").replace("\r", "\\r"))
    return f'"{value.replace("%", "%%")}"'


def unescape_value(value):
    """Undoes the string-type escapes (\\s, \\n, \\t, \\r, \\\\) of a desktop file value."""
    out = []
    i = 0
    while i < len(value):
        c = value[i]
        if c == "\\" and i + 1 < len(value) and value[i + 1] in _VALUE_ESCAPES:
            out.append(_VALUE_ESCAPES[value[i + 1]])
            i += 2
            continue
        out.append(c)
        i += 1
    return "".join(out)


def split_exec(value):
    """Splits an unescaped Exec= value into arguments.

    Double-quoted arguments may contain spaces and backslash-escaped
    '"', '`', '$' and '\\'. '%%' stands for a literal '%'.
    """
    args = []
    current = []
    in_token = False
    quoted = False
    i = 0
    while i < len(value):
        c = value[i]
        nxt = value[i + 1] if i + 1 < len(value) else ""
        if quoted:
            if c == "\\" and nxt and nxt in _EXEC_QUOTED_SPECIALS:
                current.append(nxt)
                i += 2
                continue
            if c == '"':
                quoted = False
            elif c == "%" and nxt == "%":
                current.append("%")
                i += 1
            else:
                current.append(c)
        elif c == '"':
            quoted = True
            in_token = True
        elif c in " \t\n":
            if in_token:
                args.append("".join(current))
                current = []
                in_token = False
        elif c == "%" and nxt == "%":
            current.append("%")
            in_token = True
            i += 1
        else:
            current.append(c)
            in_token = True
        i += 1
    if in_token:
        args.append("".join(current))
    return args


# --- Desktop Database ---

def update_desktop_database(desktop_dir):
    """Updates the desktop database for the specified directory.

    Returns:
        bool: True if the refresh ran successfully. Failures are logged, never raised.
    """
    if not desktop_dir or not os.path.isdir(desktop_dir):
        logger.warning(f"Desktop database not updated: invalid directory {desktop_dir}")
        return False

    if not shutil.which("update-desktop-database"):
        logger.warning("'update-desktop-database' not found, desktop database not updated.")
        return False

    try:
        result = subprocess.run(["update-desktop-database", desktop_dir], check=False, capture_output=True, text=True)
    except OSError as e:
        logger.warning(f"Error running 'update-desktop-database': {e}")
        return False

    if result.returncode != 0:
        logger.warning(f"'update-desktop-database' failed (RC={result.returncode}): {result.stderr.strip()}")
        return False
    logger.info(f"Desktop database updated: {desktop_dir}")
    return True


# --- Descriptor Store ---

class DescriptorStore:
    """The directory of .desktop files this tool owns, keyed by short identifier."""

    def __init__(self, setup_config):
        self.directory = setup_config.desktop_dir
        self.prefix = setup_config.prefix
        self.extension = setup_config.desktop_extension

    def filename_for(self, identifier):
        return f"{self.prefix}-{identifier}{self.extension}"

    def path_for(self, identifier):
        return os.path.join(self.directory, self.filename_for(identifier))

    def identifier_of(self, filename):
        """Strips ``{prefix}-`` and the extension; None for files we do not own."""
        filename = os.path.basename(filename)
        head = f"{self.prefix}-"
        if not filename.startswith(head) or not filename.endswith(self.extension):
            return None
        if len(filename) < len(head) + len(self.extension):
            return None
        return filename[len(head):len(filename) - len(self.extension)]

    def enumerate(self):
        """Lists our .desktop filenames at the top of the directory, sorted."""
        if not os.path.isdir(self.directory):
            logger.info(f"Desktop directory does not exist (yet): {self.directory}")
            return []

        filenames = []
        try:
            with os.scandir(self.directory) as entries:
                for entry in entries:
                    if entry.is_file(follow_symlinks=False) and self.identifier_of(entry.name) is not None:
                        filenames.append(entry.name)
        except OSError as e:
            logger.error(f"Error scanning directory {self.directory}: {e}")
            return []

        filenames.sort()
        return filenames

    def identifiers(self):
        return {self.identifier_of(filename) for filename in self.enumerate()}

    def write(self, identifier, content):
        """Creates or overwrites the .desktop file for an identifier.

        The directory is created when missing and the file is made executable,
        which some desktops require before they trust a launcher.

        Raises:
            DescriptorWriteError: if the directory or file cannot be written.
        """
        path = self.path_for(identifier)
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                f.write(content)
            os.chmod(path, os.stat(path).st_mode | _EXEC_BITS)
        except OSError as e:
            logger.error(f"Failed to write desktop file {path}: {e}")
            raise DescriptorWriteError(f"Cannot write desktop file {path}: {e}") from e
        logger.info(f"Wrote desktop file: {path}")
        return path

    def find(self, name):
        """Finds the .desktop file for a short name.

        An exact ``{prefix}-{name}.desktop`` wins; otherwise the first (sorted)
        file starting with ``{prefix}-{name}``.

        Raises:
            DescriptorNotFoundError: if nothing matches.
        """
        exact = self.path_for(name)
        if os.path.isfile(exact):
            return exact

        pattern = os.path.join(glob.escape(self.directory), f"{glob.escape(self.prefix)}-{glob.escape(name)}*{self.extension}")
        matches = sorted(path for path in glob.glob(pattern) if os.path.isfile(path))
        if not matches:
            raise DescriptorNotFoundError(name, exact)
        if len(matches) > 1:
            logger.debug(f"Several desktop files match '{name}': {matches}, using the first")
        return matches[0]

    def read(self, name):
        path = self.find(name)
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()

    def delete(self, identifier):
        """Removes the .desktop file for an identifier.

        Returns:
            bool: True if a file was removed, False if there was none.
        """
        path = self.path_for(identifier)
        if not os.path.lexists(path):
            logger.debug(f"Desktop file not found (already removed?): {path}")
            return False
        try:
            os.remove(path)
        except OSError as e:
            logger.error(f"Failed to remove desktop file {path}: {e}")
            raise DescriptorWriteError(f"Cannot remove desktop file {path}: {e}") from e
        logger.info(f"Removed desktop file: {path}")
        return True

    def parse(self, identifier):
        """Reads Name/Exec/Icon from an existing .desktop file.

        Returns:
            dict: keys 'name', 'exec', 'icon', 'target' (the launched path), or
            None if the file is missing or unreadable.
        """
        path = self.path_for(identifier)
        if not os.path.isfile(path):
            return None
        parser = configparser.ConfigParser(interpolation=None)
        parser.optionxform = str
        try:
            parser.read(path, encoding='utf-8')
        except (configparser.Error, UnicodeDecodeError) as e:
            logger.warning(f"Could not parse desktop file {path}: {e}")
            return None
        if 'Desktop Entry' not in parser:
            logger.warning(f"Could not find [Desktop Entry] section in {path}")
            return None

        entry = parser['Desktop Entry']
        data = {"name": entry.get("Name"), "exec": entry.get("Exec"), "icon": entry.get("Icon"), "target": None}
        if data['exec']:
            parts = split_exec(unescape_value(data['exec']))
            if parts:
                data['target'] = parts[0]
        return data


# --- Descriptor Writer ---

class DescriptorWriter:
    """Builds and writes the .desktop file for one AppImage, copying its icon if present."""

    def __init__(self, setup_config, store=None):
        self.icon_dir = setup_config.icon_dir
        self.icon_extensions = setup_config.icon_extensions
        self.store = store or DescriptorStore(setup_config)

    def find_icon(self, bundle):
        """Looks for ``{full base name}.{png,svg,jpg,jpeg}`` next to the AppImage."""
        for ext in self.icon_extensions:
            candidate = os.path.join(bundle.directory, f"{bundle.full_base_name}.{ext}")
            if os.path.isfile(candidate):
                logger.debug(f"Found icon for {bundle.filename}: {candidate}")
                return candidate
        return None

    def install_icon(self, icon_path, bundle):
        """Copies an icon into the icon directory as ``{full base name}.{ext}``.

        Returns:
            str: the icon name to put in Icon= (no extension, per the icon lookup rules).
        """
        ext = icon_path.rsplit(".", 1)[-1]
        target = os.path.join(self.icon_dir, f"{bundle.full_base_name}.{ext}")
        try:
            os.makedirs(self.icon_dir, exist_ok=True)
            shutil.copy2(icon_path, target)
        except (OSError, shutil.Error) as e:
            logger.error(f"Failed to copy icon {icon_path} -> {target}: {e}")
            raise DescriptorWriteError(f"Cannot copy icon {icon_path} to {target}: {e}") from e
        logger.info(f"Icon copied to: {target}")
        return bundle.full_base_name

    def render(self, bundle, icon_name=None):
        icon_line = f"Icon={icon_name}" if icon_name else NO_ICON_LINE
        return (
            "[Desktop Entry]\n"
            f"Name={bundle.identifier}\n"
            f"Exec={escape_exec_argument(bundle.path)} %U\n"
            f"{icon_line}\n"
            "Terminal=false\n"
            "Type=Application\n"
            "Categories=Utility;\n"
            "StartupNotify=true\n"
        )

    def write(self, bundle):
        """Creates or overwrites the .desktop file for an AppImage.

        Returns:
            str: path of the written file, or None when the AppImage name gives
            an empty identifier (e.g. '-foo.AppImage') and no name can be chosen.

        Raises:
            DescriptorWriteError: on any filesystem failure.
        """
        identifier = bundle.identifier
        if not identifier:
            logger.warning(f"Cannot derive a short name from '{bundle.filename}', skipping desktop entry")
            return None

        icon_name = None
        icon_path = self.find_icon(bundle)
        if icon_path:
            icon_name = self.install_icon(icon_path, bundle)
        else:
            logger.debug(f"No icon found next to {bundle.path}")

        return self.store.write(identifier, self.render(bundle, icon_name))


def remove_installed_icon(icon_dir, icon_name, icon_extensions):
    """Removes ``{icon_name}.{ext}`` files from the icon directory.

    Returns:
        list: paths that were removed.
    """
    removed = []
    if not icon_name or os.sep in icon_name or "/" in icon_name:
        return removed
    for ext in icon_extensions:
        icon_path = os.path.join(icon_dir, f"{icon_name}.{ext}")
        if os.path.isfile(icon_path):
            try:
                os.remove(icon_path)
                logger.info(f"Removed installed icon: {icon_path}")
                removed.append(icon_path)
            except OSError as e:
                logger.error(f"Failed to remove icon {icon_path}: {e}")
    return removed
