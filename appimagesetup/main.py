#!/usr/bin/env python3
"""
AppImage Setup - Command Line
Installs libfuse2, makes AppImages executable, creates consistent .desktop
files and reports which AppImages already have a desktop entry.
"""

if __name__ == "__main__" and __package__ is None:
    import os, sys
    # Add project root to sys.path so package imports work when invoked directly
    project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)
    __package__ = "appimagesetup"

import sys
import os
import argparse
import logging

from . import config, utils
from .appimage_utils import BundleStore, make_executable
from .errors import (DescriptorNotFoundError, DescriptorWriteError, PackageInstallError,
                     SetupError, UsageError, exit_code_for_exception)
from .integration import (DescriptorStore, DescriptorWriter, remove_installed_icon,
                          update_desktop_database)
from .reconciler import build_status_report, format_status_report
from . import sudo_helper

logger = logging.getLogger(__name__)

EPILOG = """\
examples:
  appimage-setup -i -c ~/apps/*.AppImage
  appimage-setup -l
  appimage-setup -s Foo
"""

# Outcome kinds returned by run()
HELP = "help"
USAGE_ERROR = "usage-error"
SHOWN = "shown"
LISTED = "listed"
REMOVED = "removed"
PROCESSED = "processed"
NOTHING_TO_DO = "nothing-to-do"
FAILED = "failed"


class Outcome:
    """What a run did, and the exit code the process should end with."""

    def __init__(self, kind, exit_code=0, written=None, skipped=None, message=None):
        self.kind = kind
        self.exit_code = exit_code
        self.written = written or []
        self.skipped = skipped or []
        self.message = message
        self.installed_package = False

    @property
    def mutated(self):
        """True when the run may have changed files, which is when a log file is kept."""
        return self.installed_package or self.kind in (PROCESSED, REMOVED, FAILED)

    def __repr__(self):
        return f"Outcome(kind={self.kind!r}, exit_code={self.exit_code})"


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting the process."""

    def error(self, message):
        raise UsageError(message)


def build_parser():
    parser = _ArgumentParser(
        prog="appimage-setup",
        description=config.APP_DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("appimages", nargs="*", metavar="AppImage",
                        help="AppImage paths, globs or short names (default: every AppImage in the app directory)")
    parser.add_argument("-s", "--show-desktop", metavar="NAME",
                        help="show the .desktop file for the given short name")
    parser.add_argument("-i", "--install-libfuse2", action="store_true",
                        help="install libfuse2 if it isn't already")
    parser.add_argument("-c", "--create-desktop", action="store_true",
                        help="create/update .desktop files for the AppImages (default if AppImages are given)")
    parser.add_argument("-l", "--list", action="store_true",
                        help="list AppImages and show which have a .desktop file and which don't")
    parser.add_argument("-r", "--remove-desktop", metavar="NAME",
                        help="remove the .desktop file (and copied icon) for the given short name")
    parser.add_argument("--app-dir", help=f"AppImage directory (default: {config.DEFAULT_APP_DIR})")
    parser.add_argument("--desktop-dir", help=f"directory for .desktop files (default: {config.DEFAULT_DESKTOP_DIR})")
    parser.add_argument("--icon-dir", help=f"directory for copied icons (default: {config.DEFAULT_ICON_DIR})")
    parser.add_argument("--prefix", help=f"prefix for .desktop filenames (default: {config.DEFAULT_PREFIX})")
    parser.add_argument("-v", "--verbose", action="store_true", help="also log to the console")
    parser.add_argument("--version", action="store_true", help="show the version and exit")
    parser.add_argument("-h", "--help", action="store_true", help="show this help message and exit")
    return parser


def _wants_help(argv):
    for arg in argv:
        if arg == "--":
            return False
        if arg in ("-h", "--help"):
            return True
    return False


def _validate_name(option, name):
    if not name or not name.strip():
        raise UsageError(f"{option} needs a non-empty NAME")
    if os.sep in name or "/" in name:
        raise UsageError(f"{option} expects a short name, not a path: {name!r}")


def _validate(args):
    if args.show_desktop is not None:
        _validate_name("--show-desktop", args.show_desktop)
    if args.remove_desktop is not None:
        _validate_name("--remove-desktop", args.remove_desktop)
        if args.create_desktop:
            raise UsageError("--remove-desktop cannot be combined with --create-desktop")


class _Console:
    """User-facing output. Warnings go to the log, and are printed unless the log already reaches the console."""

    def __init__(self, out):
        self.out = out

    def say(self, message=""):
        print(message, file=self.out)

    def warn(self, message):
        logger.warning(message)
        if not utils.console_logging_enabled():
            print(f"⚠ {message}", file=self.out)


def run(argv, setup_config=None, out=None):
    """Parses arguments and performs the selected operation.

    Args:
        argv (list): command-line arguments without the program name.
        setup_config (SetupConfig): base configuration; loaded from settings and
            environment when omitted. Directory/prefix options override it.
        out: stream for user-facing output (stdout by default).

    Returns:
        Outcome: the operation performed and its exit code. Never calls sys.exit.
    """
    out = out or sys.stdout
    console = _Console(out)
    parser = build_parser()

    if not argv or _wants_help(argv):
        console.say(parser.format_help().rstrip())
        return Outcome(HELP, 0)

    try:
        args = parser.parse_args(argv)
        if args.help:
            console.say(parser.format_help().rstrip())
            return Outcome(HELP, 0)
        if args.version:
            console.say(f"{config.APP_NAME} {config.APP_VERSION}")
            return Outcome(HELP, 0)
        _validate(args)
        overrides = dict(app_dir=args.app_dir, desktop_dir=args.desktop_dir,
                         icon_dir=args.icon_dir, prefix=args.prefix)
        if setup_config is None:
            setup_config = config.SetupConfig.load(**overrides)
        else:
            setup_config = setup_config.with_overrides(**overrides)
    except UsageError as e:
        logger.error(f"Usage error: {e}")
        console.say(parser.format_usage().rstrip())
        console.say(f"{parser.prog}: error: {e}")
        return Outcome(USAGE_ERROR, e.exit_code, message=str(e))

    logger.debug(f"Running with {setup_config!r}")
    descriptor_store = DescriptorStore(setup_config)
    bundle_store = BundleStore(setup_config)

    # 1. Show desktop entry if requested
    if args.show_desktop is not None:
        return _show(console, descriptor_store, args.show_desktop)

    # 2. Install libfuse2 if requested
    installed = False
    if args.install_libfuse2:
        try:
            installed = sudo_helper.ensure_package(setup_config.package_name, setup_config.privilege_command)
        except PackageInstallError as e:
            logger.error(str(e))
            console.say(f"✘ {e}")
            return Outcome(FAILED, e.exit_code, message=str(e))
        if installed:
            console.say(f"{setup_config.package_name} installed.")
        else:
            console.say(f"{setup_config.package_name} already installed.")

    outcome = _dispatch(console, setup_config, args, bundle_store, descriptor_store)
    outcome.installed_package = installed
    return outcome


def _dispatch(console, setup_config, args, bundle_store, descriptor_store):
    # 3. List mode (no other actions)
    if args.list:
        report = build_status_report(bundle_store, descriptor_store)
        for line in format_status_report(report, setup_config):
            console.say(line)
        return Outcome(LISTED, 0)

    # 4. Remove a desktop entry if asked
    if args.remove_desktop is not None:
        return _remove(console, setup_config, descriptor_store, args.remove_desktop)

    # 5. Process supplied AppImages (or all in the app directory if none given)
    create = args.create_desktop or bool(args.appimages)
    return _process(console, setup_config, bundle_store, descriptor_store, args.appimages, create)


def _show(console, descriptor_store, name):
    try:
        content = descriptor_store.read(name)
    except DescriptorNotFoundError as e:
        console.warn(str(e))
        return Outcome(NOTHING_TO_DO, e.exit_code, message=str(e))
    console.say(content.rstrip("\n"))
    return Outcome(SHOWN, 0)


def _remove(console, setup_config, descriptor_store, name):
    entry = descriptor_store.parse(name)
    try:
        removed = descriptor_store.delete(name)
    except DescriptorWriteError as e:
        console.say(f"✘ {e}")
        return Outcome(FAILED, e.exit_code, message=str(e))

    path = descriptor_store.path_for(name)
    if not removed:
        console.warn(f"No desktop file called {path}")
        return Outcome(NOTHING_TO_DO, 1)

    console.say(f"Removed {path}")
    if entry and entry['icon']:
        for icon_path in remove_installed_icon(setup_config.icon_dir, entry['icon'], setup_config.icon_extensions):
            console.say(f"Removed {icon_path}")
    _refresh(console, descriptor_store)
    return Outcome(REMOVED, 0, written=[path])


def _refresh(console, descriptor_store):
    console.say("Updating desktop database...")
    if not update_desktop_database(descriptor_store.directory):
        console.warn("Desktop database could not be updated; the launcher may show changes later.")
        return False
    return True


def _process(console, setup_config, bundle_store, descriptor_store, tokens, create):
    if tokens:
        targets = bundle_store.resolve_all(
            tokens, on_missing=lambda token: console.warn(f"No AppImage found for basename '{token}'"))
    else:
        # No explicit arguments: act on every AppImage in the app directory
        targets = bundle_store.enumerate()

    if not targets:
        console.warn("No AppImage files found to process.")
        return Outcome(NOTHING_TO_DO, 1)

    writer = DescriptorWriter(setup_config, descriptor_store)
    written = []
    skipped = []
    failure = None

    for bundle in targets:
        if not bundle.exists():
            console.warn(f"Skipping non-existent file: {bundle.path}")
            skipped.append(bundle.path)
            continue

        try:
            if make_executable(bundle.path):
                console.say(f"✔ Made {bundle.path} executable")
            else:
                console.say(f"✔ {bundle.path} already executable")
        except OSError as e:
            console.warn(f"Could not make {bundle.path} executable: {e}")

        if not create:
            continue

        try:
            desktop_path = writer.write(bundle)
        except DescriptorWriteError as e:
            console.say(f"✘ {e}")
            failure = e
            break
        if desktop_path is None:
            console.warn(f"Cannot derive a short name from '{bundle.filename}', no desktop entry created")
            skipped.append(bundle.path)
            continue
        written.append(desktop_path)
        console.say(f"✔ Created desktop entry: {desktop_path}")

    # Update the desktop database once after all entries are written
    if written:
        _refresh(console, descriptor_store)

    if failure is not None:
        return Outcome(FAILED, failure.exit_code, written=written, skipped=skipped, message=str(failure))
    if written:
        console.say("✅ Done.")
    return Outcome(PROCESSED, 0, written=written, skipped=skipped)


def _keep_log():
    try:
        utils.attach_log_file()
    except OSError as e:
        print(f"⚠ Logging to {config.LOG_PATH} disabled: {e}", file=sys.stderr)


def main():
    argv = sys.argv[1:]
    # The log file is only opened once the run turns out to change something
    utils.setup_logging(verbose="-v" in argv or "--verbose" in argv, defer_file=True)
    logger.info(f"===== {config.APP_NAME} v{config.APP_VERSION} Starting =====")

    try:
        outcome = run(argv)
    except (SetupError, OSError) as e:
        logger.error(f"{type(e).__name__}: {e}", exc_info=True)
        _keep_log()
        print(f"✘ {e}", file=sys.stderr)
        sys.exit(exit_code_for_exception(e))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        _keep_log()
        sys.exit(130)

    logger.info(f"Finished: {outcome!r}")
    if outcome.mutated:
        _keep_log()
    sys.exit(outcome.exit_code)


if __name__ == "__main__":
    main()
