"""
AppImage Setup - Package Helper
Checks for and installs the FUSE 2 runtime through dpkg/apt-get, elevating with sudo (or pkexec).
"""

import os
import shutil
import subprocess
import logging

from .errors import PackageInstallError

logger = logging.getLogger(__name__)


def _combine_output(result):
    output = ""
    if result.stdout:
        output += result.stdout.strip() + "\n"
    if result.stderr:
        output += result.stderr.strip()
    return output.strip()


def is_package_installed(package_name):
    """Returns True if dpkg reports the package as installed."""
    if not shutil.which("dpkg"):
        raise PackageInstallError("'dpkg' not found in PATH; only Debian-based systems are supported.")
    result = subprocess.run(["dpkg", "-s", package_name], capture_output=True, text=True, check=False)
    installed = result.returncode == 0
    logger.debug(f"dpkg -s {package_name}: RC={result.returncode}")
    return installed


def run_privileged(cmd_list, privilege_command="sudo"):
    """Executes a command with elevated privileges.

    Args:
        cmd_list (list): The command and its arguments, e.g. ["apt-get", "update"].
        privilege_command (str): "sudo" or "pkexec"; not used when already root.

    Returns:
        tuple: (success_bool, output_str) with stdout and stderr combined.
    """
    if not cmd_list:
        logger.error("Cannot execute command: Empty command list provided.")
        return False, "Empty command list"

    full_command = list(cmd_list)
    if os.geteuid() != 0:
        if not shutil.which(privilege_command):
            logger.error(f"Failed to execute command: '{privilege_command}' not found in PATH.")
            return False, f"'{privilege_command}' command not found."
        full_command = [privilege_command] + full_command

    command_str_for_log = ' '.join(cmd_list)
    logger.info(f"Executing: {' '.join(full_command)}")

    try:
        result = subprocess.run(full_command, capture_output=True, text=True, encoding='utf-8', check=False)
    except OSError as e:
        logger.error(f"Failed to execute [{command_str_for_log}]: {e}")
        return False, str(e)

    success = (result.returncode == 0)
    output = _combine_output(result)
    logger.debug(f"[{command_str_for_log}] finished. RC={result.returncode}. Output:\n---\n{output}\n---")
    if not success:
        logger.error(f"[{command_str_for_log}] failed. RC={result.returncode}.")
    return success, output


def ensure_package(package_name, privilege_command="sudo"):
    """Installs a package with apt-get unless dpkg already lists it.

    Returns:
        bool: True if the package was installed now, False if it was already present.

    Raises:
        PackageInstallError: if the package manager is missing or a step fails.
    """
    if is_package_installed(package_name):
        logger.info(f"{package_name} already installed.")
        return False

    if not shutil.which("apt-get"):
        raise PackageInstallError("'apt-get' not found in PATH; cannot install packages.")

    logger.info(f"Installing {package_name}...")
    for step in (["apt-get", "update", "-qq"], ["apt-get", "install", "-y", package_name]):
        success, output = run_privileged(step, privilege_command)
        if not success:
            raise PackageInstallError(f"'{' '.join(step)}' failed: {output}")

    logger.info(f"{package_name} installed.")
    return True
