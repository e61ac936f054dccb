# common/command_utils.py
# -*- coding: utf-8 -*-
"""
Utilities for executing shell commands and logging their output.
"""

import logging
import os
import shutil
import subprocess
from typing import Dict, List, Optional, Union

from common.logging_config import SUCCESS
from settings.config_models import SYMBOLS_DEFAULT, BootstrapSettings

module_logger = logging.getLogger(__name__)

_LEVELS: Dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "success": SUCCESS,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def get_symbols(settings: Optional[BootstrapSettings]) -> Dict[str, str]:
    """Returns the decorative symbol map, falling back to the defaults."""
    if settings is not None and getattr(settings, "symbols", None):
        return settings.symbols
    return SYMBOLS_DEFAULT


def log_step(
    message: str,
    level: str = "info",
    current_logger: Optional[logging.Logger] = None,
    settings: Optional[BootstrapSettings] = None,
    exc_info: bool = False,
) -> None:
    """
    Logs a bootstrap message at the named level.

    Args:
        message (str): The log message to be recorded.
        level (str): One of "debug", "info", "success", "warning", "error"
            or "critical". Unknown names log at INFO.
        current_logger (Optional[logging.Logger]): Logger to use. Defaults to
            the module logger.
        settings (Optional[BootstrapSettings]): Settings of the current run.
            Accepted so every helper has the same call shape.
        exc_info (bool): Attach the active exception's traceback.
    """
    effective_logger = current_logger if current_logger else module_logger
    effective_logger.log(
        _LEVELS.get(level, logging.INFO), message, exc_info=exc_info
    )


def _get_elevated_command_prefix() -> List[str]:
    """
    Returns ["sudo"] when the process is not running as root, else [].
    """
    return [] if os.geteuid() == 0 else ["sudo"]


def run_command(
    command: Union[List[str], str],
    settings: Optional[BootstrapSettings],
    check: bool = True,
    shell: bool = False,
    capture_output: bool = False,
    text: bool = True,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    quiet: bool = False,
) -> subprocess.CompletedProcess:
    """
    Executes a system command and logs the process details and results.

    Args:
        command: The command to execute, as a list of arguments or, with
            shell=True, a string.
        settings: Settings of the current run (used for log symbols).
        check: Raise CalledProcessError on a non-zero exit code.
        shell: Execute through the shell.
        capture_output: Capture stdout and stderr.
        text: Decode the output streams as text.
        cmd_input: Data passed to the command's standard input.
        current_logger: Logger to use. Defaults to the module logger.
        cwd: Working directory for the command.
        env: Environment for the command. Inherited when None.
        quiet: Log the invocation and its output at DEBUG instead of INFO.
            Used for read-only probes.

    Returns:
        subprocess.CompletedProcess: The completed process.

    Raises:
        subprocess.CalledProcessError: Non-zero exit code and check=True.
        FileNotFoundError: The executable is not on PATH.
    """
    effective_logger = current_logger if current_logger else module_logger
    symbols = get_symbols(settings)
    chatter = "debug" if quiet else "info"
    command_to_run: Union[List[str], str]

    if shell:
        command_to_run = (
            " ".join(command) if isinstance(command, list) else command
        )
        command_to_log_str = str(command_to_run)
    else:
        if isinstance(command, str):
            log_step(
                f"{symbols.get('warning', '!')} Running string command '{command}' without shell=True. Consider list format.",
                "warning",
                effective_logger,
                settings,
            )
            command_to_run = command.split()
            command_to_log_str = command
        else:
            command_to_run = command
            command_to_log_str = subprocess.list2cmdline(command)

    log_step(
        f"{symbols.get('gear', '⚙️')} Executing: {command_to_log_str} {f'(in {cwd})' if cwd else ''}".rstrip(),
        chatter,
        effective_logger,
        settings,
    )
    try:
        result = subprocess.run(
            command_to_run,
            check=check,
            shell=shell,
            capture_output=capture_output,
            text=text,
            input=cmd_input,
            cwd=cwd,
            env=env,
        )
        if capture_output:
            if result.stdout and result.stdout.strip():
                log_step(
                    f"   stdout: {result.stdout.strip()}",
                    "debug",
                    effective_logger,
                    settings,
                )
            if result.stderr and result.stderr.strip():
                log_step(
                    f"   stderr: {result.stderr.strip()}",
                    "debug",
                    effective_logger,
                    settings,
                )
        return result
    except subprocess.CalledProcessError as e:
        cmd_executed_str = (
            subprocess.list2cmdline(e.cmd)
            if isinstance(e.cmd, list)
            else str(e.cmd)
        )
        failure_level = "debug" if quiet else "warning"
        log_step(
            f"{symbols.get('error', '❌')} Command `{cmd_executed_str}` failed (rc {e.returncode}).",
            failure_level,
            effective_logger,
            settings,
        )
        stderr_info = e.stderr.strip() if isinstance(e.stderr, str) else ""
        if stderr_info:
            log_step(
                f"   stderr: {stderr_info}",
                failure_level,
                effective_logger,
                settings,
            )
        raise
    except FileNotFoundError as e:
        log_step(
            f"{symbols.get('error', '❌')} Command not found: {e.filename}. Ensure it's installed and in PATH.",
            "debug" if quiet else "warning",
            effective_logger,
            settings,
        )
        raise


def run_elevated_command(
    command: List[str],
    settings: Optional[BootstrapSettings],
    check: bool = True,
    capture_output: bool = False,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """
    Executes a mutating command with elevated permissions.

    The privilege guard normally guarantees root already; `sudo` is only
    prepended when the process is not running as root.

    Returns:
        subprocess.CompletedProcess: The result of the command execution.

    Raises:
        subprocess.CalledProcessError: If check is True and the command fails.
    """
    prefix = _get_elevated_command_prefix()
    return run_command(
        prefix + list(command),
        settings,
        check=check,
        shell=False,
        capture_output=capture_output,
        text=True,
        cmd_input=cmd_input,
        current_logger=current_logger,
        cwd=cwd,
        env=env,
    )


def command_exists(command_name: str) -> bool:
    """
    Check if a command exists in the system's PATH.

    Parameters:
        command_name (str): The name of the command to check for existence.

    Returns:
        bool: True if the command is found in the system's PATH, False otherwise.
    """
    return shutil.which(command_name) is not None


def describe_command_failure(error: BaseException) -> str:
    """
    Builds a one-line diagnostic from a failed command.

    Prefers the last non-empty stderr line of a CalledProcessError, which for
    apt and systemctl is the line naming the actual problem.
    """
    if isinstance(error, subprocess.CalledProcessError):
        cmd = (
            subprocess.list2cmdline(error.cmd)
            if isinstance(error.cmd, list)
            else str(error.cmd)
        )
        for stream in (error.stderr, error.stdout):
            if isinstance(stream, str) and stream.strip():
                last_line = stream.strip().splitlines()[-1].strip()
                return f"`{cmd}` failed (rc {error.returncode}): {last_line}"
        return f"`{cmd}` failed (rc {error.returncode})"
    if isinstance(error, FileNotFoundError) and error.filename:
        return f"command not found: {error.filename}"
    return str(error) or error.__class__.__name__
