"""Local command execution utilities."""
import subprocess
from typing import List, Optional, Tuple


def execute_command(
    command: List[str],
    cwd: Optional[str] = None,
    check_exit_code: bool = True,
    timeout: Optional[int] = None
) -> Tuple[int, str, str]:
    """
    Execute a local command and return exit code, stdout, stderr.

    Args:
        command: Command and arguments (no shell interpretation)
        cwd: Optional working directory
        check_exit_code: If True, raise error on non-zero exit
        timeout: Optional command timeout in seconds

    Returns:
        Tuple of (exit_code, stdout, stderr)

    Raises:
        RuntimeError: If the command cannot be started, times out, or fails
            while check_exit_code is True
    """
    try:
        result = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=True,
            errors='replace',
            timeout=timeout
        )
    except FileNotFoundError:
        raise RuntimeError(f"Command not found: {command[0]}")
    except subprocess.TimeoutExpired:
        raise RuntimeError(f"Command timed out after {timeout}s: {' '.join(command)}")

    if check_exit_code and result.returncode != 0:
        raise RuntimeError(
            f"Command failed (exit {result.returncode}): {' '.join(command)}\nSTDERR: {result.stderr}"
        )

    return result.returncode, result.stdout, result.stderr
