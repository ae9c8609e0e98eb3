# SPDX-License-Identifier: GPL-3.0-or-later

from logging import debug
from pathlib import Path
from subprocess import PIPE
from subprocess import STDOUT
from subprocess import CalledProcessError
from subprocess import run
from typing import Any
from typing import Callable
from typing import List
from typing import Optional


def system(cmd: List[str], _stdin: Optional[bytes] = None, merge_stderr: bool = True) -> str:
    """Execute a command using run

    Parameters
    ----------
    cmd: A list of strings to be fed to run
    _stdin: Optional bytes fed to the standard input of the spawned process
    merge_stderr: Whether stderr is part of the returned output, otherwise it is only traced (defaults to True)

    Raises
    ------
    CalledProcessError: If the command exits with a non-zero status

    Returns
    -------
    The output of cmd
    """

    debug(f"+ {' '.join(cmd)}")
    try:
        process = run(cmd, input=_stdin, stdout=PIPE, stderr=STDOUT if merge_stderr else PIPE, check=True)
    except CalledProcessError as e:
        debug(f"{cmd[0]} exited with status {e.returncode}:\n{decode_output(e.output)}{decode_output(e.stderr)}")
        raise e
    if process.stderr:
        debug(decode_output(process.stderr).rstrip())
    output = process.stdout.decode()
    if output:
        debug(output.rstrip())
    return output


def best_effort(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[CalledProcessError]:
    """Call a function wrapping external commands whose failure is tolerated

    Parameters
    ----------
    func: The function to call
    args: Positional arguments passed to func
    kwargs: Keyword arguments passed to func

    Returns
    -------
    The error of the failing command, None if the call succeeded
    """

    try:
        func(*args, **kwargs)
    except CalledProcessError as e:
        return e
    return None


def decode_output(output: Any) -> str:
    if isinstance(output, bytes):
        return output.decode(errors="replace")
    return str(output or "")


def add_mode(path: Path, mode: int) -> None:
    """Add permission bits to a path, leaving all other bits untouched

    Parameters
    ----------
    path: The path to change the permissions of
    mode: The permission bits to add
    """

    path.chmod(path.stat().st_mode | mode)


def write_private_file(path: Path, content: str) -> None:
    """Write content to a file that is only accessible by its owner

    Parameters
    ----------
    path: The file to write
    content: The text to write to the file
    """

    path.touch(mode=0o600, exist_ok=True)
    path.chmod(0o600)
    path.write_text(content)
