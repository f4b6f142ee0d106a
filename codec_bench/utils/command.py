import subprocess

from typing_extensions import List, Optional

from ..errors import CommandError


def run_command(
    command: str,
    arguments: List[str],
    quiet: bool = False,
    timeout: Optional[float] = None,
) -> None:
    """
    Run `command` with `arguments` and wait for it. Any failure (cannot be
    started, non-zero exit status, timeout) raises CommandError.
    In quiet mode the stdout and stderr of the child are discarded.
    """
    cmd = [str(command)] + [str(c) for c in arguments]
    output = subprocess.DEVNULL if quiet else None
    try:
        rv = subprocess.run(cmd, stdout=output, stderr=output, timeout=timeout)
    except OSError as err:
        raise CommandError(f"Failed to run {cmd[0]}: {err}") from err
    except subprocess.TimeoutExpired as err:
        raise CommandError(f"{cmd[0]} timed out after {timeout} seconds") from err

    if rv.returncode != 0:
        raise CommandError(
            f"{' '.join(cmd)} exited with status {rv.returncode}",
            returncode=rv.returncode,
        )
