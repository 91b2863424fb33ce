"""Local command execution."""
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from rke2boot.exceptions import CommandError

logger = logging.getLogger("rke2boot.shell")


@dataclass(frozen=True)
class CommandResult:
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class CommandRunner:
    """Runs commands on the local host.

    Every command is logged before it runs. With ``dry_run`` the command is
    only logged and reported as successful.
    """

    def __init__(self, dry_run: bool = False, timeout: Optional[int] = None):
        self.dry_run = dry_run
        self.timeout = timeout

    def run(
        self,
        argv: Sequence[str],
        check: bool = True,
        env: Optional[Mapping[str, str]] = None,
        input_text: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """Run a command and capture its output.

        Args:
            argv: Command and arguments (never passed through a shell)
            check: Raise CommandError on a non-zero exit code
            env: Extra environment variables layered over os.environ
            input_text: Data written to the command's stdin
            timeout: Seconds before the command is killed

        Returns:
            CommandResult with exit code and captured output

        Raises:
            CommandError: If check is True and the command fails, or the
                executable cannot be started
        """
        argv = list(argv)
        logger.debug(f"CMD {format_argv(argv)}")

        if self.dry_run:
            logger.info(f"[dry-run] {format_argv(argv)}")
            return CommandResult(argv=argv, returncode=0)

        try:
            proc = subprocess.run(
                argv,
                input=input_text,
                capture_output=True,
                text=True,
                env=dict(os.environ, **(env or {})),
                timeout=timeout or self.timeout,
            )
        except FileNotFoundError as e:
            raise CommandError(argv, 127, str(e)) from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(argv, -1, f"timed out after {e.timeout}s") from e

        if proc.stdout:
            logger.debug(f"STDOUT {proc.stdout.strip()}")
        if proc.stderr:
            logger.debug(f"STDERR {proc.stderr.strip()}")

        result = CommandResult(argv=argv, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
        if check and not result.ok:
            raise CommandError(argv, proc.returncode, proc.stderr)
        return result
