import logging
import os
import signal
import subprocess
import time
from pathlib import Path
from typing import Mapping, Optional, Sequence

from gitclient.exceptions import GitTimeoutError, OperationFailedError
from gitclient.model import CommandResult, has_timeout

logger = logging.getLogger(__name__)

# Seconds a terminated process group gets before it is killed
TERMINATE_GRACE_PERIOD = 5


class ProcessLauncher:
    """
    Runs a single command to completion.

    Each child is started in its own session so that a timeout can take down
    the whole process tree (git spawns helpers such as remote-https and
    index-pack) before the timeout is reported.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def launch(
        self,
        args: Sequence[str],
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """
        Run a command and capture its output.

        Args:
            args: Argument vector, executable first
            cwd: Working directory
            env: Complete environment for the child (None inherits ours)
            timeout: Deadline in seconds; non-positive or None means none

        Returns:
            CommandResult with decoded stdout/stderr and the exit status

        Raises:
            GitTimeoutError: The deadline passed; the process group is dead
            OperationFailedError: The executable could not be started
        """
        deadline = timeout if has_timeout(timeout) else None
        command_line = " ".join(args)
        started = time.monotonic()
        try:
            process = subprocess.Popen(
                list(args),
                cwd=str(cwd),
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=os.name != "nt",
            )
        except OSError as e:
            raise OperationFailedError(
                f"Failed to start \"{command_line}\": {e}", command=command_line
            ) from e

        try:
            stdout, stderr = process.communicate(timeout=deadline)
        except subprocess.TimeoutExpired:
            logger.error(
                f"\"{command_line}\" timed out after {deadline}s. "
                "Terminating process and all children..."
            )
            stdout, stderr = self._terminate(process)
            assert deadline is not None
            raise GitTimeoutError(
                command_line, deadline, self._decode(stdout) + self._decode(stderr)
            )
        finally:
            if process.poll() is None:
                self._kill_group(process, signal.SIGKILL)
                process.wait()

        return CommandResult(
            args=tuple(args),
            output=self._decode(stdout),
            error=self._decode(stderr),
            status=process.returncode,
            elapsed=time.monotonic() - started,
        )

    def _terminate(self, process: subprocess.Popen):
        # Graceful first (SIGTERM to the entire group), then force
        self._kill_group(process, signal.SIGTERM)
        try:
            return process.communicate(timeout=TERMINATE_GRACE_PERIOD)
        except subprocess.TimeoutExpired:
            logger.warning("Process did not terminate gracefully, forcing kill...")
            self._kill_group(process, signal.SIGKILL)
            return process.communicate()

    @staticmethod
    def _kill_group(process: subprocess.Popen, sig: int) -> None:
        try:
            if os.name == "nt":
                process.kill()
            else:
                os.killpg(os.getpgid(process.pid), sig)
        except (ProcessLookupError, OSError):
            # Process already died
            pass

    def _decode(self, data: Optional[bytes]) -> str:
        if not data:
            return ""
        return data.decode(self.encoding, errors="replace")
