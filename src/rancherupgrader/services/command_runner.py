"""Subprocess execution service for rancher-upgrader."""

import subprocess
from typing import List, Optional

from rancherupgrader.errors import SubprocessError
from rancherupgrader.errors_catalog import actionable_error


class CommandRunner:
    """Runs external commands with consistent error handling.

    Output goes straight to the terminal; a non-zero exit always raises.
    """

    def __init__(self, logger, default_timeout: Optional[float] = None, subprocess_module=subprocess):
        self.logger = logger
        self.default_timeout = default_timeout
        self.subprocess = subprocess_module

    def run(
        self,
        cmd: List[str],
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
        display: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = display or " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            result = self.subprocess.run(cmd, text=True, timeout=effective_timeout, cwd=cwd)
        except FileNotFoundError as exc:
            raise SubprocessError(actionable_error("compose_not_found", command=cmd[0])) from exc
        except self.subprocess.TimeoutExpired as exc:
            raise SubprocessError(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
        except OSError as exc:
            raise SubprocessError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if result.returncode != 0:
            raise SubprocessError(
                actionable_error("compose_failed", command=cmd[0], returncode=str(result.returncode)),
                returncode=result.returncode,
            )
        return result
