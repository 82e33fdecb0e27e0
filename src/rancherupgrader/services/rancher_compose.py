"""rancher-compose invocation for rolling upgrades."""

from typing import List, Sequence

from rancherupgrader.models import UpgradeRequest


class RancherComposeService:
    """Builds rancher-compose command lines and runs them through a CommandRunner.

    Upgrades replace one container at a time with a pause between
    replacements, so a bad image only ever takes down a single instance.
    """

    BATCH_SIZE = 1
    INTERVAL_MS = 2000
    REDACTED = "********"

    def __init__(self, command_runner, logger, console):
        self.command_runner = command_runner
        self.logger = logger
        self.console = console

    def base_args(self, request: UpgradeRequest) -> List[str]:
        return [
            request.compose_command,
            "--project-name",
            request.stack,
            "--url",
            request.url,
            "--access-key",
            request.access_key,
            "--secret-key",
            request.secret_key,
        ]

    def pull_args(self, services: Sequence[str]) -> List[str]:
        return ["pull", *services]

    def upgrade_args(self, services: Sequence[str]) -> List[str]:
        return [
            "up",
            "-d",
            "-c",
            "--pull",
            "--upgrade",
            "--force-upgrade",
            "--batch-size",
            str(self.BATCH_SIZE),
            "--interval",
            str(self.INTERVAL_MS),
            *services,
        ]

    def pull(self, request: UpgradeRequest, services: Sequence[str]):
        self.console.print(f"[blue]Pulling images for: {', '.join(services)}[/blue]")
        return self._compose(request, self.pull_args(services))

    def force_upgrade(self, request: UpgradeRequest, services: Sequence[str]):
        self.console.print(f"[blue]Upgrading services: {', '.join(services)}[/blue]")
        return self._compose(request, self.upgrade_args(services))

    def _compose(self, request: UpgradeRequest, args: List[str]):
        cmd = self.base_args(request) + args
        display = " ".join(self.REDACTED if part == request.secret_key else part for part in cmd)
        return self.command_runner.run(cmd, cwd=request.working_dir, display=display)
