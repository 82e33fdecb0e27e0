import logging
import os

import click
from rich.logging import RichHandler

from . import __version__
from .core import RancherUpgrader, UpgraderError
from .models import UpgradeRequest
from .services.config_loader import ConfigLoader

DEFAULT_CONFIG_FILE = ".rancherupgrader.yml"


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.group()
@click.version_option(__version__, prog_name="rancher-upgrader")
def main():
    """Work with the Rancher API to make running rancher-compose seamless."""


@main.command()
@click.argument("services", nargs=-1)
@click.option("-e", "--environment", required=False, help="Rancher environment name")
@click.option("-s", "--stack", required=False, help="Rancher stack name")
@click.option("--url", required=False, help="Rancher API endpoint URL")
@click.option("--access-key", required=False, help="Rancher API access key")
@click.option("--secret-key", required=False, help="Rancher API secret key")
@click.option("-t", "--tag", required=False, help="Change the image tag for the given services")
@click.option("-u", "--docker-user", required=False, help="Docker Hub user name")
@click.option("-p", "--docker-pass", required=False, help="Docker Hub password")
@click.option(
    "-d",
    "--dry-run",
    is_flag=True,
    default=None,
    help="Resolve services and rewrite tags, but don't run rancher-compose.",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML or JSON configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--working-dir",
    required=False,
    type=click.Path(file_okay=False),
    help="Directory for the compose bundle and docker-compose.yml (default: current directory).",
)
@click.option("--registry-url", required=False, help="Registry API base URL (default: Docker Hub).")
@click.option("--api-timeout", type=float, default=None, help="Rancher API timeout in seconds.")
@click.option("--registry-timeout", type=float, default=None, help="Registry API timeout in seconds.")
@click.option(
    "--compose-timeout",
    type=float,
    default=None,
    help="Timeout in seconds for each rancher-compose invocation.",
)
@click.option("--compose-command", required=False, help="rancher-compose executable to run.")
def upgrade(
    services,
    environment,
    stack,
    url,
    access_key,
    secret_key,
    tag,
    docker_user,
    docker_pass,
    dry_run,
    config,
    verbose,
    log_file,
    working_dir,
    registry_url,
    api_timeout,
    registry_timeout,
    compose_timeout,
    compose_command,
):
    """Upgrade SERVICES of a stack (all services when none are given)."""
    logger = logging.getLogger("rancherupgrader")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except UpgraderError as exc:
        raise click.ClickException(str(exc)) from exc

    cli_values = {
        "services": list(services) or None,
        "environment": environment,
        "stack": stack,
        "url": url,
        "access_key": access_key,
        "secret_key": secret_key,
        "tag": tag,
        "docker_user": docker_user,
        "docker_pass": docker_pass,
        "dry_run": dry_run,
        "working_dir": working_dir,
        "registry_url": registry_url,
        "api_timeout": api_timeout,
        "registry_timeout": registry_timeout,
        "compose_timeout": compose_timeout,
        "compose_command": compose_command,
    }
    options = {key: _resolve_option(value, config_values, key) for key, value in cli_values.items()}
    options["registry_workers"] = config_values.get("registry_workers")

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    try:
        request = UpgradeRequest.from_options(options)
        upgrader = RancherUpgrader(request=request)
    except UpgraderError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(upgrader.run())


if __name__ == "__main__":
    main()
