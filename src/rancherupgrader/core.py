import logging
import os
import subprocess
from dataclasses import replace
from typing import Callable, List, Tuple

import requests
from rich.console import Console

from .errors import AuthError, MissingImagesError, UpgraderError
from .errors_catalog import actionable_error
from .models import PipelineContext, Stage, UpgradeRequest, UpgradeResult
from .services.api_client import ApiClient
from .services.archive import ArchiveService
from .services.bundle import ComposeBundleFetcher
from .services.command_runner import CommandRunner
from .services.compose_file import TagRewriter
from .services.rancher_compose import RancherComposeService
from .services.registry import RegistryVerifier
from .services.resolver import EntityResolver
from .services.selector import ServiceSelector

console = Console()
logger = logging.getLogger("rancherupgrader")

StageCallback = Callable[[PipelineContext], PipelineContext]


class RancherUpgrader:
    """Runs one forward upgrade of a Rancher stack.

    Stages run strictly in order and the first failure ends the run. The
    outcome is returned as an :class:`UpgradeResult`; deciding the process
    exit status is left to the caller.
    """

    PROJECTS_PATH = "/v1/projects"
    COMPOSE_FILE = "docker-compose.yml"

    def __init__(self, request: UpgradeRequest):
        self.request = request
        self.working_dir = os.path.abspath(request.working_dir)
        self.compose_file = os.path.join(self.working_dir, self.COMPOSE_FILE)

        self.api_client = ApiClient(
            access_key=request.access_key,
            secret_key=request.secret_key,
            logger=logger,
            requests_module=requests,
            timeout=request.api_timeout,
        )
        self.resolver = EntityResolver(logger=logger)
        self.archive_service = ArchiveService()
        self.bundle_fetcher = ComposeBundleFetcher(
            api_client=self.api_client,
            archive_service=self.archive_service,
            logger=logger,
            console=console,
        )
        self.selector = ServiceSelector(logger=logger)
        self.tag_rewriter = TagRewriter(logger=logger)
        self.registry = RegistryVerifier(
            logger=logger,
            requests_module=requests,
            base_url=request.registry_url,
            timeout=request.registry_timeout,
            max_workers=request.registry_workers,
        )
        self.command_runner = CommandRunner(
            logger=logger,
            default_timeout=request.compose_timeout,
            subprocess_module=subprocess,
        )
        self.rancher_compose = RancherComposeService(
            command_runner=self.command_runner,
            logger=logger,
            console=console,
        )

    def _pipeline(self) -> List[Tuple[Stage, StageCallback]]:
        return [
            (Stage.FETCH_ENVIRONMENT, self.fetch_environment),
            (Stage.FETCH_STACK, self.fetch_stack),
            (Stage.FETCH_BUNDLE, self.fetch_bundle),
            (Stage.FETCH_SERVICES, self.fetch_services),
            (Stage.SELECT_SERVICES, self.select_services),
            (Stage.REWRITE_TAG, self.rewrite_tag),
            (Stage.DRY_RUN_GATE, self.dry_run_gate),
            (Stage.PULL_IMAGES, self.pull_images),
            (Stage.FORCE_UPGRADE, self.force_upgrade),
        ]

    def fetch_environment(self, context: PipelineContext) -> PipelineContext:
        url = self.request.url.rstrip("/") + self.PROJECTS_PATH
        body = self.api_client.get(url)
        environment = self.resolver.resolve(body, self.request.environment, kind="environment")
        logger.info("Using environment '%s'", environment.name)
        return replace(context, environment=environment)

    def fetch_stack(self, context: PipelineContext) -> PipelineContext:
        body = self.api_client.get(context.environment.link("environments"))
        stack = self.resolver.resolve(body, self.request.stack, kind="stack")
        logger.info("Using stack '%s'", stack.name)
        return replace(context, stack=stack)

    def fetch_bundle(self, context: PipelineContext) -> PipelineContext:
        files = self.bundle_fetcher.fetch(context.stack.link("composeConfig"), self.working_dir)
        return replace(context, bundle_files=tuple(files))

    def fetch_services(self, context: PipelineContext) -> PipelineContext:
        body = self.api_client.get(context.stack.link("services"))
        services = self.resolver.resolve(body, kind="services")
        return replace(context, available_services=tuple(services))

    def select_services(self, context: PipelineContext) -> PipelineContext:
        selected = self.selector.select(
            self.request.services,
            context.available_services,
            stack_name=self.request.stack,
        )
        return replace(context, services=tuple(selected))

    def rewrite_tag(self, context: PipelineContext) -> PipelineContext:
        if not self.request.tag:
            logger.debug("No tag requested, leaving %s untouched.", self.COMPOSE_FILE)
            return context

        console.print(f"[blue]Updating image tags to '{self.request.tag}'...[/blue]")
        document = self.tag_rewriter.load(self.compose_file)
        result = self.tag_rewriter.rewrite(document, context.service_names, self.request.tag)

        if self.request.has_partial_registry_credentials:
            raise AuthError(
                actionable_error(
                    "registry_login_failed",
                    reason="both a registry user and password are required",
                )
            )

        if self.request.has_registry_credentials:
            token = self.registry.authenticate(self.request.docker_user, self.request.docker_pass)
            missing = self.registry.check_missing(result.images, token)
            if missing:
                raise MissingImagesError(
                    missing,
                    actionable_error("missing_images", images=", ".join(missing)),
                )
            console.print("[green]All new image tags exist in the registry.[/green]")
        else:
            logger.info("No registry credentials given, skipping image verification.")

        self.tag_rewriter.write(self.compose_file, result.document)
        return replace(
            context,
            rewritten_images=tuple(result.images),
            skipped_services=tuple(result.skipped),
        )

    def dry_run_gate(self, context: PipelineContext) -> PipelineContext:
        if self.request.dry_run:
            console.print("[yellow]Dry run requested, stopping before rancher-compose.[/yellow]")
        return context

    def pull_images(self, context: PipelineContext) -> PipelineContext:
        self.rancher_compose.pull(self.request, context.service_names)
        return context

    def force_upgrade(self, context: PipelineContext) -> PipelineContext:
        self.rancher_compose.force_upgrade(self.request, context.service_names)
        return context

    def execute(self) -> UpgradeResult:
        context = PipelineContext(request=self.request)
        stage = Stage.FETCH_ENVIRONMENT

        try:
            for stage, callback in self._pipeline():
                logger.debug("Stage: %s", stage.value)
                context = callback(context)
                context = replace(context, completed_stages=context.completed_stages + (stage,))
                if stage is Stage.DRY_RUN_GATE and self.request.dry_run:
                    return UpgradeResult(state=Stage.DONE, context=context, dry_run=True)
        except UpgraderError as exc:
            logger.debug("Stage %s failed: %s", stage.value, exc)
            return UpgradeResult(
                state=Stage.FAILED,
                context=context,
                failed_stage=stage,
                error=exc,
                dry_run=self.request.dry_run,
            )

        return UpgradeResult(state=Stage.DONE, context=context)

    def run(self) -> int:
        try:
            logger.info("Upgrading stack '%s' in '%s'...", self.request.stack, self.request.environment)
            result = self.execute()
        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            return 1

        if result.succeeded:
            if result.dry_run:
                console.print("[green]Dry run complete.[/green]")
            else:
                console.print("[green]All done.[/green]")
        else:
            console.print(f"[bold red]Error:[/bold red] {result.error}")

        return result.exit_code
