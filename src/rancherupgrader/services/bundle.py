"""Compose bundle retrieval for rancher-upgrader."""

import os
import tempfile
from typing import List

from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from rancherupgrader.errors import ArchiveError, TransportError, UnexpectedStatusError


class ComposeBundleFetcher:
    """Downloads a stack's compose config archive and unpacks it locally."""

    def __init__(self, api_client, archive_service, logger, console):
        self.api_client = api_client
        self.archive_service = archive_service
        self.logger = logger
        self.console = console

    def fetch(self, bundle_url: str, destination_dir: str) -> List[str]:
        self.logger.info("Fetching compose bundle from %s", bundle_url)
        os.makedirs(destination_dir, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(prefix="compose-bundle-", suffix=".zip")
        os.close(fd)
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                TimeElapsedColumn(),
                console=self.console,
                transient=True,
            ) as progress:
                task = progress.add_task("[cyan]Downloading compose bundle...", total=None)
                try:
                    size = self.api_client.download(
                        bundle_url,
                        temp_path,
                        on_chunk=lambda count: progress.update(task, advance=count),
                    )
                except (TransportError, UnexpectedStatusError) as exc:
                    raise ArchiveError(f"Compose bundle stream failed: {exc}") from exc

            self.logger.debug("Compose bundle size: %s bytes", size)
            extracted = self.archive_service.safe_extract_zip(temp_path, destination_dir)
        finally:
            try:
                os.remove(temp_path)
            except OSError:
                pass

        for path in extracted:
            self.logger.debug("Extracted %s", path)
        return extracted
