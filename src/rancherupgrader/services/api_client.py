"""Rancher API access for rancher-upgrader."""

import os
from typing import Any, Callable, Optional

import requests

from rancherupgrader.errors import MalformedResponseError, TransportError, UnexpectedStatusError


class ApiClient:
    """Authenticated reads against the Rancher v1 API."""

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        logger,
        requests_module=requests,
        timeout: float = 30.0,
    ):
        self.auth = (access_key, secret_key)
        self.logger = logger
        self.requests = requests_module
        self.timeout = timeout

    def get(self, url: str) -> Any:
        self.logger.debug("GET %s", url)
        try:
            response = self.requests.get(
                url,
                auth=self.auth,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except self.requests.RequestException as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        if response.status_code != 200:
            raise UnexpectedStatusError(url, response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Bad response from {url}, body is not JSON.") from exc

    def download(
        self,
        url: str,
        dest_path: str,
        on_chunk: Optional[Callable[[int], None]] = None,
    ) -> int:
        """Streams ``url`` into ``dest_path`` and returns the number of bytes written."""
        self.logger.debug("Streaming %s to %s", url, dest_path)
        written = 0

        try:
            with self.requests.get(url, auth=self.auth, stream=True, timeout=self.timeout) as response:
                if response.status_code != 200:
                    raise UnexpectedStatusError(url, response.status_code)

                os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)
                with open(dest_path, "wb") as file_obj:
                    for chunk in response.iter_content(chunk_size=8192):
                        if not chunk:
                            continue
                        file_obj.write(chunk)
                        written += len(chunk)
                        if on_chunk:
                            on_chunk(len(chunk))
        except self.requests.RequestException as exc:
            raise TransportError(f"Download of {url} failed: {exc}") from exc

        return written
