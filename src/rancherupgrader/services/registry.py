"""Image registry verification for rancher-upgrader."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional

import requests

from rancherupgrader.errors import (
    AuthError,
    MalformedResponseError,
    TransportError,
    UnexpectedStatusError,
    UpgraderError,
)
from rancherupgrader.errors_catalog import actionable_error
from rancherupgrader.models import ImageReference


class RegistryVerifier:
    """Checks that image tags exist on a Docker Hub compatible registry."""

    AUTH_SCHEME = "JWT"
    NOT_FOUND_DETAIL = "Not found"

    def __init__(
        self,
        logger,
        requests_module=requests,
        base_url: str = "https://hub.docker.com",
        timeout: float = 30.0,
        max_workers: int = 8,
    ):
        self.logger = logger
        self.requests = requests_module
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        self._token: Optional[str] = None

    def authenticate(self, username: str, password: str) -> str:
        if self._token:
            return self._token

        if not username or not password:
            raise AuthError(
                actionable_error("registry_login_failed", reason="username and password are required")
            )

        url = f"{self.base_url}/v2/users/login/"
        self.logger.debug("Logging in to %s as %s", url, username)
        try:
            response = self.requests.post(
                url,
                data={"username": username, "password": password},
                timeout=self.timeout,
            )
        except self.requests.RequestException as exc:
            raise TransportError(f"Registry login request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            raise AuthError(
                actionable_error(
                    "registry_login_failed",
                    reason=f"token not found in response (status {response.status_code})",
                )
            )

        self._token = token
        self.logger.debug("Registry token: %s...", token[:32])
        return token

    def is_missing(self, image: str, token: str) -> bool:
        reference = ImageReference.parse(image)
        tag = reference.effective_tag
        url = f"{self.base_url}/v2/repositories/{reference.hub_repository}/tags/{tag}"
        self.logger.debug("Checking %s:%s ...", reference.name, tag)

        try:
            response = self.requests.get(
                url,
                headers={"Authorization": f"{self.AUTH_SCHEME} {token}"},
                timeout=self.timeout,
            )
        except self.requests.RequestException as exc:
            raise TransportError(f"Tag lookup for {image} failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthError(
                actionable_error(
                    "registry_login_failed",
                    reason=f"token rejected while checking {image}",
                )
            )
        if response.status_code not in (200, 404):
            raise UnexpectedStatusError(url, response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Bad registry response for {image}, body is not JSON.") from exc
        if not isinstance(body, dict):
            raise MalformedResponseError(f"Bad registry response for {image}.")

        self.logger.debug("Registry response for %s: %s", image, body)
        return body.get("detail") == self.NOT_FOUND_DETAIL or body.get("name") != tag

    def check_missing(self, images: Iterable[str], token: Optional[str]) -> List[str]:
        """Returns the images whose tag is absent, in input order.

        Every image is checked before returning so that all missing tags are
        reported together. If a lookup itself failed, the first failure is
        raised once all lookups have finished.
        """
        if not token:
            raise AuthError(
                actionable_error("registry_login_failed", reason="no registry token available")
            )

        image_list = list(images)
        if not image_list:
            return []

        outcomes: Dict[str, bool] = {}
        errors: List[UpgraderError] = []
        workers = min(self.max_workers, len(image_list))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_map = {
                executor.submit(self.is_missing, image, token): image for image in image_list
            }
            for future in as_completed(future_map):
                image = future_map[future]
                try:
                    outcomes[image] = future.result()
                except UpgraderError as exc:
                    self.logger.debug("Check for %s failed: %s", image, exc)
                    errors.append(exc)

        if errors:
            raise errors[0]

        return [image for image in image_list if outcomes[image]]
