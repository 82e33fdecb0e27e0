"""Domain errors for rancher-upgrader."""

from typing import Iterable, Optional


class UpgraderError(RuntimeError):
    """Raised when the upgrade cannot continue safely."""


class ConfigError(UpgraderError):
    """A required option is missing or the config file is invalid."""


class TransportError(UpgraderError):
    """A remote call failed before a response was received."""


class UnexpectedStatusError(UpgraderError):
    def __init__(self, url: str, status_code: int):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Bad status code {status_code} from {url}")


class MalformedResponseError(UpgraderError):
    """The remote API answered with an unexpected payload shape."""


class NotFoundError(UpgraderError):
    """No remote entity matched the requested name."""


class ServiceNotFoundError(NotFoundError):
    def __init__(self, missing: Iterable[str], message: Optional[str] = None):
        self.missing = list(missing)
        super().__init__(message or f"Services not found: {', '.join(self.missing)}")


class ArchiveError(UpgraderError):
    """The compose bundle could not be streamed or extracted."""


class DefinitionError(UpgraderError):
    """The local service definition file cannot be read or written."""


class AuthError(UpgraderError):
    """Registry login failed or credentials are missing."""


class MissingImagesError(UpgraderError):
    def __init__(self, images: Iterable[str], message: Optional[str] = None):
        self.images = list(images)
        super().__init__(message or f"Missing images: {', '.join(self.images)}")


class SubprocessError(UpgraderError):
    def __init__(self, message: str, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(message)
