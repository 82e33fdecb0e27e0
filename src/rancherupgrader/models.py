"""Shared domain models for rancher-upgrader."""

import enum
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Tuple

from rancherupgrader.errors import ConfigError, MalformedResponseError, UpgraderError
from rancherupgrader.errors_catalog import actionable_error


def parse_service_names(values: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Flattens ``["a,b", "c"]`` style input into unique, ordered names."""
    if values is None:
        return ()
    if isinstance(values, str):
        values = [values]

    names: List[str] = []
    for value in values:
        for name in str(value).split(","):
            clean_name = name.strip()
            if clean_name and clean_name not in names:
                names.append(clean_name)
    return tuple(names)


@dataclass(frozen=True)
class UpgradeRequest:
    """Merged configuration for one upgrade run."""

    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = (
        "environment",
        "stack",
        "url",
        "access_key",
        "secret_key",
    )
    DEFAULT_REGISTRY_URL: ClassVar[str] = "https://hub.docker.com"

    environment: str
    stack: str
    url: str
    access_key: str
    secret_key: str
    services: Tuple[str, ...] = ()
    tag: Optional[str] = None
    docker_user: Optional[str] = None
    docker_pass: Optional[str] = None
    dry_run: bool = False
    working_dir: str = "."
    registry_url: str = DEFAULT_REGISTRY_URL
    api_timeout: float = 30.0
    registry_timeout: float = 30.0
    compose_timeout: Optional[float] = 3600.0
    compose_command: str = "rancher-compose"
    registry_workers: int = 8

    @classmethod
    def from_options(cls, values: Mapping[str, Any]) -> "UpgradeRequest":
        missing = [name for name in cls.REQUIRED_FIELDS if not values.get(name)]
        if missing:
            options = ", ".join(f"--{name.replace('_', '-')}" for name in missing)
            raise ConfigError(actionable_error("missing_options", options=options))

        kwargs: Dict[str, Any] = {name: values[name] for name in cls.REQUIRED_FIELDS}
        kwargs["services"] = parse_service_names(values.get("services"))
        kwargs["dry_run"] = bool(values.get("dry_run", False))

        for name in ("tag", "docker_user", "docker_pass"):
            if values.get(name):
                kwargs[name] = str(values[name])
        for name in ("working_dir", "registry_url", "compose_command"):
            if values.get(name):
                kwargs[name] = str(values[name])

        try:
            for name in ("api_timeout", "registry_timeout", "compose_timeout"):
                if values.get(name) is not None:
                    kwargs[name] = float(values[name])
            if values.get("registry_workers") is not None:
                kwargs["registry_workers"] = max(1, int(values["registry_workers"]))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric option: {exc}") from exc

        return cls(**kwargs)

    @property
    def has_registry_credentials(self) -> bool:
        return bool(self.docker_user and self.docker_pass)

    @property
    def has_partial_registry_credentials(self) -> bool:
        return bool(self.docker_user) != bool(self.docker_pass)


@dataclass(frozen=True)
class Entity:
    """A named resource from the Rancher API (environment, stack or service)."""

    name: Optional[str]
    links: Dict[str, str] = field(default_factory=dict, compare=False)
    data: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Entity":
        links = payload.get("links") or {}
        if not isinstance(links, dict):
            raise MalformedResponseError(
                f"Bad response, 'links' of '{payload.get('name')}' is not a mapping."
            )
        return cls(name=payload.get("name"), links=dict(links), data=dict(payload))

    def link(self, key: str) -> str:
        url = self.links.get(key)
        if not url:
            raise MalformedResponseError(f"Bad response, '{self.name}' has no '{key}' link.")
        return url


@dataclass(frozen=True)
class ImageReference:
    """Parsed ``name[:tag]`` image reference.

    A colon followed by a path segment is a registry port, not a tag, so
    ``localhost:5000/app`` has no tag while ``localhost:5000/app:v1`` does.
    """

    name: str
    tag: Optional[str] = None

    DEFAULT_TAG: ClassVar[str] = "latest"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        if not reference:
            raise ValueError("Empty image reference")

        # Digests are not tags; keep them as part of the name
        if "@" in reference:
            return cls(name=reference)

        last_colon = reference.rfind(":")
        if last_colon == -1:
            return cls(name=reference)

        candidate = reference[last_colon + 1 :]
        if "/" in candidate or not candidate:
            return cls(name=reference)
        return cls(name=reference[:last_colon], tag=candidate)

    @property
    def effective_tag(self) -> str:
        return self.tag or self.DEFAULT_TAG

    @property
    def hub_repository(self) -> str:
        """Repository path as used by the Docker Hub tag endpoint."""
        if "/" not in self.name:
            return f"library/{self.name}"
        return self.name

    def with_tag(self, tag: str) -> "ImageReference":
        return ImageReference(name=self.name, tag=tag)

    def __str__(self) -> str:
        if self.tag:
            return f"{self.name}:{self.tag}"
        return self.name


class Stage(enum.Enum):
    FETCH_ENVIRONMENT = "fetch_environment"
    FETCH_STACK = "fetch_stack"
    FETCH_BUNDLE = "fetch_bundle"
    FETCH_SERVICES = "fetch_services"
    SELECT_SERVICES = "select_services"
    REWRITE_TAG = "rewrite_tag"
    DRY_RUN_GATE = "dry_run_gate"
    PULL_IMAGES = "pull_images"
    FORCE_UPGRADE = "force_upgrade"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineContext:
    """State handed from one pipeline stage to the next."""

    request: UpgradeRequest
    environment: Optional[Entity] = None
    stack: Optional[Entity] = None
    bundle_files: Tuple[str, ...] = ()
    available_services: Tuple[Entity, ...] = ()
    services: Tuple[Entity, ...] = ()
    rewritten_images: Tuple[str, ...] = ()
    skipped_services: Tuple[str, ...] = ()
    completed_stages: Tuple[Stage, ...] = ()

    @property
    def service_names(self) -> List[str]:
        return [service.name for service in self.services if service.name]


@dataclass(frozen=True)
class UpgradeResult:
    state: Stage
    context: PipelineContext
    failed_stage: Optional[Stage] = None
    error: Optional[UpgraderError] = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state is Stage.DONE

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1
