"""Service subset validation."""

from typing import Iterable, List, Sequence

from rancherupgrader.errors import ServiceNotFoundError
from rancherupgrader.errors_catalog import actionable_error
from rancherupgrader.models import Entity


class ServiceSelector:
    def __init__(self, logger):
        self.logger = logger

    def select(
        self,
        requested: Iterable[str],
        available: Sequence[Entity],
        stack_name: str = "",
    ) -> List[Entity]:
        requested_names = list(dict.fromkeys(requested))
        available_names = [service.name for service in available]

        if not requested_names:
            self.logger.debug("No services requested, selecting all: %s", available_names)
            return list(available)

        missing = [name for name in requested_names if name not in available_names]
        if missing:
            message = actionable_error(
                "services_not_found",
                stack=stack_name,
                services=", ".join(missing),
            )
            raise ServiceNotFoundError(missing, message)

        self.logger.debug("Available services: %s", available_names)
        self.logger.debug("Requested services: %s", requested_names)
        return [service for service in available if service.name in requested_names]
