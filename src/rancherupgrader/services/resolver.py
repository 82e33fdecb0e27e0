"""Name resolution over Rancher collection responses."""

from typing import Any, List, Optional, Union

from rancherupgrader.errors import MalformedResponseError, NotFoundError
from rancherupgrader.models import Entity


class EntityResolver:
    """Picks entities out of ``{"data": [...]}`` collection bodies."""

    def __init__(self, logger):
        self.logger = logger

    def resolve(
        self,
        body: Any,
        name: Optional[str] = None,
        kind: str = "entity",
    ) -> Union[Entity, List[Entity]]:
        items = body.get("data") if isinstance(body, dict) else None
        if not isinstance(items, list):
            raise MalformedResponseError("Bad response, missing data array.")

        entities: List[Entity] = []
        for item in items:
            if not isinstance(item, dict):
                raise MalformedResponseError(f"Bad response, {kind} entry is not an object.")
            entities.append(Entity.from_payload(item))

        if name is None:
            if not entities:
                raise NotFoundError(f"Couldn't find any {kind}.")
            return entities

        matches = [entity for entity in entities if entity.name == name]
        if not matches:
            raise NotFoundError(f"Couldn't find matching {kind} '{name}'.")
        if len(matches) > 1:
            self.logger.warning(
                "Found %s %s entries named '%s'; using the first one.",
                len(matches),
                kind,
                name,
            )
        return matches[0]
