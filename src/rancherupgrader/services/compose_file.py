"""docker-compose.yml tag rewriting for rancher-upgrader."""

import copy
import os
import stat
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

import yaml

from rancherupgrader.errors import DefinitionError
from rancherupgrader.models import ImageReference


@dataclass
class RewriteResult:
    document: Dict[str, Any]
    images: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class TagRewriter:
    """Points selected services of a compose document at a new image tag.

    The rewrite happens on a copy of the loaded document; nothing touches
    disk until :meth:`write` is called, so callers can verify the new images
    first and drop the result if verification fails.
    """

    DEFAULT_FILE_MODE = 0o644

    def __init__(self, logger):
        self.logger = logger

    def load(self, path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            raise DefinitionError(f"Service definition file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as file_obj:
                document = yaml.safe_load(file_obj)
        except (yaml.YAMLError, OSError) as exc:
            raise DefinitionError(f"Invalid service definition file '{path}': {exc}") from exc

        if not isinstance(document, dict):
            raise DefinitionError(f"Service definition file '{path}' must contain a mapping.")
        return document

    def services_section(self, document: Dict[str, Any]) -> Dict[str, Any]:
        # Compose v2+ nests services under a key; v1 keeps them at the root
        if "version" in document and isinstance(document.get("services"), dict):
            return document["services"]
        return document

    def rewrite(
        self,
        document: Dict[str, Any],
        service_names: Iterable[str],
        new_tag: str,
    ) -> RewriteResult:
        result = RewriteResult(document=copy.deepcopy(document))
        services = self.services_section(result.document)

        for name in service_names:
            definition = services.get(name)
            if not isinstance(definition, dict):
                self.logger.warning("Skipping '%s', it is not in the service definition file.", name)
                result.skipped.append(name)
                continue

            image = definition.get("image")
            if not image:
                self.logger.debug("Skipping '%s', it doesn't use an image.", name)
                result.skipped.append(name)
                continue

            reference = ImageReference.parse(str(image))
            if reference.tag is None:
                self.logger.info("Skipping '%s', image '%s' has no tag to replace.", name, image)
                result.skipped.append(name)
                continue

            # YAML aliases load as one shared dict; detach before mutating
            definition = dict(definition)
            services[name] = definition

            new_image = str(reference.with_tag(new_tag))
            definition["image"] = new_image
            result.images.append(new_image)
            self.logger.debug("Rewrote '%s': %s -> %s", name, image, new_image)

        return result

    def write(self, path: str, document: Dict[str, Any]):
        directory = os.path.dirname(os.path.abspath(path))
        try:
            mode = stat.S_IMODE(os.stat(path).st_mode)
        except FileNotFoundError:
            mode = self.DEFAULT_FILE_MODE

        fd, temp_path = tempfile.mkstemp(prefix=".docker-compose-", suffix=".yml", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                yaml.safe_dump(document, file_obj, default_flow_style=False, sort_keys=False)
            os.chmod(temp_path, mode)
            os.replace(temp_path, path)
        except (OSError, yaml.YAMLError) as exc:
            raise DefinitionError(f"Could not write service definition file '{path}': {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass
        self.logger.info("Wrote %s", path)
