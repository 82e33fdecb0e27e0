"""Configuration loader for rancher-upgrader."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from rancherupgrader.errors import ConfigError


class ConfigLoader:
    """Loads YAML or JSON configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "environment",
        "stack",
        "url",
        "access_key",
        "secret_key",
        "services",
        "tag",
        "docker_user",
        "docker_pass",
        "dry_run",
        "verbose",
        "log_file",
        "working_dir",
        "registry_url",
        "api_timeout",
        "registry_timeout",
        "compose_timeout",
        "compose_command",
        "registry_workers",
    }
    YAML_SUFFIXES = {".yml", ".yaml"}

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        suffix = path.suffix.lower()
        if suffix not in self.YAML_SUFFIXES and suffix != ".json":
            raise ConfigError(
                f"Invalid configuration type: {config_path}. "
                "Please ensure your configuration is .yml or .json."
            )

        try:
            text = path.read_text(encoding="utf-8")
            if suffix == ".json":
                parsed = json.loads(text) if text.strip() else None
            else:
                parsed = yaml.safe_load(text)
        except (yaml.YAMLError, ValueError, OSError) as exc:
            raise ConfigError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigError("Config file must contain a mapping at the root.")

        # Accept the dashed spelling used by the command-line flags
        parsed = {str(key).replace("-", "_"): value for key, value in parsed.items()}

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ConfigError(f"Unknown configuration keys: {unknown_list}")

        return parsed
