"""Actionable error catalog for rancher-upgrader."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "missing_options": {
        "what": "Missing required option(s): {options}.",
        "next": "Pass them on the command line or add them to the config file.",
    },
    "services_not_found": {
        "what": "Services not found in stack '{stack}': {services}.",
        "next": "Check the service names or omit them to upgrade every service.",
    },
    "missing_images": {
        "what": "Missing images: {images}.",
        "next": "Push the tag to the registry first; docker-compose.yml was left unchanged.",
    },
    "registry_login_failed": {
        "what": "Registry login failed: {reason}.",
        "next": "Check `--docker-user` and `--docker-pass`, or omit both to skip verification.",
    },
    "compose_not_found": {
        "what": "Required command not found: {command}.",
        "next": "Install rancher-compose or point `--compose-command` at it.",
    },
    "compose_failed": {
        "what": "{command} exited with: {returncode}.",
        "next": "Review the rancher-compose output above and the Rancher UI before retrying.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
