"""
Registry Credentials Utility

Credential lookup for Docker registries from the environment and from the
"auths" section of Docker's config.json. Credential helpers
(docker-credential-*) are not invoked.
"""

import base64
import binascii
import json
import logging
import os
from typing import Dict, Optional

from docklock.errors import ConfigurationError

logger = logging.getLogger(__name__)

DOCKER_HUB_REGISTRY = "docker.io"

# Keys Docker uses for Docker Hub in config.json
DOCKER_HUB_ALIASES = (
    "docker.io",
    "index.docker.io",
    "registry-1.docker.io",
    "registry.hub.docker.com",
)


def registry_host(image_name: str) -> str:
    """
    Extract the registry host from an image name.

    Examples:
        nginx → docker.io
        ghcr.io/user/app → ghcr.io
        registry.example.com:5000/app → registry.example.com:5000
        localhost/app → localhost
    """
    if "/" in image_name:
        first = image_name.split("/", 1)[0]
        # If first part has dot or colon, it's likely a registry
        if "." in first or ":" in first or first == "localhost":
            return first.lower()
    return DOCKER_HUB_REGISTRY


def normalize_registry_key(key: str) -> str:
    """
    Normalize a config.json "auths" key to a bare host.

    "https://index.docker.io/v1/" → docker.io
    "https://ghcr.io" → ghcr.io
    """
    host = key.strip().lower()
    for scheme in ("https://", "http://"):
        if host.startswith(scheme):
            host = host[len(scheme):]
    host = host.split("/", 1)[0]
    if host in DOCKER_HUB_ALIASES:
        return DOCKER_HUB_REGISTRY
    return host


def _decode_auth_entry(key: str, entry: Dict) -> Optional[Dict[str, str]]:
    if entry.get("username") and entry.get("password"):
        return {"username": entry["username"], "password": entry["password"]}

    encoded = entry.get("auth")
    if not encoded:
        return None

    try:
        decoded = base64.b64decode(encoded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ConfigurationError(f"invalid auth for '{key}' in Docker config: {e}")

    if ":" not in decoded:
        raise ConfigurationError(f"invalid auth for '{key}' in Docker config: expected username:password")

    username, password = decoded.split(":", 1)
    return {"username": username, "password": password}


def load_docker_config_auths(path: str) -> Dict[str, Dict[str, str]]:
    """
    Read credentials from a Docker config.json.

    Args:
        path: Path to config.json; a missing file means no credentials

    Returns:
        Dict of registry host → {username, password}

    Raises:
        ConfigurationError: If the file exists but cannot be parsed
    """
    if not os.path.isfile(path):
        logger.debug(f"No Docker config at {path}")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"failed to read Docker config '{path}': {e}")

    auths = config.get("auths") or {}
    if not isinstance(auths, dict):
        raise ConfigurationError(f"'auths' in Docker config '{path}' must be an object")

    credentials = {}
    for key, entry in auths.items():
        if not isinstance(entry, dict):
            continue
        auth = _decode_auth_entry(key, entry)
        if auth:
            credentials[normalize_registry_key(key)] = auth

    logger.debug(f"Loaded credentials for {len(credentials)} registries from {path}")
    return credentials


def get_registry_credentials(
    image_name: str,
    config_auths: Dict[str, Dict[str, str]],
    docker_username: str = "",
    docker_password: str = "",
) -> Optional[Dict[str, str]]:
    """
    Get credentials for the registry that serves image_name.

    DOCKER_USERNAME / DOCKER_PASSWORD take precedence for Docker Hub.

    Returns:
        Dict with {username, password} if credentials found, None otherwise
    """
    host = registry_host(image_name)
    if host == DOCKER_HUB_REGISTRY and docker_username and docker_password:
        return {"username": docker_username, "password": docker_password}
    return config_auths.get(host)
