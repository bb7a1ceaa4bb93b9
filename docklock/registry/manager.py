"""
Registry client selection.

Clients are created explicitly and handed to the manager; the manager picks
the client whose prefix is the longest match for an image name.
"""

import logging
from typing import List, Optional

from docklock.config.settings import Settings
from docklock.registry.base import RegistryClient
from docklock.registry.credentials import (
    DOCKER_HUB_REGISTRY,
    get_registry_credentials,
    load_docker_config_auths,
)
from docklock.registry.registry_adapter import RegistryV2Client

logger = logging.getLogger(__name__)


class RegistryManager:
    """Routes digest queries to registry clients by image name prefix"""

    def __init__(self, default_client: RegistryClient, clients: Optional[List[RegistryClient]] = None):
        self.default_client = default_client
        # Longest prefix first so the most specific client wins
        self.clients = sorted(
            [client for client in (clients or []) if client.prefix],
            key=lambda client: len(client.prefix),
            reverse=True,
        )

    def client_for(self, name: str) -> RegistryClient:
        for client in self.clients:
            if name.startswith(client.prefix):
                return client
        return self.default_client

    async def digest(self, name: str, tag: str) -> str:
        return await self.client_for(name).digest(name, tag)

    async def close(self):
        for client in [self.default_client, *self.clients]:
            await client.close()


def build_registry_manager(settings: Settings) -> RegistryManager:
    """
    Build the standard manager: one catch-all V2 client plus one client per
    private registry that has credentials in Docker's config.json.

    Raises:
        ConfigurationError: If Docker's config.json is malformed
    """
    config_auths = load_docker_config_auths(settings.docker_config_file)

    def lookup(name: str):
        return get_registry_credentials(
            name, config_auths, settings.docker_username, settings.docker_password
        )

    default_client = RegistryV2Client(credentials=lookup, timeout=settings.registry_timeout)

    clients = []
    for host, auth in config_auths.items():
        if host == DOCKER_HUB_REGISTRY:
            continue
        clients.append(RegistryV2Client(
            prefix=f"{host}/",
            credentials=lambda name, auth=auth: auth,
            timeout=settings.registry_timeout,
        ))
        logger.debug(f"Registered registry client for {host}")

    return RegistryManager(default_client, clients)
