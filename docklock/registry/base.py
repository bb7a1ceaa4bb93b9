"""
Registry client interface.
"""

from abc import ABC, abstractmethod


class RegistryClient(ABC):
    """
    Resolves an image name and tag to a manifest digest.

    `prefix` selects which image names the client serves (e.g. "ghcr.io/").
    The empty prefix marks the catch-all client.
    """

    prefix: str = ""

    @abstractmethod
    async def digest(self, name: str, tag: str) -> str:
        """
        Return the digest for name:tag, hex only (no "sha256:" prefix).

        Raises:
            RegistryError: If the registry cannot provide a digest
        """

    async def close(self):
        """Release network resources held by the client"""
