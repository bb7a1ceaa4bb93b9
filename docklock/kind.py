"""
Kinds of files docklock knows how to pin.

The enum values double as the top-level keys of the lockfile.
"""

from enum import Enum


class Kind(str, Enum):
    """Type of file an image reference was found in."""
    DOCKERFILE = "dockerfiles"
    COMPOSEFILE = "composefiles"
    KUBERNETESFILE = "kubernetesfiles"


# Basenames looked up when no paths, globs or recursion are requested
DEFAULT_PATHS = {
    Kind.DOCKERFILE: ["Dockerfile"],
    Kind.COMPOSEFILE: [
        "docker-compose.yml",
        "docker-compose.yaml",
        "compose.yml",
        "compose.yaml",
    ],
    Kind.KUBERNETESFILE: [
        "pod.yml",
        "pod.yaml",
        "deployment.yml",
        "deployment.yaml",
        "job.yml",
        "job.yaml",
    ],
}
