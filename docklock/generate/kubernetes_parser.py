"""
Kubernetes manifest image parser.

Any mapping with both a "name" and an "image" string is treated as a
container, wherever it sits in the document (pods, deployments, jobs,
CRDs). Multi-document files are supported.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import aiofiles
import yaml
from yaml.nodes import Node, ScalarNode

from docklock.errors import KubernetesfileParseError
from docklock.generate.image import KubernetesfileImage, parse_image_line
from docklock.utils.paths import normalize_path
from docklock.utils.yaml_nodes import child_nodes, compose_documents, mapping_get, string_value

logger = logging.getLogger(__name__)


@dataclass
class ContainerNode:
    """A container found in a manifest, with the node holding its image line."""
    container_name: str
    image_node: ScalarNode
    document_position: int
    image_position: int


def find_containers(content: str, path: str) -> List[ContainerNode]:
    """
    Walk every document depth first and collect containers in source order.

    Raises:
        KubernetesfileParseError: If the file is not valid YAML
    """
    try:
        documents = compose_documents(content)
    except yaml.YAMLError as e:
        raise KubernetesfileParseError(f"'{path}' failed to parse with err: {e}")

    containers = []
    for document_position, document in enumerate(documents):
        found = []
        _walk(document, document_position, found)
        containers.extend(found)
    return containers


def _walk(node: Optional[Node], document_position: int, found: List[ContainerNode]) -> None:
    name = string_value(mapping_get(node, 'name'))
    image_node = mapping_get(node, 'image')
    image_line = string_value(image_node)

    if name and image_line:
        found.append(ContainerNode(
            container_name=name,
            image_node=image_node,
            document_position=document_position,
            image_position=len(found),
        ))

    for child in child_nodes(node):
        _walk(child, document_position, found)


class KubernetesfileParser:
    """Parser for Kubernetes manifests"""

    async def parse_file(self, path: str) -> List[KubernetesfileImage]:
        """
        Parse the container images of a manifest.

        Raises:
            KubernetesfileParseError: If the file cannot be read or parsed
        """
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise KubernetesfileParseError(f"failed to read '{path}': {e}")

        lockfile_path = normalize_path(path)
        containers = find_containers(content, lockfile_path)
        logger.debug(f"Parsed {len(containers)} images from {lockfile_path}")

        return [
            KubernetesfileImage(
                image=parse_image_line(container.image_node.value),
                path=lockfile_path,
                container_name=container.container_name,
                document_position=container.document_position,
                image_position=container.image_position,
            )
            for container in containers
        ]
