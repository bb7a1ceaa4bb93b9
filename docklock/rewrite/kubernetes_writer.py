"""
Render a Kubernetes manifest with lockfile digests.

Only the image scalars change; comments, key order and formatting of the
manifest are kept.
"""

from typing import List

from docklock.errors import RewriteError, ImageCountMismatchError
from docklock.generate.kubernetes_parser import find_containers
from docklock.generate.lockfile import KubernetesfileEntry
from docklock.rewrite.dockerfile_writer import render_image_line
from docklock.utils.yaml_nodes import add_replacement, replace_spans, scalar_replacement, span_list


def rewrite_kubernetesfile(
    content: str,
    path: str,
    entries: List[KubernetesfileEntry],
    exclude_tags: bool = False,
) -> str:
    """
    Replace each container image with its lockfile entry.

    Raises:
        ImageCountMismatchError: If the file and lockfile disagree on the image count
        RewriteError: If a container name differs from the lockfile entry at its position
        KubernetesfileParseError: If the manifest no longer parses
    """
    containers = find_containers(content, path)
    if len(containers) != len(entries):
        raise ImageCountMismatchError(path, len(containers), len(entries))

    replacements = {}
    for container, entry in zip(containers, entries):
        if container.container_name != entry.container:
            raise RewriteError(
                f"'{path}': container '{container.container_name}' does not match "
                f"'{entry.container}' in the lockfile"
            )
        other = add_replacement(replacements, scalar_replacement(
            content, container.image_node, render_image_line(entry, exclude_tags)
        ), entry.container)
        if other is not None:
            raise RewriteError(
                f"'{path}': containers '{other}' and '{entry.container}' share "
                f"one image but have different images in the lockfile"
            )
    return replace_spans(content, span_list(replacements))
