"""
Render a Dockerfile with lockfile digests.

Occurrences are found with the same rules the parser uses, so build stage
references are never touched and the n-th lockfile entry lands on the n-th
image FROM.
"""

from typing import List, Protocol

from docklock.errors import ImageCountMismatchError
from docklock.generate.dockerfile_parser import scan_from_images
from docklock.generate.image import format_image_line
from docklock.utils.yaml_nodes import replace_spans


class PinnedImage(Protocol):
    name: str
    tag: str
    digest: str


def render_image_line(entry: PinnedImage, exclude_tags: bool = False) -> str:
    return format_image_line(entry.name, entry.tag, entry.digest, exclude_tag=exclude_tags)


def rewrite_dockerfile(
    content: str,
    path: str,
    entries: List[PinnedImage],
    exclude_tags: bool = False,
) -> str:
    """
    Replace each image FROM with its lockfile entry.

    Args:
        content: Current Dockerfile text
        path: Lockfile path of the Dockerfile, for error messages
        entries: Lockfile entries in position order
        exclude_tags: Write name@sha256:digest without the tag

    Returns:
        New Dockerfile text; everything except the image tokens is unchanged

    Raises:
        ImageCountMismatchError: If the file and lockfile disagree on the image count
        DockerfileParseError: If the Dockerfile no longer parses
    """
    from_images = scan_from_images(content, path)
    if len(from_images) != len(entries):
        raise ImageCountMismatchError(path, len(from_images), len(entries))

    replacements = [
        (from_image.token.start, from_image.token.end, render_image_line(entry, exclude_tags))
        for from_image, entry in zip(from_images, entries)
    ]
    return replace_spans(content, replacements)
