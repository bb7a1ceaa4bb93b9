"""
Image types shared by every stage of the pipeline.

An ImageReference is created by a parser, gets its digest filled in once by
the DigestResolver, and is then read by the lockfile, the rewriter and the
verifier.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Tuple

from docklock.kind import Kind

DIGEST_PREFIX = "sha256:"
DEFAULT_TAG = "latest"


@dataclass
class Image:
    """
    A parsed image line such as busybox:latest@sha256:dd97a3f...

    The digest is stored without the "sha256:" prefix, as in the lockfile.
    """
    name: str
    tag: str = ""
    digest: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        """Identity used to deduplicate registry queries."""
        return (self.name, self.tag)

    @property
    def image_line(self) -> str:
        return format_image_line(self.name, self.tag, self.digest)


def parse_image_line(image_line: str) -> Image:
    """
    Split an image line into name, tag and digest.

    Scans left to right: ':' marks a tag separator, '/' resets it (so
    'localhost:5000/app' keeps the port in the name) and '@' ends the scan.

    Examples:
        ubuntu:18.04@sha256:9b17 -> (ubuntu, 18.04, 9b17)
        ubuntu:18.04 -> (ubuntu, 18.04, "")
        ubuntu@sha256:9b17 -> (ubuntu, "", 9b17)
        ubuntu -> (ubuntu, latest, "")
        localhost:5000/app -> (localhost:5000/app, latest, "")
    """
    tag_separator = -1
    digest_separator = -1

    for i, c in enumerate(image_line):
        if c == ':':
            tag_separator = i
        elif c == '/':
            tag_separator = -1
        elif c == '@':
            digest_separator = i
            break

    if digest_separator != -1:
        digest = image_line[digest_separator + 1:]
        if digest.startswith(DIGEST_PREFIX):
            digest = digest[len(DIGEST_PREFIX):]
        if tag_separator != -1:
            return Image(
                name=image_line[:tag_separator],
                tag=image_line[tag_separator + 1:digest_separator],
                digest=digest,
            )
        return Image(name=image_line[:digest_separator], tag="", digest=digest)

    if tag_separator != -1:
        return Image(name=image_line[:tag_separator], tag=image_line[tag_separator + 1:])

    return Image(name=image_line, tag=DEFAULT_TAG)


def format_image_line(name: str, tag: str = "", digest: str = "", exclude_tag: bool = False) -> str:
    """Render name[:tag][@sha256:digest]."""
    image_line = name
    if tag and not exclude_tag:
        image_line = f"{image_line}:{tag}"
    if digest:
        image_line = f"{image_line}@{DIGEST_PREFIX}{digest}"
    return image_line


@dataclass
class ImageReference(ABC):
    """
    An image plus where it was found.

    Subclasses add the kind-specific provenance. `error` is only set when a
    digest lookup failed and the run was told to ignore missing digests.
    """
    kind: ClassVar[Kind]

    image: Image
    path: str
    error: Optional[Exception] = field(default=None, compare=False, repr=False)

    @property
    def name(self) -> str:
        return self.image.name

    @property
    def tag(self) -> str:
        return self.image.tag

    @property
    def digest(self) -> str:
        return self.image.digest

    def metadata(self) -> Dict[str, Any]:
        """Kind-specific fields as a fresh dict (mutating it has no effect)."""
        return {"path": self.path}

    @abstractmethod
    def sort_key(self) -> Tuple:
        """Order of this reference among the references of its file."""


@dataclass
class DockerfileImage(ImageReference):
    kind: ClassVar[Kind] = Kind.DOCKERFILE

    position: int = 0

    def metadata(self) -> Dict[str, Any]:
        return {"path": self.path, "position": self.position}

    def sort_key(self) -> Tuple:
        return (self.position,)


@dataclass
class ComposefileImage(ImageReference):
    kind: ClassVar[Kind] = Kind.COMPOSEFILE

    service_name: str = ""
    dockerfile_path: str = ""
    position: int = 0

    def metadata(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "serviceName": self.service_name,
            "dockerfilePath": self.dockerfile_path,
            "servicePosition": self.position,
        }

    def sort_key(self) -> Tuple:
        return (self.service_name, self.dockerfile_path, self.position)


@dataclass
class KubernetesfileImage(ImageReference):
    kind: ClassVar[Kind] = Kind.KUBERNETESFILE

    container_name: str = ""
    document_position: int = 0
    image_position: int = 0

    def metadata(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "containerName": self.container_name,
            "docPosition": self.document_position,
            "imagePosition": self.image_position,
        }

    def sort_key(self) -> Tuple:
        return (self.document_position, self.image_position)
