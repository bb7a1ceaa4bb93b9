"""
Lockfile model and serialization.

Entries are grouped by kind and path and sorted so that the order of a
path's entries matches the order its images appear in the file. The
rewriter relies on that order to match entries to occurrences.
"""

import json
import logging
from collections import defaultdict
from typing import Dict, Iterable, List

from pydantic import BaseModel, ConfigDict, ValidationError

from docklock.errors import LockfileError
from docklock.generate.image import (
    ComposefileImage,
    DockerfileImage,
    ImageReference,
    KubernetesfileImage,
)
from docklock.kind import Kind
from docklock.utils.files import atomic_write_file, read_text

logger = logging.getLogger(__name__)

DEFAULT_LOCKFILE_NAME = "docker-lock.json"


class DockerfileEntry(BaseModel):
    """Lockfile entry for an image in a Dockerfile"""
    model_config = ConfigDict(frozen=True, extra='forbid')

    name: str
    tag: str
    digest: str


class ComposefileEntry(BaseModel):
    """Lockfile entry for an image of a Compose service"""
    model_config = ConfigDict(frozen=True, extra='forbid')

    name: str
    tag: str
    digest: str
    dockerfile: str = ""  # Empty when the service uses image:
    service: str


class KubernetesfileEntry(BaseModel):
    """Lockfile entry for a Kubernetes container image"""
    model_config = ConfigDict(frozen=True, extra='forbid')

    name: str
    tag: str
    digest: str
    container: str


def _dockerfile_entry(reference: DockerfileImage) -> DockerfileEntry:
    return DockerfileEntry(name=reference.name, tag=reference.tag, digest=reference.digest)


def _composefile_entry(reference: ComposefileImage) -> ComposefileEntry:
    return ComposefileEntry(
        name=reference.name,
        tag=reference.tag,
        digest=reference.digest,
        dockerfile=reference.dockerfile_path,
        service=reference.service_name,
    )


def _kubernetesfile_entry(reference: KubernetesfileImage) -> KubernetesfileEntry:
    return KubernetesfileEntry(
        name=reference.name,
        tag=reference.tag,
        digest=reference.digest,
        container=reference.container_name,
    )


ENTRY_BUILDERS = {
    Kind.DOCKERFILE: _dockerfile_entry,
    Kind.COMPOSEFILE: _composefile_entry,
    Kind.KUBERNETESFILE: _kubernetesfile_entry,
}


class Lockfile(BaseModel):
    """
    Images pinned per file, keyed by kind and then by path.

    Paths are relative to the directory the lockfile was generated from and
    always use forward slashes.
    """
    model_config = ConfigDict(frozen=True, extra='forbid')

    dockerfiles: Dict[str, List[DockerfileEntry]] = {}
    composefiles: Dict[str, List[ComposefileEntry]] = {}
    kubernetesfiles: Dict[str, List[KubernetesfileEntry]] = {}

    @classmethod
    def from_references(cls, references: Iterable[ImageReference]) -> "Lockfile":
        """
        Group references by kind and path and sort each path's entries.

        Sorting is stable, so references with equal sort keys keep their
        input order.
        """
        grouped: Dict[Kind, Dict[str, List[ImageReference]]] = defaultdict(lambda: defaultdict(list))
        for reference in references:
            grouped[reference.kind][reference.path].append(reference)

        sections = {}
        for kind, by_path in grouped.items():
            build_entry = ENTRY_BUILDERS[kind]
            sections[kind.value] = {
                path: [build_entry(reference) for reference in sorted(path_references, key=lambda r: r.sort_key())]
                for path, path_references in sorted(by_path.items())
            }
        return cls(**sections)

    def section(self, kind: Kind) -> Dict[str, list]:
        return getattr(self, kind.value)

    def paths(self, kind: Kind) -> List[str]:
        return sorted(self.section(kind))

    def is_empty(self) -> bool:
        return not (self.dockerfiles or self.composefiles or self.kubernetesfiles)

    def to_dict(self) -> Dict:
        """Lockfile JSON structure; empty sections are left out"""
        data = {}
        for kind in Kind:
            section = self.section(kind)
            if not section:
                continue
            data[kind.value] = {
                path: [
                    entry.model_dump(exclude={'dockerfile'} if getattr(entry, 'dockerfile', None) == "" else None)
                    for entry in section[path]
                ]
                for path in sorted(section)
            }
        return data

    def dumps(self) -> str:
        """Serialize as tab-indented JSON with a trailing newline"""
        return json.dumps(self.to_dict(), indent='\t') + "\n"

    @classmethod
    def loads(cls, text: str) -> "Lockfile":
        """
        Parse lockfile JSON.

        Raises:
            LockfileError: If the JSON is invalid or does not match the schema
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise LockfileError(f"lockfile is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise LockfileError("lockfile must be a JSON object")

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise LockfileError(f"invalid lockfile: {e}")

    @classmethod
    async def read(cls, path: str) -> "Lockfile":
        """
        Read and parse a lockfile.

        Raises:
            LockfileError: If the file cannot be read or parsed
        """
        try:
            text = await read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            raise LockfileError(f"failed to read lockfile '{path}': {e}")
        try:
            return cls.loads(text)
        except LockfileError as e:
            raise LockfileError(f"'{path}': {e}")

    async def write(self, path: str) -> None:
        """
        Write the lockfile atomically.

        Raises:
            LockfileError: If the file cannot be written
        """
        try:
            await atomic_write_file(path, self.dumps())
        except OSError as e:
            raise LockfileError(f"failed to write lockfile '{path}': {e}")
        logger.info(f"Wrote lockfile {path}")
