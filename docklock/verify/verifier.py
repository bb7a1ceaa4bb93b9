"""
Lockfile verification.

Regenerates a lockfile from exactly the files an existing lockfile names,
always re-querying registries, and reports the first difference.
"""

import logging
from typing import List, Optional

from docklock.config.flags import GenerateFlags, KindFlags
from docklock.errors import LockfileDifferenceError
from docklock.generate.digest_resolver import DigestSource
from docklock.generate.generator import Generator
from docklock.generate.lockfile import Lockfile
from docklock.kind import Kind
from docklock.utils.concurrency import DEFAULT_MAX_CONCURRENCY

logger = logging.getLogger(__name__)

# Fields compared per entry, in order; tag is dropped with exclude_tags
ENTRY_FIELDS = {
    Kind.DOCKERFILE: ["name", "tag", "digest"],
    Kind.COMPOSEFILE: ["name", "tag", "digest", "dockerfile", "service"],
    Kind.KUBERNETESFILE: ["name", "tag", "digest", "container"],
}


class Verifier:
    """Checks that a lockfile still matches its files and registries"""

    def __init__(
        self,
        registry: DigestSource,
        exclude_tags: bool = False,
        ignore_missing_digests: bool = False,
        dockerfile_env_build_args: bool = False,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.registry = registry
        self.exclude_tags = exclude_tags
        self.ignore_missing_digests = ignore_missing_digests
        self.dockerfile_env_build_args = dockerfile_env_build_args
        self.max_concurrency = max_concurrency

    def flags_for(self, lockfile: Lockfile) -> GenerateFlags:
        """Generate options that collect exactly the paths in lockfile"""
        kind_flags = {}
        for kind in Kind:
            paths = lockfile.paths(kind)
            kind_flags[kind] = KindFlags(manual_paths=paths, exclude_all=not paths)

        return GenerateFlags(
            ignore_missing_digests=self.ignore_missing_digests,
            update_existing_digests=True,
            dockerfile_env_build_args=self.dockerfile_env_build_args,
            dockerfile=kind_flags[Kind.DOCKERFILE],
            composefile=kind_flags[Kind.COMPOSEFILE],
            kubernetesfile=kind_flags[Kind.KUBERNETESFILE],
        )

    async def verify(self, lockfile: Lockfile) -> Lockfile:
        """
        Regenerate and compare.

        Returns:
            The regenerated lockfile

        Raises:
            LockfileDifferenceError: On the first difference
            DockerLockError: If regeneration fails
        """
        generator = Generator.from_flags(
            self.flags_for(lockfile),
            self.registry,
            max_concurrency=self.max_concurrency,
            update_existing_digests=True,
        )
        new_lockfile = await generator.generate()
        compare_lockfiles(lockfile, new_lockfile, exclude_tags=self.exclude_tags)
        logger.info("Lockfile is up to date")
        return new_lockfile


def _fields(kind: Kind, exclude_tags: bool) -> List[str]:
    return [name for name in ENTRY_FIELDS[kind] if not (exclude_tags and name == "tag")]


def compare_lockfiles(existing: Lockfile, new: Lockfile, exclude_tags: bool = False) -> None:
    """
    Raise on the first difference between two lockfiles.

    Raises:
        LockfileDifferenceError: Naming the kind, path, index and field
    """
    for kind in Kind:
        existing_section = existing.section(kind)
        new_section = new.section(kind)

        existing_paths = sorted(existing_section)
        new_paths = sorted(new_section)
        if existing_paths != new_paths:
            raise LockfileDifferenceError(
                f"{kind.value}: existing paths {existing_paths} differ from the new paths {new_paths}",
                kind=kind,
            )

        for path in existing_paths:
            existing_entries = existing_section[path]
            new_entries = new_section[path]
            if len(existing_entries) != len(new_entries):
                raise LockfileDifferenceError(
                    f"{kind.value} '{path}': existing lockfile has {len(existing_entries)} images, "
                    f"the new one has {len(new_entries)}",
                    kind=kind,
                    path=path,
                )

            for index, (existing_entry, new_entry) in enumerate(zip(existing_entries, new_entries)):
                field = _first_difference(existing_entry, new_entry, _fields(kind, exclude_tags))
                if field is not None:
                    raise LockfileDifferenceError(
                        f"{kind.value} '{path}' image {index}: existing image with field '{field}' "
                        f"and value '{getattr(existing_entry, field)}' differs from the new "
                        f"image's value '{getattr(new_entry, field)}'",
                        kind=kind,
                        path=path,
                        field=field,
                    )


def _first_difference(existing_entry, new_entry, fields: List[str]) -> Optional[str]:
    for field in fields:
        if getattr(existing_entry, field) != getattr(new_entry, field):
            return field
    return None
