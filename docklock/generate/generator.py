"""
Lockfile generation pipeline.

collect paths → parse images → resolve digests → assemble lockfile
"""

import logging
from typing import Dict, List, Optional, Protocol

from docklock.config.flags import GenerateFlags
from docklock.generate.collector import PathCollector
from docklock.generate.compose_parser import ComposefileParser
from docklock.generate.digest_resolver import DigestResolver, DigestSource
from docklock.generate.dockerfile_parser import DockerfileParser
from docklock.generate.image import ImageReference
from docklock.generate.kubernetes_parser import KubernetesfileParser
from docklock.generate.lockfile import Lockfile
from docklock.kind import DEFAULT_PATHS, Kind
from docklock.utils.concurrency import DEFAULT_MAX_CONCURRENCY, run_bounded

logger = logging.getLogger(__name__)


class ImageParser(Protocol):
    async def parse_file(self, path: str) -> List[ImageReference]:
        ...


class Generator:
    """Runs the pipeline for every configured kind"""

    def __init__(
        self,
        collectors: List[PathCollector],
        parsers: Dict[Kind, ImageParser],
        resolver: DigestResolver,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        """
        Args:
            collectors: One collector per kind to generate
            parsers: Parser for each collected kind
            resolver: Digest resolver shared by every kind
            max_concurrency: Maximum files parsed at once
        """
        missing = [collector.kind.value for collector in collectors if collector.kind not in parsers]
        if missing:
            raise ValueError(f"no parser configured for: {', '.join(missing)}")

        self.collectors = collectors
        self.parsers = parsers
        self.resolver = resolver
        self.max_concurrency = max_concurrency

    async def generate(self) -> Lockfile:
        """
        Build a lockfile from the collected files.

        Raises:
            DockerLockError: The first collection, parse or registry failure
        """
        collected = await run_bounded(
            lambda collector: collector.collect_paths(), self.collectors, len(self.collectors) or 1
        )

        jobs = []
        for collector, paths in zip(self.collectors, collected):
            jobs.extend((collector.kind, path) for path in paths)
        logger.info(f"Parsing {len(jobs)} files")

        async def parse(job) -> List[ImageReference]:
            kind, path = job
            return await self.parsers[kind].parse_file(path)

        parsed = await run_bounded(parse, jobs, self.max_concurrency)
        references = [reference for file_references in parsed for reference in file_references]

        resolved = await self.resolver.resolve(references)
        return Lockfile.from_references(resolved)

    @classmethod
    def from_flags(
        cls,
        flags: GenerateFlags,
        registry: DigestSource,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        update_existing_digests: Optional[bool] = None,
    ) -> "Generator":
        """
        Build the standard pipeline for generate (and verify).

        Raises:
            CollectionError: If a collector's options are invalid
        """
        collectors = []
        for kind in Kind:
            kind_flags = flags.kind_flags(kind)
            collectors.append(PathCollector(
                kind=kind,
                base_dir=flags.base_dir,
                default_paths=DEFAULT_PATHS[kind],
                manual_paths=kind_flags.manual_paths,
                globs=kind_flags.globs,
                recursive=kind_flags.recursive,
                exclude_all=kind_flags.exclude_all,
            ))

        dockerfile_parser = DockerfileParser(use_env_build_args=flags.dockerfile_env_build_args)
        parsers = {
            Kind.DOCKERFILE: dockerfile_parser,
            Kind.COMPOSEFILE: ComposefileParser(dockerfile_parser, max_concurrency=max_concurrency),
            Kind.KUBERNETESFILE: KubernetesfileParser(),
        }

        if update_existing_digests is None:
            update_existing_digests = flags.update_existing_digests
        resolver = DigestResolver(
            registry,
            ignore_missing_digests=flags.ignore_missing_digests,
            update_existing_digests=update_existing_digests,
            max_concurrency=max_concurrency,
        )
        return cls(collectors, parsers, resolver, max_concurrency=max_concurrency)
