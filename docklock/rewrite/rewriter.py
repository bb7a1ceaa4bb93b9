"""
Rewrite files with the digests from a lockfile.

Runs in phases: plan and render every file in memory, stage the rendered
files, then commit them together. Nothing on disk changes unless every file
renders, and a failed commit is rolled back.
"""

import logging
from typing import Dict, List, Optional, Tuple

from docklock.errors import RewriteError
from docklock.generate.compose_parser import compose_environment
from docklock.generate.lockfile import Lockfile
from docklock.kind import Kind
from docklock.rewrite.compose_writer import plan_composefile, same_images
from docklock.rewrite.dockerfile_writer import rewrite_dockerfile
from docklock.rewrite.kubernetes_writer import rewrite_kubernetesfile
from docklock.rewrite.transaction import RewriteTransaction
from docklock.utils.concurrency import DEFAULT_MAX_CONCURRENCY, run_bounded
from docklock.utils.files import read_text
from docklock.utils.paths import suffixed_path, to_native, validate_path_safety

logger = logging.getLogger(__name__)


class Rewriter:
    """Embeds lockfile digests into Dockerfiles, Compose files and manifests"""

    def __init__(
        self,
        exclude_tags: bool = False,
        suffix: str = "",
        temp_dir: Optional[str] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        """
        Args:
            exclude_tags: Write name@sha256:digest instead of name:tag@sha256:digest
            suffix: Write to new files (Dockerfile-<suffix>, docker-compose-<suffix>.yml)
                instead of overwriting
            temp_dir: Directory for staged files; defaults to each output's directory
            max_concurrency: Maximum files read or staged at once
        """
        self.exclude_tags = exclude_tags
        self.suffix = suffix
        self.temp_dir = temp_dir
        self.max_concurrency = max_concurrency

    async def rewrite(self, lockfile: Lockfile) -> List[str]:
        """
        Rewrite every file named in the lockfile.

        Returns:
            Output paths written, sorted

        Raises:
            RewriteError: If any file cannot be planned, rendered or committed;
                ImageCountMismatchError and RenameError are subclasses
        """
        rendered = await self._render(lockfile)
        if not rendered:
            logger.info("Lockfile is empty, nothing to rewrite")
            return []

        outputs = {suffixed_path(path, self.suffix): content for path, content in rendered.items()}

        async with RewriteTransaction(self.temp_dir) as transaction:
            await run_bounded(
                lambda item: transaction.stage(item[0], item[1]),
                sorted(outputs.items()),
                self.max_concurrency,
            )
            written = await transaction.commit()

        logger.info(f"Rewrote {len(written)} files")
        return written

    async def _read(self, lockfile_path: str) -> Tuple[str, str]:
        native_path = to_native(lockfile_path)
        try:
            validate_path_safety(native_path)
        except ValueError as e:
            raise RewriteError(str(e))
        try:
            return native_path, await read_text(native_path)
        except (OSError, UnicodeDecodeError) as e:
            raise RewriteError(f"failed to read '{lockfile_path}': {e}")

    async def _render(self, lockfile: Lockfile) -> Dict[str, str]:
        """
        Plan and render every file.

        Returns:
            Native path → new content
        """
        rendered: Dict[str, str] = {}

        # Compose files first: their build services decide Dockerfile contents too
        dockerfile_entries: Dict[str, list] = dict(lockfile.dockerfiles)
        dockerfile_owner: Dict[str, str] = {path: Kind.DOCKERFILE.value for path in lockfile.dockerfiles}

        async def plan_compose(lockfile_path: str):
            native_path, content = await self._read(lockfile_path)
            environ = await compose_environment(native_path)
            plan = plan_composefile(
                content, native_path, lockfile_path,
                lockfile.composefiles[lockfile_path], self.exclude_tags, environ,
            )
            return lockfile_path, native_path, plan

        plans = await run_bounded(plan_compose, lockfile.paths(Kind.COMPOSEFILE), self.max_concurrency)
        for lockfile_path, native_path, plan in plans:
            rendered[native_path] = plan.content
            for dockerfile, entries in plan.dockerfile_entries.items():
                existing = dockerfile_entries.get(dockerfile)
                if existing is not None and not same_images(existing, entries):
                    raise RewriteError(
                        f"'{dockerfile}' has different images for '{lockfile_path}' "
                        f"and '{dockerfile_owner[dockerfile]}' in the lockfile"
                    )
                dockerfile_entries[dockerfile] = entries
                dockerfile_owner.setdefault(dockerfile, lockfile_path)

        async def render_dockerfile(lockfile_path: str):
            native_path, content = await self._read(lockfile_path)
            return native_path, rewrite_dockerfile(
                content, lockfile_path, dockerfile_entries[lockfile_path], self.exclude_tags
            )

        async def render_kubernetesfile(lockfile_path: str):
            native_path, content = await self._read(lockfile_path)
            return native_path, rewrite_kubernetesfile(
                content, lockfile_path, lockfile.kubernetesfiles[lockfile_path], self.exclude_tags
            )

        results = await run_bounded(render_dockerfile, sorted(dockerfile_entries), self.max_concurrency)
        results += await run_bounded(
            render_kubernetesfile, lockfile.paths(Kind.KUBERNETESFILE), self.max_concurrency
        )

        for native_path, content in results:
            if native_path in rendered:
                raise RewriteError(f"'{native_path}' is listed under more than one kind in the lockfile")
            rendered[native_path] = content

        return rendered
