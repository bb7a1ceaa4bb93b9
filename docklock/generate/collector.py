"""
Path collection for each kind of file.

A PathCollector gathers candidate files from explicit paths, glob patterns
and a recursive walk, or falls back to the kind's default file names when
none of those are requested.
"""

import asyncio
import glob
import logging
import os
from typing import Callable, Awaitable, List, Optional

from docklock.errors import CollectionError
from docklock.kind import Kind
from docklock.utils.concurrency import run_bounded
from docklock.utils.paths import is_within, normalize_path

logger = logging.getLogger(__name__)


class PathCollector:
    """Collects the paths of one kind of file below a base directory"""

    def __init__(
        self,
        kind: Kind,
        base_dir: str = ".",
        default_paths: Optional[List[str]] = None,
        manual_paths: Optional[List[str]] = None,
        globs: Optional[List[str]] = None,
        recursive: bool = False,
        exclude_all: bool = False,
    ):
        """
        Args:
            kind: Kind of file being collected
            base_dir: Directory that manual paths, globs and defaults are relative to
            default_paths: Basenames used when nothing else is requested, and
                matched by the recursive walk
            manual_paths: Explicit file paths
            globs: Glob patterns, "**" matches any number of directories
            recursive: Walk base_dir for files named like a default path
            exclude_all: Collect nothing for this kind

        Raises:
            CollectionError: If the options are inconsistent or base_dir is invalid
        """
        self.kind = kind
        self.default_paths = list(default_paths or [])
        self.manual_paths = list(manual_paths or [])
        self.globs = list(globs or [])
        self.recursive = recursive
        self.exclude_all = exclude_all

        if recursive and not self.default_paths:
            raise CollectionError(
                f"{kind.value}: if 'recursive' is true, default paths must also be set"
            )

        self.base_dir = os.path.normpath(base_dir or ".")
        if not is_within(self.base_dir):
            raise CollectionError(
                f"'{self.base_dir}' base dir is outside the current working directory"
            )
        if not os.path.isdir(self.base_dir):
            raise CollectionError(f"'{self.base_dir}' base dir is not a directory")

    async def collect_paths(self) -> List[str]:
        """
        Collect paths, deduplicated with the first occurrence kept.

        Returns:
            Paths relative to the working directory, forward slashes

        Raises:
            CollectionError: For manual paths or glob matches that escape the
                working directory, manual paths that are missing or directories
        """
        if self.exclude_all:
            return []

        methods: List[Callable[[], Awaitable[List[str]]]] = []
        if self.manual_paths:
            methods.append(self._collect_manual_paths)
        if self.globs:
            methods.append(self._collect_globs)
        if self.recursive:
            methods.append(self._collect_recursive)
        if not methods:
            methods.append(self._collect_default_paths)

        results = await run_bounded(lambda method: method(), methods, len(methods))

        paths = []
        seen = set()
        for method_paths in results:
            for path in method_paths:
                if path not in seen:
                    seen.add(path)
                    paths.append(path)

        logger.debug(f"Collected {len(paths)} {self.kind.value} paths")
        return paths

    def _check_within(self, path: str) -> None:
        if not is_within(path):
            raise CollectionError(f"'{path}' is outside the current working directory")

    async def _collect_manual_paths(self) -> List[str]:
        paths = []
        for manual_path in self.manual_paths:
            path = os.path.join(self.base_dir, manual_path)
            self._check_within(path)
            if os.path.isdir(path):
                raise CollectionError(f"'{path}' is a directory rather than a file")
            if not os.path.exists(path):
                raise CollectionError(f"'{path}' does not exist")
            paths.append(normalize_path(path))
        return paths

    async def _collect_default_paths(self) -> List[str]:
        paths = []
        for default_path in self.default_paths:
            path = os.path.join(self.base_dir, default_path)
            self._check_within(path)
            if os.path.isfile(path):
                paths.append(normalize_path(path))
        return paths

    async def _collect_globs(self) -> List[str]:
        paths = []
        for pattern in self.globs:
            pattern = os.path.join(self.base_dir, pattern)
            matches = await asyncio.to_thread(glob.glob, pattern, recursive=True)
            for match in sorted(matches):
                if os.path.isdir(match):
                    continue
                self._check_within(match)
                paths.append(normalize_path(match))
        return paths

    async def _collect_recursive(self) -> List[str]:
        basenames = {os.path.basename(path) for path in self.default_paths}

        def walk() -> List[str]:
            found = []
            for root, dirs, files in os.walk(self.base_dir):
                dirs.sort()
                for name in sorted(files):
                    if name in basenames:
                        found.append(normalize_path(os.path.join(root, name)))
            return found

        return await asyncio.to_thread(walk)
