"""
Digest resolution with per-run deduplication.

Every unique (name, tag) is sent to the registry at most once per resolver,
no matter how many references share it or how many callers ask at the same
time: the first caller runs the query and later callers wait for its result.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Protocol, Tuple

from docklock.errors import RegistryError
from docklock.generate.image import ImageReference
from docklock.utils.concurrency import DEFAULT_MAX_CONCURRENCY, run_bounded

logger = logging.getLogger(__name__)


class DigestSource(Protocol):
    async def digest(self, name: str, tag: str) -> str:
        ...


class _CacheEntry:
    """Result slot for one (name, tag); `done` is set once digest or error is filled"""

    def __init__(self):
        self.digest: Optional[str] = None
        self.error: Optional[Exception] = None
        self.done = asyncio.Event()


class DigestResolver:
    """Fills in digests for image references"""

    def __init__(
        self,
        registry: DigestSource,
        ignore_missing_digests: bool = False,
        update_existing_digests: bool = False,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        """
        Args:
            registry: Anything with `async digest(name, tag)`, usually a RegistryManager
            ignore_missing_digests: Keep going when a digest cannot be found,
                leaving the reference's digest unchanged
            update_existing_digests: Re-query references that already have a digest
            max_concurrency: Maximum registry queries in flight
        """
        self.registry = registry
        self.ignore_missing_digests = ignore_missing_digests
        self.update_existing_digests = update_existing_digests
        self.max_concurrency = max_concurrency
        self._cache: Dict[Tuple[str, str], _CacheEntry] = {}
        self._lock = asyncio.Lock()

    def _needs_query(self, reference: ImageReference) -> bool:
        if not reference.tag:
            # Pinned by digest only, there is no tag to look up
            return False
        return self.update_existing_digests or not reference.digest

    async def resolve(self, references: List[ImageReference]) -> List[ImageReference]:
        """
        Return references with digests filled in, in the same order.

        Raises:
            RegistryError: For the first failed query, unless
                ignore_missing_digests is set
        """
        keys = []
        seen = set()
        for reference in references:
            if self._needs_query(reference) and reference.image.key not in seen:
                seen.add(reference.image.key)
                keys.append(reference.image.key)

        if not keys:
            return list(references)

        logger.info(f"Resolving {len(keys)} unique images for {len(references)} references")
        results = await run_bounded(self._resolve_key, keys, self.max_concurrency)
        digests = dict(zip(keys, results))

        resolved = []
        for reference in references:
            if not self._needs_query(reference):
                resolved.append(reference)
                continue

            digest, error = digests[reference.image.key]
            if error is not None:
                resolved.append(replace(reference, error=error))
            else:
                resolved.append(replace(reference, image=replace(reference.image, digest=digest)))
        return resolved

    async def _resolve_key(self, key: Tuple[str, str]) -> Tuple[Optional[str], Optional[Exception]]:
        try:
            return await self.query(*key), None
        except RegistryError as e:
            if not self.ignore_missing_digests:
                raise
            logger.warning(f"Ignoring missing digest for {key[0]}:{key[1]}: {e}")
            return None, e

    async def query(self, name: str, tag: str) -> str:
        """
        Get the digest for name:tag, querying the registry at most once.

        Concurrent callers for the same key share one query and see the same
        digest or the same error.
        """
        key = (name, tag)
        async with self._lock:
            entry = self._cache.get(key)
            owner = entry is None
            if owner:
                entry = _CacheEntry()
                self._cache[key] = entry

        if owner:
            try:
                entry.digest = await self.registry.digest(name, tag)
            except RegistryError as e:
                entry.error = e
            except BaseException:
                # Cancelled or unexpected failure: let a later caller retry
                async with self._lock:
                    self._cache.pop(key, None)
                entry.error = RegistryError(f"query for '{name}:{tag}' did not complete")
                entry.done.set()
                raise
            entry.done.set()
        else:
            await entry.done.wait()

        if entry.error is not None:
            raise entry.error
        return entry.digest
