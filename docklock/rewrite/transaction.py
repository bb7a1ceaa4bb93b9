"""
All-or-nothing replacement of a set of files.

Rendered files are first written to temp files, then renamed onto their
outputs one by one. If a rename fails, outputs already renamed in this run
get their previous bytes back (or are removed if they did not exist).

This is best effort, not an OS-level transaction: each rename is atomic,
but a crash in the middle of a commit or rollback can leave some outputs
updated. Temp files must be on the same filesystem as the outputs for the
renames to succeed; with no temp dir they are created next to each output.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import aiofiles

from docklock.errors import RenameError, RewriteError
from docklock.utils.files import match_file_mode, read_bytes_if_exists, write_temp_file

logger = logging.getLogger(__name__)


@dataclass
class StagedFile:
    output_path: str
    temp_path: str
    original: Optional[bytes]  # None when the output did not exist before

    @property
    def is_new(self) -> bool:
        return self.original is None


class RewriteTransaction:
    """
    Stage, commit and, on failure, roll back file replacements.

    Usage:
        async with RewriteTransaction(temp_dir) as transaction:
            await transaction.stage("Dockerfile", content)
            await transaction.commit()
    """

    def __init__(self, temp_dir: Optional[str] = None):
        self.temp_dir = temp_dir
        self.staged: List[StagedFile] = []
        self.committed: List[StagedFile] = []
        self._run_dir: Optional[str] = None

    async def __aenter__(self) -> "RewriteTransaction":
        if self.temp_dir:
            self._run_dir = await asyncio.to_thread(
                tempfile.mkdtemp, prefix='docker-lock-', dir=self.temp_dir
            )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.cleanup()

    async def stage(self, output_path: str, content: str) -> StagedFile:
        """
        Write content to a temp file and capture the output's current bytes.

        Raises:
            RewriteError: If the temp file cannot be written
        """
        if any(staged.output_path == output_path for staged in self.staged):
            raise RewriteError(f"'{output_path}' would be written twice")

        directory = self._run_dir or os.path.dirname(output_path) or '.'
        try:
            original = await read_bytes_if_exists(output_path)
            temp_path = await write_temp_file(content, directory)
        except OSError as e:
            raise RewriteError(f"failed to stage rewrite of '{output_path}': {e}")

        staged = StagedFile(output_path=output_path, temp_path=temp_path, original=original)
        self.staged.append(staged)
        try:
            await asyncio.to_thread(match_file_mode, temp_path, output_path)
        except OSError as e:
            raise RewriteError(f"failed to stage rewrite of '{output_path}': {e}")
        return staged

    async def commit(self) -> List[str]:
        """
        Rename every staged file onto its output, in sorted output order.

        Returns:
            Output paths written

        Raises:
            RenameError: If a rename fails; outputs renamed earlier in this
                run have been restored by the time it is raised
        """
        for staged in sorted(self.staged, key=lambda s: s.output_path):
            try:
                await asyncio.to_thread(os.replace, staged.temp_path, staged.output_path)
            except OSError as e:
                logger.error(f"Rename onto {staged.output_path} failed, rolling back {len(self.committed)} files")
                rollback_errors = await self.rollback()
                raise RenameError(staged.output_path, e, rollback_errors)
            self.committed.append(staged)
            logger.debug(f"Committed {staged.output_path}")

        return [staged.output_path for staged in self.committed]

    async def rollback(self) -> List[Exception]:
        """
        Restore every committed output, most recent first.

        Returns:
            Failures; rollback keeps going past individual failures
        """
        errors = []
        for staged in reversed(self.committed):
            try:
                if staged.is_new:
                    await asyncio.to_thread(Path(staged.output_path).unlink, True)
                else:
                    async with aiofiles.open(staged.output_path, 'wb') as f:
                        await f.write(staged.original)
                logger.info(f"Rolled back {staged.output_path}")
            except OSError as e:
                logger.error(f"Failed to roll back {staged.output_path}: {e}")
                errors.append(RewriteError(f"'{staged.output_path}': {e}"))
        self.committed = []
        return errors

    async def cleanup(self):
        """Remove leftover temp files and the per-run temp directory"""
        def _cleanup():
            for staged in self.staged:
                Path(staged.temp_path).unlink(missing_ok=True)
            if self._run_dir:
                shutil.rmtree(self._run_dir, ignore_errors=True)

        await asyncio.to_thread(_cleanup)
