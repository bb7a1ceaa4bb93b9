"""
Async file helpers.

Uses aiofiles for reads/writes and asyncio.to_thread() for synchronous
filesystem operations (rename, unlink, stat).
"""

import asyncio
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import aiofiles


async def read_text(path: str) -> str:
    async with aiofiles.open(path, 'r', encoding='utf-8', newline='') as f:
        return await f.read()


async def read_bytes_if_exists(path: str) -> Optional[bytes]:
    """Return the file's bytes, or None if it does not exist."""
    try:
        async with aiofiles.open(path, 'rb') as f:
            return await f.read()
    except FileNotFoundError:
        return None


async def write_temp_file(content: str, directory: str, prefix: str = '.docker-lock-') -> str:
    """
    Write content to a new temp file in directory.

    Returns:
        Path of the temp file; the caller owns it
    """
    fd, temp_path = tempfile.mkstemp(dir=directory or '.', prefix=prefix, suffix='.tmp')
    try:
        async with aiofiles.open(fd, 'w', encoding='utf-8', newline='', closefd=True) as f:
            await f.write(content)
    except BaseException:
        # Includes cancellation; the caller never sees temp_path
        await asyncio.to_thread(Path(temp_path).unlink, True)  # missing_ok=True
        raise
    return temp_path


def match_file_mode(temp_path: str, target_path: str) -> None:
    """
    Give a temp file the permissions it should have once renamed onto target.

    mkstemp creates files as 0600; existing targets keep their mode and new
    files get the usual umask-derived mode.
    """
    if os.path.exists(target_path):
        shutil.copymode(target_path, temp_path)
        return
    umask = os.umask(0)
    os.umask(umask)
    os.chmod(temp_path, 0o666 & ~umask)


async def atomic_write_file(target_path: str, content: str) -> None:
    """Write content atomically using temp file + rename pattern."""
    temp_path = await write_temp_file(content, os.path.dirname(target_path))
    try:
        await asyncio.to_thread(match_file_mode, temp_path, target_path)
        # Use asyncio.to_thread to avoid blocking on slow filesystems (NFS)
        await asyncio.to_thread(os.replace, temp_path, target_path)
    except BaseException:
        await asyncio.to_thread(Path(temp_path).unlink, True)
        raise
