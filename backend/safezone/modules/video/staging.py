"""Staging store for uploaded source files.

Each upload gets its own generated file name under the staging root, so jobs
never touch each other's files. A staged file lives until its job reaches a
terminal state.
"""

import asyncio
import logging
import os
import shutil
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from safezone.core.errors import UploadTooLargeError

logger = logging.getLogger(__name__)

STAGING_KEY_PREFIX = "temp/"


@dataclass(frozen=True)
class StagedFile:
    """A file written to the staging area."""

    name: str
    path: Path
    size_bytes: int

    @property
    def staging_key(self) -> str:
        return f"{STAGING_KEY_PREFIX}{self.name}"


def staged_name_from_key(staging_key: str) -> Optional[str]:
    """Inverse of ``StagedFile.staging_key``."""
    if staging_key.startswith(STAGING_KEY_PREFIX):
        name = staging_key[len(STAGING_KEY_PREFIX):]
        return name or None
    return None


class StagingStore:
    """Local directory holding uploads until processing finishes."""

    WORK_DIR_NAME = ".work"

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def new_name(self, original_filename: str) -> str:
        """Unique staged name keeping the lower-cased original extension."""
        ext = Path(original_filename or "").suffix.lower()
        return f"{uuid.uuid4().hex}{ext}"

    def path_for(self, name: str) -> Path:
        if not name or Path(name).name != name or name.startswith("."):
            raise ValueError(f"Invalid staged file name: {name!r}")
        return self.root / name

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    async def stage_upload(
        self,
        upload,
        original_filename: str,
        max_bytes: int,
        chunk_size: int = 1024 * 1024,
    ) -> StagedFile:
        """Stream an async upload (``await upload.read(n)``) into a new staged file.

        The copy stops as soon as more than ``max_bytes`` have been received;
        the partial file is removed and ``UploadTooLargeError`` raised.

        Args:
            upload: Object with an async ``read(size)`` method, e.g. UploadFile
            original_filename: Client file name, used for the extension
            max_bytes: Maximum accepted size
            chunk_size: Bytes per read

        Returns:
            StagedFile: The written file
        """
        name = self.new_name(original_filename)
        path = self.path_for(name)
        written = 0
        try:
            with open(path, "xb") as out:
                while True:
                    chunk = await upload.read(chunk_size)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > max_bytes:
                        raise UploadTooLargeError(max_bytes)
                    await asyncio.to_thread(out.write, chunk)
        except BaseException:
            self.discard(name)
            raise
        return StagedFile(name=name, path=path, size_bytes=written)

    def discard(self, name: str) -> bool:
        """Delete a staged file.

        Never raises; failures are logged.

        Returns:
            bool: True if a file was removed
        """
        try:
            self.path_for(name).unlink()
        except FileNotFoundError:
            return False
        except (OSError, ValueError) as e:
            logger.warning(
                "Failed to delete staged file",
                extra={"staged_name": name, "error": str(e)},
            )
            return False
        logger.debug("Staged file deleted", extra={"staged_name": name})
        return True

    @contextmanager
    def work_dir(self, job_id: str) -> Iterator[Path]:
        """Scratch directory for one job's transcoder outputs, removed on exit."""
        path = self.root / self.WORK_DIR_NAME / job_id
        path.mkdir(parents=True, exist_ok=True)
        try:
            yield path
        finally:
            shutil.rmtree(path, ignore_errors=True)

    def list_staged(self) -> list[tuple[str, datetime]]:
        """Staged file names with their last-modified time (UTC)."""
        staged = []
        for path in self.root.iterdir():
            if path.name.startswith(".") or not path.is_file():
                continue
            try:
                modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            except FileNotFoundError:
                continue
            staged.append((path.name, modified))
        return staged
