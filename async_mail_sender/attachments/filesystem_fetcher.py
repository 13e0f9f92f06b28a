"""Filesystem attachment fetcher.

Reads attachment bytes from local paths without blocking the event loop.
When a base directory is configured, relative paths are resolved against
it and every resolved path must stay inside it.

Example:
    fetcher = FilesystemFetcher(base_dir="/var/mail/files")
    data = await fetcher.fetch("uploads/report.pdf")
    message.attach_data(data, "report.pdf")
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from ..errors import AttachmentReadError
from .base import AttachmentFetcherBase


class FilesystemFetcher(AttachmentFetcherBase):
    """Fetcher for local filesystem attachments.

    Attributes:
        _base_dir: Base directory for relative paths and security boundary.
    """

    def __init__(self, base_dir: str | None = None):
        self._base_dir: Path | None = None
        if base_dir:
            self._base_dir = Path(base_dir).resolve()

    async def fetch(self, path: str) -> bytes:
        """Read file content from the filesystem.

        Raises:
            AttachmentReadError: if the path is invalid, escapes ``base_dir``
                or cannot be read.
        """
        if not path:
            raise AttachmentReadError("Empty attachment path")

        resolved_path = self._resolve_and_validate(str(path))
        try:
            return await asyncio.to_thread(resolved_path.read_bytes)
        except OSError as exc:
            raise AttachmentReadError(f"Cannot read attachment {resolved_path}: {exc}") from exc

    def _resolve_and_validate(self, path: str) -> Path:
        path_obj = Path(path)

        if path_obj.is_absolute():
            resolved = path_obj.resolve()
        elif self._base_dir:
            resolved = (self._base_dir / path_obj).resolve()
        else:
            resolved = path_obj.resolve()

        if self._base_dir:
            try:
                resolved.relative_to(self._base_dir)
            except ValueError:
                raise AttachmentReadError(
                    f"Path traversal detected: '{path}' resolves outside base directory"
                ) from None

        if not resolved.is_file():
            raise AttachmentReadError(f"Attachment not found: {resolved}")

        return resolved

    @property
    def base_dir(self) -> Path | None:
        """The configured base directory."""
        return self._base_dir
