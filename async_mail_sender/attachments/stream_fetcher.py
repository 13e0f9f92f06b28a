"""Read attachments from upload streams (file-like objects)."""

from __future__ import annotations

import asyncio
from typing import BinaryIO, Optional

from ..errors import AttachmentReadError
from .base import AttachmentFetcherBase


class StreamFetcher(AttachmentFetcherBase):
    """Drain a binary stream in a worker thread."""

    async def fetch(self, stream: Optional[BinaryIO]) -> bytes:
        if stream is None:
            raise AttachmentReadError("Attachment stream is missing")
        try:
            return await asyncio.to_thread(stream.read)
        except (OSError, ValueError) as exc:
            raise AttachmentReadError(f"Cannot read attachment stream: {exc}") from exc
