"""Base protocol for attachment fetchers."""

from typing import Any

class AttachmentFetcherBase:
    """Interface implemented by concrete attachment fetchers."""

    async def fetch(self, source: Any) -> bytes:
        """Return the attachment payload or raise :class:`AttachmentReadError`."""
        raise NotImplementedError
