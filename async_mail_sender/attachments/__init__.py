"""Attachment sources feeding raw bytes to :class:`Message`."""

from pathlib import Path
from typing import Any, Optional

from ..models import Message
from .base import AttachmentFetcherBase
from .filesystem_fetcher import FilesystemFetcher
from .stream_fetcher import StreamFetcher


async def attach_from(
    message: Message,
    fetcher: AttachmentFetcherBase,
    source: Any,
    filename: Optional[str] = None,
) -> None:
    """Fetch ``source`` with ``fetcher`` and append it to ``message``.

    Without ``filename`` the name is taken from ``source`` (a path or a
    stream's ``name`` attribute), falling back to ``file.bin``.
    """
    data = await fetcher.fetch(source)
    if not filename:
        raw_name = source if isinstance(source, str) else getattr(source, "name", None)
        filename = Path(str(raw_name)).name if raw_name else "file.bin"
    message.attach_data(data, filename)


__all__ = [
    "AttachmentFetcherBase",
    "FilesystemFetcher",
    "StreamFetcher",
    "attach_from",
]
